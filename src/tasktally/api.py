"""FastAPI application exposing task, expense, report and auth endpoints."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import Counter
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from . import auth, services
from .auth import MemorySessionStore, SessionStore
from .config import settings
from .date_utils import DateFilter
from .errors import TrackerError, ValidationFailed
from .schemas import (
    DashboardSummary,
    Expense,
    ExpenseCreate,
    ExpenseReport,
    ExpenseUpdate,
    Task,
    TaskCreate,
    TaskUpdate,
    UserCredentials,
    UserOut,
)
from .storage import Storage, build_storage


logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)

SENSITIVE_RATE_LIMIT = settings.rate_limit_auth

# Prometheus counter to track API requests by method, endpoint and status code
REQUEST_COUNTER = Counter(
    "api_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)


async def log_requests(request: Request, call_next):
    """Log incoming requests and their outcomes while updating metrics."""
    logger.info("request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
    except Exception:
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=_endpoint_label(request),
            status="500",
        ).inc()
        logger.exception(
            "error handling %s %s", request.method, request.url.path
        )
        raise
    REQUEST_COUNTER.labels(
        method=request.method,
        endpoint=_endpoint_label(request),
        status=str(response.status_code),
    ).inc()
    logger.info(
        "response %s %s status %s",
        request.method,
        request.url.path,
        response.status_code,
    )
    return response


def _endpoint_label(request: Request) -> str:
    # route template keeps ids out of the label set
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


async def handle_tracker_error(request: Request, exc: TrackerError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message)


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"] if part != "body")
        details.append(f"{location}: {error['msg']}" if location else error["msg"])
    failure = ValidationFailed("Validation error: " + "; ".join(details))
    return _error_response(failure.status_code, failure.message)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    return _error_response(500, "Internal server error")


# Dependencies


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_sessions(request: Request) -> SessionStore:
    return request.app.state.sessions


def get_session_id(request: Request) -> Optional[str]:
    return request.cookies.get(settings.session_cookie_name)


def require_user(
    storage: Storage = Depends(get_storage),
    sessions: SessionStore = Depends(get_sessions),
    session_id: Optional[str] = Depends(get_session_id),
) -> UserOut:
    return auth.current_user(storage, sessions, session_id)


def require_anonymous(
    sessions: SessionStore = Depends(get_sessions),
    session_id: Optional[str] = Depends(get_session_id),
) -> None:
    auth.ensure_anonymous(sessions, session_id)


auth_router = APIRouter(prefix="/api/auth", tags=["auth"])
tasks_router = APIRouter(
    prefix="/api/tasks", tags=["tasks"], dependencies=[Depends(require_user)]
)
expenses_router = APIRouter(
    prefix="/api/expenses", tags=["expenses"], dependencies=[Depends(require_user)]
)
reports_router = APIRouter(
    prefix="/api/reports", tags=["reports"], dependencies=[Depends(require_user)]
)


# Auth


@auth_router.post(
    "/register",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_anonymous)],
)
@limiter.limit(SENSITIVE_RATE_LIMIT)
def register(
    request: Request, payload: UserCredentials, storage: Storage = Depends(get_storage)
):
    """Create an account. The new user still has to log in."""
    return auth.register(storage, payload.username, payload.password)


@auth_router.post(
    "/login", response_model=UserOut, dependencies=[Depends(require_anonymous)]
)
@limiter.limit(SENSITIVE_RATE_LIMIT)
def login(
    request: Request,
    response: Response,
    payload: UserCredentials,
    storage: Storage = Depends(get_storage),
    sessions: SessionStore = Depends(get_sessions),
):
    """Check credentials and start a cookie-backed session."""
    session_id, user = auth.login(storage, sessions, payload.username, payload.password)
    response.set_cookie(
        settings.session_cookie_name,
        session_id,
        max_age=settings.session_max_age,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )
    return user


@auth_router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    sessions: SessionStore = Depends(get_sessions),
    session_id: Optional[str] = Depends(get_session_id),
):
    auth.logout(sessions, session_id)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(settings.session_cookie_name)
    return response


@auth_router.get("/user", response_model=UserOut)
def get_user(user: UserOut = Depends(require_user)):
    return user


# Tasks


@tasks_router.get("", response_model=List[Task])
def list_tasks(
    date_filter: DateFilter = Query(DateFilter.ALL, alias="filter"),
    storage: Storage = Depends(get_storage),
):
    return services.list_tasks(storage, date_filter)


@tasks_router.post("", response_model=Task, status_code=status.HTTP_201_CREATED)
def create_task(payload: TaskCreate, storage: Storage = Depends(get_storage)):
    return services.create_task(storage, payload)


@tasks_router.get("/{task_id}", response_model=Task)
def get_task(task_id: int, storage: Storage = Depends(get_storage)):
    return services.get_task(storage, task_id)


@tasks_router.patch("/{task_id}", response_model=Task)
def update_task(
    task_id: int, payload: TaskUpdate, storage: Storage = Depends(get_storage)
):
    return services.update_task(storage, task_id, payload)


@tasks_router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(task_id: int, storage: Storage = Depends(get_storage)):
    services.delete_task(storage, task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Expenses


@expenses_router.get("", response_model=List[Expense])
def list_expenses(
    date_filter: DateFilter = Query(DateFilter.ALL, alias="filter"),
    storage: Storage = Depends(get_storage),
):
    return services.list_expenses(storage, date_filter)


@expenses_router.post("", response_model=Expense, status_code=status.HTTP_201_CREATED)
def create_expense(payload: ExpenseCreate, storage: Storage = Depends(get_storage)):
    return services.create_expense(storage, payload)


@expenses_router.get("/{expense_id}", response_model=Expense)
def get_expense(expense_id: int, storage: Storage = Depends(get_storage)):
    return services.get_expense(storage, expense_id)


@expenses_router.patch("/{expense_id}", response_model=Expense)
def update_expense(
    expense_id: int, payload: ExpenseUpdate, storage: Storage = Depends(get_storage)
):
    return services.update_expense(storage, expense_id, payload)


@expenses_router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_expense(expense_id: int, storage: Storage = Depends(get_storage)):
    services.delete_expense(storage, expense_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Reports


@reports_router.get("/dashboard", response_model=DashboardSummary)
def get_dashboard(storage: Storage = Depends(get_storage)):
    """Today's task progress plus daily, weekly and monthly spending."""
    return services.dashboard_summary(storage)


@reports_router.get("/expenses", response_model=ExpenseReport)
def get_expense_report(
    date_filter: DateFilter = Query(DateFilter.ALL, alias="filter"),
    storage: Storage = Depends(get_storage),
):
    """Category totals and percentages plus this week's daily totals."""
    return services.expense_report(storage, date_filter)


def create_app(
    storage: Optional[Storage] = None, sessions: Optional[SessionStore] = None
) -> FastAPI:
    """Build the application around the given storage and session store."""
    app = FastAPI(title=settings.api_title)
    app.state.limiter = limiter
    app.state.storage = storage if storage is not None else build_storage(settings)
    app.state.sessions = (
        sessions if sessions is not None else MemorySessionStore(settings.session_max_age)
    )
    if settings.seed_demo_user:
        auth.seed_demo_user(app.state.storage)

    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(TrackerError, handle_tracker_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.middleware("http")(log_requests)

    for router in (auth_router, tasks_router, expenses_router, reports_router):
        app.include_router(router)
    return app


app = create_app()
