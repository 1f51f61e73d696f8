"""Error taxonomy shared by the service, auth and HTTP layers."""


class TrackerError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailed(TrackerError):
    status_code = 400


class NotFound(TrackerError):
    status_code = 404


class NotAuthenticated(TrackerError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class InvalidCredentials(TrackerError):
    status_code = 401

    def __init__(self, message: str = "Invalid username or password") -> None:
        super().__init__(message)


class DuplicateUsername(TrackerError):
    status_code = 409

    def __init__(self, username: str) -> None:
        super().__init__("Username already registered")
        self.username = username


class AlreadyAuthenticated(TrackerError):
    status_code = 400

    def __init__(self, message: str = "Already authenticated") -> None:
        super().__init__(message)


class StorageError(TrackerError):
    status_code = 500
