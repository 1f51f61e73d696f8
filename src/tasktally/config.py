from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    api_title: str = Field("TaskTally API")
    storage_backend: str = Field("memory", description="memory or sql")
    database_url: str = Field("sqlite:///tasktally.db")
    session_cookie_name: str = Field("tasktally_session")
    session_max_age: int = Field(60 * 60 * 24)
    session_cookie_secure: bool = Field(False)
    bcrypt_rounds: int = Field(12)
    seed_demo_user: bool = Field(False)
    rate_limit_auth: str = Field("5/minute")


settings = Settings()
