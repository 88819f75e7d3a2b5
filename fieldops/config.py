"""
Configuration management for the field work coordination service
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "FieldOps Workflow"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./fieldops.db"

    # Photo storage (reports)
    UPLOAD_DIR: str = "uploads"
    MAX_PHOTO_SIZE: int = 10 * 1024 * 1024  # 10 MB

    # Notifications
    NOTIFICATION_LIST_LIMIT: int = 50
    NOTIFICATION_MAX_LIMIT: int = 200
    NOTIFICATION_POLL_INTERVAL_SECONDS: float = 15.0

    # Identifier allocation (T###, R###, DM###, N###...)
    ID_ALLOCATION_RETRIES: int = 5

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()
