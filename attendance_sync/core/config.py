import re
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when required settings are missing or malformed."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(f"Missing or invalid configuration: {', '.join(missing)}")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application settings
    APP_NAME: str = "Attendance Sync"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    APP_URL: str = ""

    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./attendance_sync.db"
    DATABASE_ECHO: bool = False

    # Security settings
    CRON_SECRET: str = ""
    ENCRYPTION_KEY: str = ""  # 32 bytes, hex encoded
    JWT_SECRET_KEY: str = ""
    JWT_ALGORITHM: str = "HS256"
    SESSION_COOKIE_NAME: str = "session"
    REDACTION_SALT: str = "dev-salt-only"

    # Attendance provider
    PROVIDER_BASE_URL: str = ""
    PROVIDER_COURSES_TIMEOUT: float = 8.0
    PROVIDER_ATTENDANCE_TIMEOUT: float = 15.0

    # Batch sync
    SYNC_BATCH_SIZE: int = 10
    SYNC_CONCURRENCY_LIMIT: int = 2
    SYNC_CHUNK_DELAY_SECONDS: float = 1.0

    # Circuit breaker for the attendance provider
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 3
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: float = 60.0
    CIRCUIT_BREAKER_HALF_OPEN_MAX_REQUESTS: int = 2
    CIRCUIT_BREAKER_TIMEOUT: float = 30.0

    # Email (Brevo)
    BREVO_API_KEY: str = ""
    DEFAULT_FROM_EMAIL: str = ""
    DEFAULT_FROM_NAME: str = "Attendance Sync"

    @field_validator("PROVIDER_BASE_URL")
    @classmethod
    def normalize_provider_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        return f"{v}/" if v else ""

    @field_validator("SYNC_BATCH_SIZE", "SYNC_CONCURRENCY_LIMIT")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    def missing_required(self) -> List[str]:
        """Names of settings the sync job cannot run without."""
        missing = []
        if not self.APP_URL:
            missing.append("APP_URL")
        if not self.CRON_SECRET:
            missing.append("CRON_SECRET")
        if not re.fullmatch(r"[0-9a-fA-F]{64}", self.ENCRYPTION_KEY or ""):
            missing.append("ENCRYPTION_KEY")
        if not self.PROVIDER_BASE_URL:
            missing.append("PROVIDER_BASE_URL")
        return missing

    def validate_required(self) -> None:
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(missing)


settings = Settings()
