from pydantic_settings import BaseSettings
from pydantic import ConfigDict, field_validator
from pathlib import Path
from typing import Literal
from functools import lru_cache
from ..validators.config_validators import to_uppercase, to_lowercase, ensure_at_least_one


class Settings(BaseSettings):
    """
    Application settings loaded from environment.
    """

    # Environment
    ENV: Literal["development", "testing", "staging", "production"] = "development"
    SERVICE_NAME: str = "resilience"

    # Database configuration (only needed by callers that use db.session)
    DATABASE_URL: str | None = None
    SQLALCHEMY_ECHO: bool = False

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "json"
    LOG_TO_STDOUT: bool = True
    LOG_DIR: Path = Path("/var/log/resilience")
    LOG_MAX_BYTES: int = 10_000_000  # 10 MB
    LOG_BACKUP_COUNT: int = 5
    ENABLE_SQL_LOGGING: bool = False

    # Generic retry policy defaults (seconds)
    RETRY_MAX_RETRIES: int = 3
    RETRY_BASE_DELAY: float = 1.0
    RETRY_MAX_DELAY: float = 30.0
    RETRY_BACKOFF_MULTIPLIER: float = 2.0

    # Transaction retry defaults
    TX_MAX_RETRIES: int = 3
    TX_TIMEOUT: float = 5.0

    # --- Derived settings ---
    @property
    def is_production(self) -> bool:
        """
        True when running with ENV=production.

        Production mode switches log output to JSON-only error streams, hides stack
        traces from serialized errors and enables the monitoring hand-off of the
        failure logger.
        """
        return self.ENV == "production"

    # --- Validators ---
    @field_validator("LOG_LEVEL", mode="before")
    def normalize_log_level(cls, v: str | None) -> str | None:
        """
        Normalize the LOG_LEVEL environment variable value to uppercase.

        This validator runs before any other validation (mode="before"), so values such as
        `LOG_LEVEL=debug` are accepted and stored as "DEBUG", the spelling the logging
        module expects.
        """
        return to_uppercase(v)

    @field_validator("LOG_FORMAT", mode="before")
    def normalize_log_format(cls, v: str | None) -> str | None:
        """
        Normalize the LOG_FORMAT environment variable value to lowercase.
        """
        return to_lowercase(v)

    @field_validator("RETRY_BACKOFF_MULTIPLIER")
    def check_backoff_multiplier(cls, v: float) -> float:
        return ensure_at_least_one(v)

    # --- ConfigDict settings ---
    model_config = ConfigDict(
        # Load environment variables from a .env file next to the package root.
        env_file=str(Path(__file__).parent.parent / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


# get_settings() takes no arguments and always returns the same settings from the environment,
# so caching it with @lru_cache() avoids re-reading the environment on every call.
@lru_cache()
def get_settings() -> Settings:
    return Settings()
