"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.config.business_constants import (
    DEFAULT_PACKAGE_VALIDITY_DAYS,
    OverflowPolicy,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Redis (for Dramatiq)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str = "logs/engine.log"

    # Approval unit of work
    approval_lock_wait_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Max wait for the package request row lock",
    )
    approval_execution_budget_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Wall-clock budget for one approval unit of work",
    )
    approval_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for transient lock/timeout failures",
    )
    approval_retry_delay_base: float = Field(
        default=0.5,
        ge=0,
        description="Base delay in seconds for exponential retry backoff",
    )

    # Commission engine
    max_referral_depth: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Hard cap on ancestor chain traversal depth",
    )
    package_validity_days: int = Field(
        default=DEFAULT_PACKAGE_VALIDITY_DAYS,
        gt=0,
        description="Days a granted package stays valid",
    )
    commission_overflow_policy: OverflowPolicy = Field(
        default=OverflowPolicy.FORFEIT,
        description="What happens to unpaid schedule depths when the chain is short",
    )

    # Reconciliation
    reconciliation_batch_size: int = Field(
        default=500,
        gt=0,
        description="Failed requests fetched per page during reconciliation",
    )
    reconciliation_interval_minutes: int = Field(
        default=15,
        gt=0,
        description="Interval between scheduled reconciliation runs",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode='after')
    def validate_budgets(self) -> 'Settings':
        """Lock wait must fit inside the execution budget."""
        if self.approval_lock_wait_seconds >= self.approval_execution_budget_seconds:
            raise ValueError(
                'APPROVAL_LOCK_WAIT_SECONDS must be smaller than '
                'APPROVAL_EXECUTION_BUDGET_SECONDS.'
            )
        return self

    @model_validator(mode='after')
    def validate_production(self) -> 'Settings':
        """Validate production-specific requirements."""
        if self.environment == 'production':
            if self.debug:
                raise ValueError(
                    'DEBUG must be False in production environment. '
                    'Set DEBUG=false in your .env file.'
                )
            if self.database_url.startswith('sqlite'):
                logger.warning(
                    'DATABASE_URL points to SQLite in production. '
                    'Row-level locking is not available on SQLite.'
                )
        return self

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith(
            ('postgresql://', 'postgresql+asyncpg://', 'sqlite+aiosqlite://')
        ):
            raise ValueError(
                'DATABASE_URL must start with postgresql://, '
                'postgresql+asyncpg:// or sqlite+aiosqlite://'
            )
        if v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    @property
    def is_postgres(self) -> bool:
        """True when the configured backend supports row locks and timeouts."""
        return self.database_url.startswith('postgresql')


# Global settings instance
settings = Settings()
