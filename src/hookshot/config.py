"""Configuration management for Hookshot."""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Hookshot configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the HOOKSHOT_ prefix. For example:
        HOOKSHOT_QDRANT_URL=http://localhost:6333
        HOOKSHOT_MAX_RETRIES=5

    Security Notes:
        - In production (HOOKSHOT_ENV=production), subscriptions must use HTTPS
        - In production, localhost and private network targets are rejected
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="hookshot",
        description="Prefix for Qdrant collection names",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format: json for production, text for development",
    )

    # Wire protocol
    product_name: str = Field(
        default="Hookshot",
        description="Product name used in the User-Agent header",
    )
    event_source: str = Field(
        default="crm",
        description="Default source tag attached to dispatched events",
    )

    # Delivery
    delivery_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=300.0,
        description="Per-attempt HTTP timeout for webhook deliveries",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Delivery attempts per event and subscription",
    )
    retry_delays: list[float] = Field(
        default_factory=lambda: [1.0, 5.0, 15.0],
        description="Backoff delays (seconds) slept after each failed attempt",
    )

    # Health
    max_failed_attempts: int = Field(
        default=10,
        ge=1,
        description="Consecutive failed events before a subscription is auto-disabled",
    )
    unhealthy_failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures at which a subscription stops counting as healthy",
    )
    healthy_success_rate: float = Field(
        default=80.0,
        ge=0.0,
        le=100.0,
        description="Success rate (percent) a subscription must exceed to be healthy",
    )
    health_window_days: int = Field(
        default=30,
        ge=1,
        description="Trailing window (days) used for success rates and statistics",
    )

    # Retention and replay
    log_retention_days: int = Field(
        default=30,
        ge=1,
        description="Days to keep delivery log entries",
    )
    replay_max_age_days: int = Field(
        default=30,
        ge=1,
        description="Maximum age (days) of a delivery that can still be replayed",
    )

    # Secrets
    secret_grace_period_hours: int = Field(
        default=24,
        ge=0,
        le=24 * 30,
        description="Hours a rotated-out secret stays valid for verification",
    )
    min_secret_length: int = Field(
        default=8,
        ge=1,
        description="Minimum length of a caller-supplied signing secret",
    )

    # Registration
    url_check_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Timeout for the registration-time reachability probe",
    )
    verification_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Timeout for the verification challenge request",
    )

    # Maintenance
    disable_check_window_hours: int = Field(
        default=24,
        ge=1,
        description="Trailing window (hours) for the scheduled failed-subscription check",
    )
    disable_check_min_failures: int = Field(
        default=10,
        ge=1,
        description="Failures with zero successes in the window that disable a subscription",
    )
    cleanup_interval_seconds: float = Field(
        default=86400.0,
        gt=0.0,
        description="Interval between ledger and secret cleanup runs",
    )
    disable_check_interval_seconds: float = Field(
        default=1800.0,
        gt=0.0,
        description="Interval between failed-subscription checks",
    )

    @model_validator(mode="after")
    def validate_retry_schedule(self) -> "Settings":
        """Validate the backoff delays.

        A delay is slept after each failed attempt except the last one.
        Attempts beyond the end of the schedule reuse its last delay.
        """
        if any(delay < 0 for delay in self.retry_delays):
            raise ValueError("retry_delays must not contain negative values.")
        return self

    @model_validator(mode="after")
    def validate_health_thresholds(self) -> "Settings":
        """Validate the unhealthy threshold trips before auto-disable."""
        if self.unhealthy_failure_threshold > self.max_failed_attempts:
            raise ValueError(
                f"unhealthy_failure_threshold ({self.unhealthy_failure_threshold}) must not exceed "
                f"max_failed_attempts ({self.max_failed_attempts})."
            )
        return self

    @property
    def is_production(self) -> bool:
        """Whether production-only safety checks apply."""
        return self.env == "production"

    @property
    def user_agent(self) -> str:
        """User-Agent header sent with every delivery."""
        return f"{self.product_name}-Webhook/1.0"

    model_config = {
        "env_prefix": "HOOKSHOT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }


# Global settings instance
settings = Settings()
