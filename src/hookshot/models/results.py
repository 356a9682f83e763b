"""Result models returned by Hookshot operations."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .subscription import SubscriptionSecret


class ReplayRejection(str, Enum):
    """Why a delivery cannot be replayed, in the order the checks run."""

    LOG_NOT_FOUND = "log_not_found"
    SUBSCRIPTION_INACTIVE = "subscription_inactive"
    NO_ACTIVE_SECRET = "no_active_secret"
    TOO_OLD_TO_REPLAY = "too_old_to_replay"


class ReplayCheck(BaseModel):
    """Pre-flight answer to "can this delivery be replayed?"."""

    model_config = ConfigDict(extra="forbid")

    can_replay: bool
    reason: ReplayRejection | None = None


class ReplayResult(BaseModel):
    """Outcome of one replay.

    ``reason`` is set when a precondition failed and no HTTP call was made;
    ``error`` is set when the replay was delivered but failed.
    """

    model_config = ConfigDict(extra="forbid")

    log_id: str = Field(description="Ledger entry that was replayed")
    success: bool
    new_log_id: str | None = None
    status_code: int | None = None
    response_time_ms: int | None = None
    error: str | None = None
    reason: ReplayRejection | None = None


class BulkReplaySummary(BaseModel):
    """Counts for a bulk replay."""

    model_config = ConfigDict(extra="forbid")

    total: int = Field(default=0, ge=0, description="Ids requested")
    processed: int = Field(default=0, ge=0, description="Ids attempted")
    successful: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0, description="Ids not attempted after a stop")


class BulkReplayResult(BaseModel):
    """Per-id results plus summary for a bulk replay."""

    model_config = ConfigDict(extra="forbid")

    results: list[ReplayResult] = Field(default_factory=list)
    summary: BulkReplaySummary = Field(default_factory=BulkReplaySummary)


class ReplayerCount(BaseModel):
    """How many replays one actor triggered."""

    model_config = ConfigDict(extra="forbid")

    replayed_by: str
    count: int = Field(ge=0)


class ReplayStats(BaseModel):
    """Replay activity for a tenant over a trailing window."""

    model_config = ConfigDict(extra="forbid")

    total_replays: int = Field(default=0, ge=0)
    successful_replays: int = Field(default=0, ge=0)
    failed_replays: int = Field(default=0, ge=0)
    unique_originals: int = Field(default=0, ge=0, description="Distinct root entries replayed")
    top_replayers: list[ReplayerCount] = Field(default_factory=list)


class DeliveryStats(BaseModel):
    """Ledger-derived statistics for one subscription.

    Rates are percentages. ``success_rate`` is None when the window
    holds no deliveries.
    """

    model_config = ConfigDict(extra="forbid")

    subscription_id: str
    total_deliveries: int = Field(default=0, ge=0)
    successful_deliveries: int = Field(default=0, ge=0)
    failed_deliveries: int = Field(default=0, ge=0)
    success_rate: float | None = Field(default=None, ge=0.0, le=100.0)
    average_response_time_ms: float | None = Field(default=None, ge=0.0)
    last_delivery_at: datetime | None = None
    failed_attempts: int = Field(default=0, ge=0, description="Consecutive failures")
    is_active: bool = True
    is_healthy: bool = True


class HealthReport(BaseModel):
    """Health overview of every subscription in a tenant."""

    model_config = ConfigDict(extra="forbid")

    tenant_id: str
    total_subscriptions: int = Field(default=0, ge=0)
    active_subscriptions: int = Field(default=0, ge=0)
    healthy_subscriptions: int = Field(default=0, ge=0)
    failing_subscriptions: int = Field(
        default=0, ge=0, description="Active subscriptions with consecutive failures"
    )
    total_deliveries: int = Field(default=0, ge=0)
    success_rate: float | None = Field(default=None, ge=0.0, le=100.0)
    average_response_time_ms: float | None = Field(default=None, ge=0.0)
    subscriptions: list[DeliveryStats] = Field(default_factory=list)


class SecretRotationResult(BaseModel):
    """Outcome of a secret rotation."""

    model_config = ConfigDict(extra="forbid")

    new_secret: SubscriptionSecret
    previous_secret_ids: list[str] = Field(default_factory=list)
    grace_period_ends: datetime | None = None


class SecretStats(BaseModel):
    """Secret history counts for one subscription."""

    model_config = ConfigDict(extra="forbid")

    total_secrets: int = Field(default=0, ge=0)
    active_secrets: int = Field(default=0, ge=0)
    verifying_secrets: int = Field(default=0, ge=0, description="Secrets that still verify")
    expired_secrets: int = Field(default=0, ge=0)
    last_rotated_at: datetime | None = None


class TestDeliveryResult(BaseModel):
    """Raw outcome of an operator-triggered test delivery."""

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(extra="forbid")

    success: bool
    status_code: int | None = None
    response_time_ms: int = Field(default=0, ge=0)
    error: str | None = None
    log_id: str | None = None


class MaintenanceResult(BaseModel):
    """Outcome of one scheduled maintenance run."""

    model_config = ConfigDict(extra="forbid")

    task: str
    started_at: datetime
    duration_ms: int = Field(default=0, ge=0)
    entries_removed: int = Field(default=0, ge=0)
    secrets_removed: int = Field(default=0, ge=0)
    disabled_subscriptions: list[str] = Field(default_factory=list)


__all__ = [
    "BulkReplayResult",
    "BulkReplaySummary",
    "DeliveryStats",
    "HealthReport",
    "MaintenanceResult",
    "ReplayCheck",
    "ReplayRejection",
    "ReplayResult",
    "ReplayStats",
    "ReplayerCount",
    "SecretRotationResult",
    "SecretStats",
    "TestDeliveryResult",
]
