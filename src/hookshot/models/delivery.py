"""Delivery results and the delivery ledger entry model."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .base import generate_id

# Response bodies are truncated before being stored
MAX_RESPONSE_BODY = 1000


class AttemptRecord(BaseModel):
    """Outcome of one HTTP attempt within a delivery."""

    model_config = ConfigDict(extra="forbid")

    attempt: int = Field(ge=1, description="1-indexed attempt number")
    success: bool
    status_code: int | None = None
    response_time_ms: int = Field(default=0, ge=0)
    error: str | None = None
    attempted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class DeliveryResult(BaseModel):
    """Result of a delivery: a single attempt, or the terminal outcome of a retried one.

    Attributes:
        success: True for a 2xx/3xx response.
        status_code: HTTP status, None when no response was received.
        response_time_ms: Wall-clock duration of the (last) attempt.
        error: Failure description (timeout, network error, HTTP status).
        response_body: Response body, truncated.
        attempt: Attempt number that produced this result.
        attempts: Every attempt made, in order.
    """

    model_config = ConfigDict(extra="forbid")

    success: bool
    status_code: int | None = None
    response_time_ms: int = Field(default=0, ge=0)
    error: str | None = None
    response_body: str | None = None
    attempt: int = Field(default=1, ge=1)
    attempts: list[AttemptRecord] = Field(default_factory=list)

    def to_attempt_record(self) -> AttemptRecord:
        """Summarize this result as one attempt record."""
        return AttemptRecord(
            attempt=self.attempt,
            success=self.success,
            status_code=self.status_code,
            response_time_ms=self.response_time_ms,
            error=self.error,
        )


class DeliveryLogEntry(BaseModel):
    """Durable ledger record of one delivery's terminal outcome.

    One entry is written per delivery (event x subscription). It carries the
    attempt count actually used plus the per-attempt history, so intermediate
    failures survive without a success ever being logged as a failure too.

    Replays are entries of their own; ``replayed_from`` always points at the
    root of the chain (the first, non-replay delivery).

    Attributes:
        id: Unique identifier for this entry.
        subscription_id: Subscription the event was delivered to.
        tenant_id: Owning workspace.
        event_id: Id of the delivered event (the idempotency key).
        event_type: Type of the delivered event.
        payload: Snapshot of the event data that was delivered.
        source: Source tag of the delivered event.
        event_timestamp: Timestamp of the delivered event.
        success: Whether the delivery ultimately succeeded.
        status_code: HTTP status of the final attempt.
        response_time_ms: Duration of the final attempt.
        error: Failure description of the final attempt.
        response_body: Response body of the final attempt (truncated).
        attempt: Number of attempts used.
        attempts: Per-attempt history.
        created_at: When the delivery completed.
        replayed_from: Root entry id, for replays.
        replayed_by: Actor who triggered the replay.
        replayed_at: When the replay was triggered.
        original_event_id: Event id of the root delivery, for replays.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    subscription_id: str = Field(description="Subscription delivered to")
    tenant_id: str = Field(description="Owning workspace")
    event_id: str = Field(description="Delivered event id")
    event_type: str = Field(description="Delivered event type")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event data snapshot")
    source: str | None = Field(default=None, description="Event source tag")
    event_timestamp: datetime | None = Field(default=None, description="Event timestamp")

    success: bool = Field(description="Whether the delivery succeeded")
    status_code: int | None = Field(default=None, description="HTTP status of the last attempt")
    response_time_ms: int = Field(default=0, ge=0, description="Last attempt duration")
    error: str | None = Field(default=None, description="Failure description")
    response_body: str | None = Field(
        default=None,
        description="HTTP response body (truncated to 1000 chars)",
    )
    attempt: int = Field(default=1, ge=1, description="Attempts used")
    attempts: list[AttemptRecord] = Field(default_factory=list, description="Attempt history")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the delivery completed",
    )

    replayed_from: str | None = Field(default=None, description="Root entry of the replay chain")
    replayed_by: str | None = Field(default=None, description="Actor who replayed")
    replayed_at: datetime | None = Field(default=None, description="When it was replayed")
    original_event_id: str | None = Field(default=None, description="Root event id")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_replay(self) -> bool:
        """Whether this entry records a replay."""
        return self.replayed_from is not None

    @classmethod
    def from_result(
        cls,
        result: DeliveryResult,
        *,
        subscription_id: str,
        tenant_id: str,
        event_id: str,
        event_type: str,
        payload: dict[str, Any],
        source: str | None = None,
        event_timestamp: datetime | None = None,
        **lineage: Any,
    ) -> "DeliveryLogEntry":
        """Create a ledger entry from a delivery result."""
        body = result.response_body
        return cls(
            subscription_id=subscription_id,
            tenant_id=tenant_id,
            event_id=event_id,
            event_type=event_type,
            payload=payload,
            source=source,
            event_timestamp=event_timestamp,
            success=result.success,
            status_code=result.status_code,
            response_time_ms=result.response_time_ms,
            error=result.error,
            response_body=body[:MAX_RESPONSE_BODY] if body else None,
            attempt=result.attempt,
            attempts=list(result.attempts) or [result.to_attempt_record()],
            **lineage,
        )


__all__ = [
    "AttemptRecord",
    "DeliveryLogEntry",
    "DeliveryResult",
    "MAX_RESPONSE_BODY",
]
