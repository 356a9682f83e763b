"""Webhook subscription and signing-secret models.

A Subscription is a tenant's registration of an external endpoint. Its
signing secrets live in an append-only history of SubscriptionSecret rows:
at most one is active for new signatures, while rotated-out secrets stay
valid for verification until their grace period expires.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from .base import generate_id
from .events import pattern_matches

# Displayed in place of the full secret
SECRET_DISPLAY_PREFIX = "whsec_"


class Subscription(BaseModel):
    """A registered webhook endpoint and its delivery health counters.

    Attributes:
        id: Unique identifier for this subscription.
        tenant_id: Workspace that owns the subscription.
        url: Endpoint receiving deliveries.
        events: Subscribed patterns: exact types, ``category.*`` or ``*``.
        secret: Current signing secret (mirrors the active secret row).
        is_active: Whether deliveries are attempted.
        description: Optional human-readable description.
        delivery_attempts: Terminal delivery outcomes recorded so far.
        failed_attempts: Consecutive failed deliveries, reset on success.
        last_delivery_at: When the last delivery finished.
        last_success_at: When the last successful delivery finished.
        last_failure_at: When the last failed delivery finished.
        last_error: Reason for the most recent failure or auto-disable.
        created_by: Actor who registered the subscription.
        created_at: When the subscription was registered.
        updated_at: When the subscription was last modified.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    tenant_id: str = Field(description="Workspace that owns this subscription")
    url: HttpUrl = Field(description="Endpoint to receive events")
    events: list[str] = Field(min_length=1, description="Subscribed event patterns")
    secret: str = Field(description="Current HMAC-SHA256 signing secret")
    is_active: bool = Field(default=True, description="Whether deliveries are attempted")
    description: str | None = Field(default=None, description="Human-readable description")

    delivery_attempts: int = Field(default=0, ge=0, description="Terminal outcomes recorded")
    failed_attempts: int = Field(default=0, ge=0, description="Consecutive failed deliveries")
    last_delivery_at: datetime | None = Field(default=None, description="Last delivery")
    last_success_at: datetime | None = Field(default=None, description="Last success")
    last_failure_at: datetime | None = Field(default=None, description="Last failure")
    last_error: str | None = Field(default=None, description="Most recent failure reason")

    created_by: str | None = Field(default=None, description="Actor who registered it")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the subscription was registered",
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the subscription was last modified",
    )

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this subscription should receive the given event type."""
        return self.is_active and any(pattern_matches(p, event_type) for p in self.events)

    def apply_outcome(
        self,
        success: bool,
        max_failed_attempts: int,
        error: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Apply one terminal delivery outcome to the health counters.

        Args:
            success: Whether the delivery succeeded.
            max_failed_attempts: Consecutive failures that force deactivation.
            error: Failure reason, recorded in ``last_error``.
            now: Timestamp to record (defaults to the current time).

        Returns:
            True if this outcome auto-disabled the subscription.
        """
        now = now or datetime.now(UTC)
        self.delivery_attempts += 1
        self.last_delivery_at = now
        self.updated_at = now

        if success:
            self.last_success_at = now
            self.failed_attempts = 0
            self.last_error = None
            return False

        self.failed_attempts += 1
        self.last_failure_at = now
        self.last_error = error

        if self.is_active and self.failed_attempts >= max_failed_attempts:
            self.is_active = False
            self.last_error = (
                f"auto-disabled after {self.failed_attempts} consecutive failures"
            )
            return True
        return False

    def public_dict(self) -> dict[str, Any]:
        """Serialize for display with the secret masked."""
        data = self.model_dump(mode="json")
        data["secret"] = mask_secret(self.secret)
        return data


class SubscriptionSecret(BaseModel):
    """One row of a subscription's signing-secret history.

    Attributes:
        id: Unique identifier for this secret.
        subscription_id: Owning subscription.
        secret: The shared HMAC key.
        is_active: Whether this secret signs new deliveries.
        expires_at: When the secret stops verifying (None for no expiry).
        created_by: Actor who created or rotated in this secret.
        created_at: When the secret was created.
        revoked_at: When the secret was explicitly revoked.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("sec"))
    subscription_id: str = Field(description="Owning subscription")
    secret: str = Field(description="Shared HMAC key")
    is_active: bool = Field(default=True, description="Whether this secret signs deliveries")
    expires_at: datetime | None = Field(default=None, description="Verification expiry")
    created_by: str | None = Field(default=None, description="Actor who created it")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the secret was created",
    )
    revoked_at: datetime | None = Field(default=None, description="When it was revoked")

    @property
    def prefix(self) -> str:
        """Short, non-sensitive identifier shown to operators."""
        return mask_secret(self.secret)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the expiry has passed."""
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.now(UTC))

    def can_sign(self, now: datetime | None = None) -> bool:
        """Check whether this secret may sign new deliveries."""
        return self.is_active and not self.is_expired(now)

    def can_verify(self, now: datetime | None = None) -> bool:
        """Check whether signatures made with this secret are still accepted.

        Active secrets verify until they expire; rotated-out secrets verify
        until the end of their grace period; revoked secrets never verify.
        """
        if self.revoked_at is not None:
            return False
        return not self.is_expired(now)


def mask_secret(secret: str) -> str:
    """Return the display form of a secret: ``whsec_`` plus its first 8 chars."""
    return f"{SECRET_DISPLAY_PREFIX}{secret[:8]}"


__all__ = [
    "SECRET_DISPLAY_PREFIX",
    "Subscription",
    "SubscriptionSecret",
    "mask_secret",
]
