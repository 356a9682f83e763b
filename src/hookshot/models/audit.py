"""AuditEntry model - subscription change logging for auditability."""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id

AuditAction = Literal[
    "created",
    "updated",
    "deleted",
    "secret_rotated",
    "secret_revoked",
    "replayed",
    "auto_disabled",
]


class AuditEntry(BaseModel):
    """Audit log entry for a change made to a subscription.

    Stored in the hookshot_audit collection. Entries outlive the
    subscription they describe; deleting a subscription does not
    delete its audit trail.

    Attributes:
        id: Unique identifier for this audit entry.
        timestamp: When the action happened.
        action: What happened to the subscription.
        subscription_id: Subscription acted upon.
        tenant_id: Owning workspace.
        actor: Who performed the action ("system" for automatic actions).
        changes: Action-specific details.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("aud"))
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the action happened",
    )
    action: AuditAction = Field(description="Action performed on the subscription")
    subscription_id: str = Field(description="Subscription acted upon")
    tenant_id: str = Field(description="Owning workspace")
    actor: str = Field(default="system", description="Who performed the action")
    changes: dict[str, Any] = Field(default_factory=dict, description="Action details")

    @classmethod
    def for_created(
        cls,
        subscription_id: str,
        tenant_id: str,
        actor: str,
        url: str,
        events: list[str],
    ) -> "AuditEntry":
        """Create audit entry for a subscription registration."""
        return cls(
            action="created",
            subscription_id=subscription_id,
            tenant_id=tenant_id,
            actor=actor,
            changes={"url": url, "events": events},
        )

    @classmethod
    def for_updated(
        cls,
        subscription_id: str,
        tenant_id: str,
        actor: str,
        changes: dict[str, Any],
    ) -> "AuditEntry":
        """Create audit entry for a subscription update (field -> {old, new})."""
        return cls(
            action="updated",
            subscription_id=subscription_id,
            tenant_id=tenant_id,
            actor=actor,
            changes=changes,
        )

    @classmethod
    def for_deleted(
        cls,
        subscription_id: str,
        tenant_id: str,
        actor: str,
        deliveries_removed: int,
    ) -> "AuditEntry":
        """Create audit entry for a subscription deletion."""
        return cls(
            action="deleted",
            subscription_id=subscription_id,
            tenant_id=tenant_id,
            actor=actor,
            changes={"deliveries_removed": deliveries_removed},
        )

    @classmethod
    def for_secret_rotated(
        cls,
        subscription_id: str,
        tenant_id: str,
        actor: str,
        new_secret_id: str,
        grace_period_hours: int,
    ) -> "AuditEntry":
        """Create audit entry for a secret rotation."""
        return cls(
            action="secret_rotated",
            subscription_id=subscription_id,
            tenant_id=tenant_id,
            actor=actor,
            changes={"new_secret_id": new_secret_id, "grace_period_hours": grace_period_hours},
        )

    @classmethod
    def for_secret_revoked(
        cls,
        subscription_id: str,
        tenant_id: str,
        actor: str,
        secret_id: str,
    ) -> "AuditEntry":
        """Create audit entry for a secret revocation."""
        return cls(
            action="secret_revoked",
            subscription_id=subscription_id,
            tenant_id=tenant_id,
            actor=actor,
            changes={"secret_id": secret_id},
        )

    @classmethod
    def for_replayed(
        cls,
        subscription_id: str,
        tenant_id: str,
        actor: str,
        original_log_id: str,
        new_log_id: str,
        success: bool,
        custom_payload: bool,
    ) -> "AuditEntry":
        """Create audit entry for a delivery replay."""
        return cls(
            action="replayed",
            subscription_id=subscription_id,
            tenant_id=tenant_id,
            actor=actor,
            changes={
                "original_log_id": original_log_id,
                "new_log_id": new_log_id,
                "success": success,
                "custom_payload": custom_payload,
            },
        )

    @classmethod
    def for_auto_disabled(
        cls,
        subscription_id: str,
        tenant_id: str,
        reason: str,
        failed_attempts: int,
    ) -> "AuditEntry":
        """Create audit entry for an automatic deactivation."""
        return cls(
            action="auto_disabled",
            subscription_id=subscription_id,
            tenant_id=tenant_id,
            changes={"reason": reason, "failed_attempts": failed_attempts},
        )


__all__ = ["AuditAction", "AuditEntry"]
