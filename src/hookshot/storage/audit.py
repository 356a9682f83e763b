"""Audit logging operations for Hookshot storage.

Provides methods to log and query subscription audit entries.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from qdrant_client import models

from .base import match
from .retry import qdrant_retry

if TYPE_CHECKING:
    from hookshot.models import AuditAction, AuditEntry


class AuditMixin:
    """Mixin providing audit operations for WebhookStorage.

    This mixin expects the following attributes/methods from the base class:
    - _upsert(kind, record_id, record)
    - _scroll_all(kind, filter) -> list[dict]
    - _payload_to_model(payload, model_class)
    """

    _upsert: Any
    _scroll_all: Any
    _payload_to_model: Any

    @qdrant_retry
    async def log_audit(self, entry: AuditEntry) -> str:
        """Log an audit entry.

        Args:
            entry: AuditEntry to log.

        Returns:
            The audit entry ID.
        """
        await self._upsert("audit", entry.id, entry)
        return entry.id

    @qdrant_retry
    async def get_audit_log(
        self,
        tenant_id: str | None = None,
        subscription_id: str | None = None,
        action: AuditAction | None = None,
        limit: int = 100,
    ) -> list[AuditEntry]:
        """Get audit log entries.

        Args:
            tenant_id: Optional tenant filter.
            subscription_id: Optional subscription filter.
            action: Optional action filter (created, replayed, etc.)
            limit: Maximum entries to return.

        Returns:
            List of AuditEntry sorted by timestamp (newest first).
        """
        from hookshot.models import AuditEntry

        conditions: list[models.FieldCondition] = []
        if tenant_id is not None:
            conditions.append(match("tenant_id", tenant_id))
        if subscription_id is not None:
            conditions.append(match("subscription_id", subscription_id))
        if action is not None:
            conditions.append(match("action", action))

        payloads = await self._scroll_all(
            "audit",
            models.Filter(must=conditions) if conditions else None,
        )
        entries = [self._payload_to_model(p, AuditEntry) for p in payloads]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]
