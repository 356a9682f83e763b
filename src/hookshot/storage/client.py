"""Qdrant storage client for Hookshot.

This module provides the main WebhookStorage class that combines
all storage operations through mixins.

Example:
    ```python
    from hookshot.storage import WebhookStorage

    async with WebhookStorage() as storage:
        await storage.store_subscription(subscription)
        logs = await storage.get_delivery_logs(subscription.id, limit=20)
    ```
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .audit import AuditMixin
from .base import COLLECTION_NAMES, StorageBase
from .ledger import LedgerMixin
from .retry import qdrant_retry
from .secrets import SecretMixin
from .subscriptions import SubscriptionMixin

logger = logging.getLogger(__name__)


class StorageStats(BaseModel):
    """Record counts per collection."""

    model_config = ConfigDict(extra="forbid")

    subscriptions: int = Field(default=0, ge=0, description="Stored subscriptions")
    secrets: int = Field(default=0, ge=0, description="Stored secret rows")
    deliveries: int = Field(default=0, ge=0, description="Ledger entries")
    audit: int = Field(default=0, ge=0, description="Audit entries")


class WebhookStorage(SubscriptionMixin, SecretMixin, LedgerMixin, AuditMixin, StorageBase):
    """Async Qdrant storage client for Hookshot.

    Handles collection management and persistence for every record kind.
    Uses the async Qdrant client for non-blocking I/O.

    This class combines functionality from multiple mixins:
    - SubscriptionMixin: store/get/list/modify/delete subscriptions
    - SecretMixin: secret history and expired-secret cleanup
    - LedgerMixin: delivery log writes, queries and retention cleanup
    - AuditMixin: log_audit, get_audit_log

    Attributes:
        client: Async Qdrant client instance.
    """

    async def __aenter__(self) -> WebhookStorage:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    @qdrant_retry
    async def get_storage_stats(self) -> StorageStats:
        """Count the records held in each collection."""
        counts: dict[str, int] = {}
        for kind in COLLECTION_NAMES:
            result = await self.client.count(
                collection_name=self._collection_name(kind),
                exact=True,
            )
            counts[kind] = int(result.count)
        logger.debug("Storage stats: %s", counts)
        return StorageStats(**counts)


__all__ = ["StorageStats", "WebhookStorage"]
