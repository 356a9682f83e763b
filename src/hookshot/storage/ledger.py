"""Delivery ledger storage operations for Hookshot.

The ledger is append-only: entries are independent inserts and are only
removed by the retention cleanup or a subscription delete cascade.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from qdrant_client import models

from .base import created_between, match
from .retry import qdrant_retry

if TYPE_CHECKING:
    from hookshot.models import DeliveryLogEntry


class LedgerMixin:
    """Mixin providing delivery-ledger operations for WebhookStorage."""

    _upsert: Any
    _retrieve: Any
    _scroll_all: Any
    _delete_where: Any
    _payload_to_model: Any
    _subscription_lock: Any

    def _entries(self, payloads: list[dict[str, Any]]) -> list[DeliveryLogEntry]:
        from hookshot.models import DeliveryLogEntry

        return [self._payload_to_model(p, DeliveryLogEntry) for p in payloads]

    @qdrant_retry
    async def log_delivery(self, entry: DeliveryLogEntry) -> str:
        """Append a delivery ledger entry.

        Args:
            entry: DeliveryLogEntry to store.

        Returns:
            The entry ID.
        """
        await self._upsert("deliveries", entry.id, entry)
        return entry.id

    async def log_delivery_if_subscribed(self, entry: DeliveryLogEntry) -> bool:
        """Append a ledger entry unless its subscription has been deleted.

        Runs under the subscription's lock, so an entry for a delivery that
        was in flight while the subscription was deleted is dropped instead
        of outliving the delete cascade.

        Returns:
            True if the entry was written.
        """
        async with self._subscription_lock(entry.subscription_id):
            if await self._retrieve("subscriptions", entry.subscription_id) is None:
                return False
            await self.log_delivery(entry)
        return True

    @qdrant_retry
    async def get_delivery(self, log_id: str) -> DeliveryLogEntry | None:
        """Get a ledger entry by ID."""
        from hookshot.models import DeliveryLogEntry

        payload = await self._retrieve("deliveries", log_id)
        if payload is None:
            return None
        entry: DeliveryLogEntry = self._payload_to_model(payload, DeliveryLogEntry)
        return entry

    @qdrant_retry
    async def get_delivery_logs(
        self,
        subscription_id: str,
        limit: int = 50,
        offset: int = 0,
        success: bool | None = None,
    ) -> list[DeliveryLogEntry]:
        """Get a subscription's ledger entries, newest first.

        Args:
            subscription_id: Subscription to query.
            limit: Maximum entries to return.
            offset: Entries to skip (for pagination).
            success: If set, only return entries with this outcome.

        Returns:
            List of DeliveryLogEntry.
        """
        conditions = [match("subscription_id", subscription_id)]
        if success is not None:
            conditions.append(match("success", success))

        entries = self._entries(
            await self._scroll_all("deliveries", models.Filter(must=conditions))
        )
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[offset : offset + limit]

    @qdrant_retry
    async def get_deliveries_since(
        self,
        since: datetime,
        subscription_id: str | None = None,
        tenant_id: str | None = None,
        replays_only: bool = False,
    ) -> list[DeliveryLogEntry]:
        """Get ledger entries created at or after a point in time, oldest first.

        Args:
            since: Lower bound on created_at.
            subscription_id: Optional subscription filter.
            tenant_id: Optional tenant filter.
            replays_only: If True, only return replay entries.

        Returns:
            List of DeliveryLogEntry.
        """
        conditions = [created_between(since=since)]
        if subscription_id is not None:
            conditions.append(match("subscription_id", subscription_id))
        if tenant_id is not None:
            conditions.append(match("tenant_id", tenant_id))
        if replays_only:
            conditions.append(match("is_replay", True))

        entries = self._entries(
            await self._scroll_all("deliveries", models.Filter(must=conditions))
        )
        entries.sort(key=lambda e: e.created_at)
        return entries

    @qdrant_retry
    async def get_replays_of(self, root_log_id: str) -> list[DeliveryLogEntry]:
        """Get every replay of a root entry, oldest first."""
        entries = self._entries(
            await self._scroll_all(
                "deliveries",
                models.Filter(must=[match("replayed_from", root_log_id)]),
            )
        )
        entries.sort(key=lambda e: e.created_at)
        return entries

    @qdrant_retry
    async def delete_deliveries_before(self, cutoff: datetime) -> int:
        """Delete ledger entries created before a cutoff.

        Returns:
            Number of entries removed.
        """
        removed: int = await self._delete_where(
            "deliveries",
            models.Filter(must=[created_between(before=cutoff)]),
        )
        return removed

    @qdrant_retry
    async def delete_deliveries_for_subscription(self, subscription_id: str) -> int:
        """Delete every ledger entry of a subscription.

        Returns:
            Number of entries removed.
        """
        removed: int = await self._delete_where(
            "deliveries",
            models.Filter(must=[match("subscription_id", subscription_id)]),
        )
        return removed
