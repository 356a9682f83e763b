"""Subscription storage operations for Hookshot.

Provides methods to store, retrieve, and update webhook subscriptions,
including the serialized counter updates applied after each delivery.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from qdrant_client import models

from .base import match
from .retry import qdrant_retry

if TYPE_CHECKING:
    from hookshot.models import Subscription


class SubscriptionMixin:
    """Mixin providing subscription operations for WebhookStorage.

    This mixin expects the following attributes/methods from the base class:
    - _upsert(kind, record_id, record)
    - _retrieve(kind, record_id) -> dict | None
    - _scroll_all(kind, filter) -> list[dict]
    - _payload_to_model(payload, model_class)
    - _subscription_lock(subscription_id) -> asyncio.Lock
    - client: AsyncQdrantClient
    """

    _upsert: Any
    _retrieve: Any
    _scroll_all: Any
    _payload_to_model: Any
    _subscription_lock: Any
    _subscription_locks: Any
    _collection_name: Any
    _key_to_point_id: Any
    delete_deliveries_for_subscription: Any
    delete_secrets_for_subscription: Any
    client: Any

    @qdrant_retry
    async def store_subscription(self, subscription: Subscription) -> str:
        """Store a subscription.

        Args:
            subscription: Subscription to store.

        Returns:
            The subscription ID.
        """
        await self._upsert("subscriptions", subscription.id, subscription)
        return subscription.id

    @qdrant_retry
    async def get_subscription(
        self,
        subscription_id: str,
        tenant_id: str | None = None,
    ) -> Subscription | None:
        """Get a subscription by ID.

        Args:
            subscription_id: ID of the subscription.
            tenant_id: If given, the subscription must belong to this tenant.

        Returns:
            Subscription or None if not found.
        """
        from hookshot.models import Subscription

        payload = await self._retrieve("subscriptions", subscription_id)
        if payload is None:
            return None

        subscription: Subscription = self._payload_to_model(payload, Subscription)
        if tenant_id is not None and subscription.tenant_id != tenant_id:
            return None
        return subscription

    @qdrant_retry
    async def list_subscriptions(
        self,
        tenant_id: str,
        active_only: bool = False,
    ) -> list[Subscription]:
        """List subscriptions for a tenant, oldest first.

        Args:
            tenant_id: Tenant to list subscriptions for.
            active_only: If True, only return active subscriptions.

        Returns:
            List of Subscription.
        """
        from hookshot.models import Subscription

        conditions = [match("tenant_id", tenant_id)]
        if active_only:
            conditions.append(match("is_active", True))

        payloads = await self._scroll_all("subscriptions", models.Filter(must=conditions))
        subscriptions = [self._payload_to_model(p, Subscription) for p in payloads]
        subscriptions.sort(key=lambda s: s.created_at)
        return subscriptions

    async def get_subscriptions_for_event(
        self,
        tenant_id: str,
        event_type: str,
    ) -> list[Subscription]:
        """Get active subscriptions of a tenant whose patterns match an event type.

        Args:
            tenant_id: Tenant the event belongs to.
            event_type: Event type to match.

        Returns:
            List of matching, active Subscription.
        """
        subscriptions = await self.list_subscriptions(tenant_id, active_only=True)
        return [s for s in subscriptions if s.subscribes_to(event_type)]

    async def modify_subscription(
        self,
        subscription_id: str,
        mutate: Callable[[Subscription], Any],
    ) -> tuple[Subscription | None, Any]:
        """Apply a read-modify-write change to one subscription.

        The load, mutation and write run under the subscription's lock, so
        concurrent modifications of the same subscription (two deliveries
        finishing together, or a delivery and an operator edit) never lose
        updates within this process.

        Args:
            subscription_id: Subscription to modify.
            mutate: Callback that mutates the loaded subscription in place.

        Returns:
            Tuple of (updated subscription or None if missing, callback result).
        """
        async with self._subscription_lock(subscription_id):
            subscription = await self.get_subscription(subscription_id)
            if subscription is None:
                return None, None

            outcome = mutate(subscription)
            subscription.updated_at = datetime.now(UTC)
            await self.store_subscription(subscription)
            return subscription, outcome

    async def apply_delivery_outcome(
        self,
        subscription_id: str,
        success: bool,
        max_failed_attempts: int,
        error: str | None = None,
    ) -> tuple[Subscription | None, bool]:
        """Atomically apply one terminal delivery outcome to the counters.

        Args:
            subscription_id: Subscription the delivery went to.
            success: Whether the delivery succeeded.
            max_failed_attempts: Consecutive failures that force deactivation.
            error: Failure reason.

        Returns:
            Tuple of (updated subscription or None, whether it was auto-disabled).
        """
        subscription, disabled = await self.modify_subscription(
            subscription_id,
            lambda s: s.apply_outcome(success, max_failed_attempts, error=error),
        )
        return subscription, bool(disabled)

    async def delete_subscription(self, subscription_id: str) -> bool:
        """Delete a subscription record.

        Waits for any in-flight modification of the subscription, so a
        concurrent counter update cannot write the record back afterwards.

        Args:
            subscription_id: ID of the subscription to delete.

        Returns:
            True if the subscription existed.
        """
        async with self._subscription_lock(subscription_id):
            deleted: bool = await self._delete_subscription_point(subscription_id)
        self._subscription_locks.pop(subscription_id, None)
        return deleted

    async def delete_subscription_cascade(self, subscription_id: str) -> tuple[int, int] | None:
        """Delete a subscription together with its ledger entries and secrets.

        The record and everything hanging off it are removed under the
        subscription's lock. Ledger writes made through
        ``log_delivery_if_subscribed`` wait for the cascade and are then
        dropped, so none are left behind.

        Args:
            subscription_id: ID of the subscription to delete.

        Returns:
            Tuple of (ledger entries removed, secret rows removed), or None
            if the subscription did not exist.
        """
        async with self._subscription_lock(subscription_id):
            if not await self._delete_subscription_point(subscription_id):
                return None
            deliveries: int = await self.delete_deliveries_for_subscription(subscription_id)
            secrets: int = await self.delete_secrets_for_subscription(subscription_id)
        self._subscription_locks.pop(subscription_id, None)
        return deliveries, secrets

    @qdrant_retry
    async def _delete_subscription_point(self, subscription_id: str) -> bool:
        existing = await self._retrieve("subscriptions", subscription_id)
        if existing is None:
            return False

        await self.client.delete(
            collection_name=self._collection_name("subscriptions"),
            points_selector=models.PointIdsList(points=[self._key_to_point_id(subscription_id)]),
        )
        return True
