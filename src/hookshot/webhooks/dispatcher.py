"""Event fan-out to matching webhook subscriptions.

The dispatcher is the entry point for domain code: after committing a
state change, a caller hands it (tenant_id, event). Every active
subscription of that tenant whose patterns match the event type receives
the event concurrently. One subscriber failing, timing out or raising
never affects the others, and nothing raised inside a delivery reaches
the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from hookshot.config import settings
from hookshot.logging import bind_context, unbind_context
from hookshot.models import DeliveryLogEntry, Event

if TYPE_CHECKING:
    from hookshot.models import DeliveryResult, Subscription
    from hookshot.storage import WebhookStorage

    from .health import HealthMonitor
    from .retry import RetryCoordinator

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """Dispatches events to subscribed endpoints.

    Handles:
    - Finding active subscriptions matching an event type (wildcards included)
    - Delivering to all of them concurrently with scheduled retries
    - Writing one ledger entry per delivery
    - Updating each subscription's health counters

    Example:
        ```python
        dispatcher = WebhookDispatcher(storage, coordinator, health)

        # Wait for every delivery to settle
        await dispatcher.dispatch("ws_123", event)

        # Or fire and forget from a request handler
        dispatcher.dispatch_in_background("ws_123", event)
        ```
    """

    def __init__(
        self,
        storage: WebhookStorage,
        coordinator: RetryCoordinator,
        health: HealthMonitor,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            storage: WebhookStorage for subscriptions and the ledger.
            coordinator: RetryCoordinator performing deliveries.
            health: HealthMonitor receiving terminal outcomes.
        """
        self._storage = storage
        self._coordinator = coordinator
        self._health = health
        self._background: set[asyncio.Task[Any]] = set()

    async def dispatch(self, tenant_id: str, event: Event) -> list[DeliveryLogEntry]:
        """Deliver an event to every matching subscription of a tenant.

        Returns once every delivery has settled. Never raises: failures of
        individual subscribers, and errors loading subscriptions, are logged.

        Args:
            tenant_id: Tenant whose subscriptions should receive the event.
            event: Event to deliver.

        Returns:
            Ledger entries written, one per matching subscription whose
            outcome could be recorded.
        """
        bind_context(tenant_id=tenant_id, event_id=event.id)
        try:
            return await self._dispatch(tenant_id, event)
        except Exception:
            logger.exception("Dispatch of %s failed for tenant %s", event.type, tenant_id)
            return []
        finally:
            unbind_context("tenant_id", "event_id")

    async def _dispatch(self, tenant_id: str, event: Event) -> list[DeliveryLogEntry]:
        subscriptions = await self._storage.get_subscriptions_for_event(tenant_id, event.type)

        if not subscriptions:
            logger.debug("No subscriptions for event %s in tenant %s", event.type, tenant_id)
            return []

        results = await asyncio.gather(
            *(self._deliver_to_subscription(s, event) for s in subscriptions),
            return_exceptions=True,
        )

        entries: list[DeliveryLogEntry] = []
        for subscription, result in zip(subscriptions, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Delivery of %s to subscription %s failed: %s",
                    event.type,
                    subscription.id,
                    result,
                )
            elif result is not None:
                entries.append(result)

        logger.info(
            "Dispatched %s to %d subscription(s), %d succeeded",
            event.type,
            len(subscriptions),
            sum(1 for e in entries if e.success),
        )
        return entries

    async def _deliver_to_subscription(
        self,
        subscription: Subscription,
        event: Event,
    ) -> DeliveryLogEntry | None:
        """Deliver to one subscription, then record the terminal outcome.

        Args:
            subscription: Target subscription.
            event: Event to deliver.

        Returns:
            The ledger entry, or None if it could not be written.
        """
        result = await self._coordinator.deliver_with_retry(subscription, event)
        entry = await self._log_outcome(subscription, event, result)

        try:
            await self._health.record_outcome(
                subscription.id,
                success=result.success,
                response_time_ms=result.response_time_ms,
                error=result.error,
            )
        except Exception:
            logger.exception(
                "Failed to update health counters for subscription %s", subscription.id
            )

        return entry

    async def _log_outcome(
        self,
        subscription: Subscription,
        event: Event,
        result: DeliveryResult,
    ) -> DeliveryLogEntry | None:
        entry = DeliveryLogEntry.from_result(
            result,
            subscription_id=subscription.id,
            tenant_id=subscription.tenant_id,
            event_id=event.id,
            event_type=event.type,
            payload=event.data,
            source=event.source,
            event_timestamp=event.timestamp,
        )
        try:
            written = await self._storage.log_delivery_if_subscribed(entry)
        except Exception:
            # Best effort: the delivery already happened; keep going
            logger.exception(
                "Failed to write ledger entry %s for subscription %s (success=%s)",
                entry.id,
                subscription.id,
                entry.success,
            )
            return None
        if not written:
            logger.info(
                "Subscription %s was deleted during delivery; dropped ledger entry %s",
                subscription.id,
                entry.id,
            )
            return None
        return entry

    def dispatch_in_background(self, tenant_id: str, event: Event) -> asyncio.Task[Any]:
        """Dispatch without waiting for deliveries to settle.

        The task is tracked until done so it is not garbage collected;
        :meth:`aclose` waits for outstanding tasks.

        Args:
            tenant_id: Tenant whose subscriptions should receive the event.
            event: Event to deliver.

        Returns:
            The background task.
        """
        task = asyncio.create_task(self.dispatch(tenant_id, event), name=f"dispatch-{event.id}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    @property
    def pending(self) -> int:
        """Number of background dispatches still running."""
        return len(self._background)

    async def aclose(self) -> None:
        """Wait for every background dispatch to finish."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)


async def dispatch_webhook_event(
    dispatcher: WebhookDispatcher,
    tenant_id: str,
    event_type: str,
    data: dict[str, Any] | None = None,
    source: str | None = None,
) -> list[DeliveryLogEntry]:
    """Convenience function to create and dispatch an event.

    Args:
        dispatcher: WebhookDispatcher instance.
        tenant_id: Tenant the event belongs to.
        event_type: Catalog event type, e.g. "contact.created".
        data: Event-specific payload data.
        source: Source tag. Defaults to settings.event_source.

    Returns:
        Ledger entries written.
    """
    event = Event(
        type=event_type,  # type: ignore[arg-type]
        tenant_id=tenant_id,
        data=data or {},
        source=source or settings.event_source,
    )
    return await dispatcher.dispatch(tenant_id, event)
