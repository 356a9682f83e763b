"""Subscription registration and management.

Registration validates everything that can be checked up front so that
configuration errors never reach dispatch: the URL (scheme, and in
production HTTPS-only with no localhost or private-network targets), the
event patterns against the catalog, the secret length, and optionally
the endpoint's reachability and its answer to a verification challenge.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import TYPE_CHECKING, Any

from pydantic import HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from hookshot.config import settings
from hookshot.exceptions import NotFoundError, ValidationError
from hookshot.models import (
    AuditEntry,
    DeliveryLogEntry,
    Event,
    Subscription,
    TestDeliveryResult,
    is_valid_pattern,
)

from .signing import generate_secret

if TYPE_CHECKING:
    from hookshot.storage import WebhookStorage

    from .executor import DeliveryExecutor
    from .secrets import SecretManager

logger = logging.getLogger(__name__)

_URL_ADAPTER = TypeAdapter(HttpUrl)

_LOCAL_HOSTNAMES = {"localhost", "localhost.localdomain"}


def validate_url(url: str, production: bool | None = None) -> HttpUrl:
    """Validate a subscription endpoint URL.

    Args:
        url: URL to validate.
        production: Apply production rules. Defaults to settings.is_production.

    Returns:
        The parsed URL.

    Raises:
        ValidationError: If the URL is malformed or not allowed.
    """
    production = settings.is_production if production is None else production

    try:
        parsed = _URL_ADAPTER.validate_python(url)
    except PydanticValidationError as e:
        raise ValidationError("url", f"invalid URL: {url}") from e

    if production and parsed.scheme != "https":
        raise ValidationError("url", "must use HTTPS in production")

    if production and is_private_host(parsed.host or ""):
        raise ValidationError("url", "localhost and private network addresses are not allowed")

    return parsed


def is_private_host(host: str) -> bool:
    """Check whether a host names the local machine or a private network."""
    host = host.strip("[]").lower()
    if host in _LOCAL_HOSTNAMES or host.endswith(".localhost"):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
    )


def validate_events(events: list[str]) -> list[str]:
    """Validate subscription patterns against the event catalog.

    Args:
        events: Patterns to validate.

    Returns:
        The patterns, de-duplicated in their original order.

    Raises:
        ValidationError: If the list is empty or holds an unknown pattern.
    """
    if not events:
        raise ValidationError("events", "at least one event type is required")

    invalid = [e for e in events if not is_valid_pattern(e)]
    if invalid:
        raise ValidationError("events", f"unknown event type(s): {', '.join(invalid)}")

    return list(dict.fromkeys(events))


class WebhookRegistry:
    """Registers, updates and deletes subscriptions; sends test deliveries.

    Example:
        ```python
        registry = WebhookRegistry(storage, executor, secret_manager)

        subscription = await registry.register(
            tenant_id="ws_123",
            url="https://example.com/hooks",
            events=["contact.*", "deal.won"],
            created_by="user_42",
        )
        result = await registry.test_delivery(subscription.id, "ws_123")
        ```
    """

    def __init__(
        self,
        storage: WebhookStorage,
        executor: DeliveryExecutor,
        secrets: SecretManager,
    ) -> None:
        """Initialize the registry.

        Args:
            storage: WebhookStorage instance.
            executor: Executor used for reachability checks, challenges and test deliveries.
            secrets: SecretManager owning secret history.
        """
        self._storage = storage
        self._executor = executor
        self._secrets = secrets

    async def register(
        self,
        tenant_id: str,
        url: str,
        events: list[str],
        created_by: str,
        description: str | None = None,
        secret: str | None = None,
        check_reachable: bool = True,
        verify: bool = False,
    ) -> Subscription:
        """Register a new subscription.

        Args:
            tenant_id: Owning workspace.
            url: Endpoint to deliver to.
            events: Event patterns to subscribe to.
            created_by: Actor registering the subscription.
            description: Optional human-readable description.
            secret: Signing secret; generated when omitted.
            check_reachable: Probe the URL with a HEAD request first.
            verify: Require the endpoint to answer a verification challenge.

        Returns:
            The stored Subscription.

        Raises:
            ValidationError: If any input is invalid or the endpoint fails
                the reachability probe or verification challenge.
        """
        parsed = validate_url(url)
        patterns = validate_events(events)

        if secret is not None and len(secret) < settings.min_secret_length:
            raise ValidationError(
                "secret", f"must be at least {settings.min_secret_length} characters"
            )
        secret = secret or generate_secret()

        if check_reachable and not await self._executor.probe_url(str(parsed)):
            raise ValidationError("url", "endpoint is not reachable")

        if verify and not await self._executor.send_verification_challenge(
            str(parsed), secret, tenant_id
        ):
            raise ValidationError("url", "endpoint failed the verification challenge")

        subscription = Subscription(
            tenant_id=tenant_id,
            url=parsed,
            events=patterns,
            secret=secret,
            description=description,
            created_by=created_by,
        )
        await self._storage.store_subscription(subscription)
        await self._secrets.create_initial_secret(subscription, created_by=created_by)
        await self._storage.log_audit(
            AuditEntry.for_created(
                subscription_id=subscription.id,
                tenant_id=tenant_id,
                actor=created_by,
                url=str(parsed),
                events=patterns,
            )
        )

        logger.info(
            "Registered subscription %s for tenant %s (%s)",
            subscription.id,
            tenant_id,
            ", ".join(patterns),
        )
        return subscription

    async def get(self, subscription_id: str, tenant_id: str) -> Subscription:
        """Get a tenant's subscription.

        Raises:
            NotFoundError: If it does not exist in this tenant.
        """
        subscription = await self._storage.get_subscription(subscription_id, tenant_id)
        if subscription is None:
            raise NotFoundError("subscription", subscription_id)
        return subscription

    async def list_subscriptions(
        self, tenant_id: str, active_only: bool = False
    ) -> list[Subscription]:
        """List a tenant's subscriptions, oldest first."""
        return await self._storage.list_subscriptions(tenant_id, active_only=active_only)

    async def update(
        self,
        subscription_id: str,
        tenant_id: str,
        updated_by: str,
        url: str | None = None,
        events: list[str] | None = None,
        description: str | None = None,
        is_active: bool | None = None,
        check_reachable: bool = True,
    ) -> Subscription:
        """Update a subscription's configuration.

        Re-activating a subscription clears its consecutive-failure counter
        and last error so it is not immediately disabled again.

        Args:
            subscription_id: Subscription to update.
            tenant_id: Owning workspace.
            updated_by: Actor performing the update.
            url: New endpoint URL.
            events: New event patterns.
            description: New description.
            is_active: Activate or deactivate.
            check_reachable: Probe a changed URL with a HEAD request first.

        Returns:
            The updated Subscription.

        Raises:
            NotFoundError: If it does not exist in this tenant.
            ValidationError: If any new value is invalid.
        """
        current = await self.get(subscription_id, tenant_id)

        new_url = validate_url(url) if url is not None else None
        new_events = validate_events(events) if events is not None else None
        if (
            new_url is not None
            and str(new_url) != str(current.url)
            and check_reachable
            and not await self._executor.probe_url(str(new_url))
        ):
            raise ValidationError("url", "endpoint is not reachable")

        def _apply(subscription: Subscription) -> dict[str, Any]:
            changes: dict[str, Any] = {}
            if new_url is not None and str(new_url) != str(subscription.url):
                changes["url"] = {"old": str(subscription.url), "new": str(new_url)}
                subscription.url = new_url
            if new_events is not None and new_events != subscription.events:
                changes["events"] = {"old": subscription.events, "new": new_events}
                subscription.events = new_events
            if description is not None and description != subscription.description:
                changes["description"] = {"old": subscription.description, "new": description}
                subscription.description = description
            if is_active is not None and is_active != subscription.is_active:
                changes["is_active"] = {"old": subscription.is_active, "new": is_active}
                subscription.is_active = is_active
                if is_active:
                    subscription.failed_attempts = 0
                    subscription.last_error = None
            return changes

        updated, changes = await self._storage.modify_subscription(subscription_id, _apply)
        if updated is None:
            raise NotFoundError("subscription", subscription_id)

        if changes:
            await self._storage.log_audit(
                AuditEntry.for_updated(
                    subscription_id=subscription_id,
                    tenant_id=tenant_id,
                    actor=updated_by,
                    changes=changes,
                )
            )
            logger.info("Updated subscription %s: %s", subscription_id, ", ".join(changes))
        return updated

    async def delete(self, subscription_id: str, tenant_id: str, deleted_by: str) -> bool:
        """Delete a subscription with its ledger entries and secrets.

        Args:
            subscription_id: Subscription to delete.
            tenant_id: Owning workspace.
            deleted_by: Actor performing the deletion.

        Returns:
            True if deleted, False if it did not exist in this tenant.
        """
        subscription = await self._storage.get_subscription(subscription_id, tenant_id)
        if subscription is None:
            return False

        removed = await self._storage.delete_subscription_cascade(subscription_id)
        if removed is None:
            return False
        deliveries, secrets = removed
        await self._storage.log_audit(
            AuditEntry.for_deleted(
                subscription_id=subscription_id,
                tenant_id=tenant_id,
                actor=deleted_by,
                deliveries_removed=deliveries,
            )
        )

        logger.info(
            "Deleted subscription %s (%d deliveries, %d secrets)",
            subscription_id,
            deliveries,
            secrets,
        )
        return True

    async def get_delivery_logs(
        self,
        subscription_id: str,
        tenant_id: str,
        limit: int = 50,
        offset: int = 0,
        success: bool | None = None,
    ) -> list[DeliveryLogEntry]:
        """Get a tenant subscription's ledger entries, newest first.

        Raises:
            NotFoundError: If the subscription does not exist in this tenant.
        """
        await self.get(subscription_id, tenant_id)
        return await self._storage.get_delivery_logs(
            subscription_id, limit=limit, offset=offset, success=success
        )

    async def test_delivery(self, subscription_id: str, tenant_id: str) -> TestDeliveryResult:
        """Send a ``webhook.test`` event to a subscription once.

        The attempt is recorded in the ledger but does not affect the
        subscription's health counters. Inactive subscriptions can be tested.

        Returns:
            Raw status code, response time and error for operator debugging.

        Raises:
            NotFoundError: If the subscription does not exist in this tenant.
        """
        subscription = await self.get(subscription_id, tenant_id)
        event = Event(
            type="webhook.test",
            tenant_id=tenant_id,
            data={
                "message": "This is a test webhook delivery",
                "subscription_id": subscription.id,
            },
            source=settings.event_source,
        )

        result = await self._executor.deliver(str(subscription.url), event, subscription.secret)
        entry = DeliveryLogEntry.from_result(
            result,
            subscription_id=subscription.id,
            tenant_id=tenant_id,
            event_id=event.id,
            event_type=event.type,
            payload=event.data,
            source=event.source,
            event_timestamp=event.timestamp,
        )
        await self._storage.log_delivery(entry)

        return TestDeliveryResult(
            success=result.success,
            status_code=result.status_code,
            response_time_ms=result.response_time_ms,
            error=result.error,
            log_id=entry.id,
        )
