"""Outbound webhook delivery for Hookshot.

Provides HMAC-signed delivery with a fixed retry schedule, subscription
health tracking, secret rotation and manual replay.

Example:
    ```python
    from hookshot.webhooks import (
        DeliveryExecutor,
        HealthMonitor,
        RetryCoordinator,
        WebhookDispatcher,
        dispatch_webhook_event,
    )

    executor = DeliveryExecutor()
    dispatcher = WebhookDispatcher(
        storage, RetryCoordinator(executor), HealthMonitor(storage)
    )

    # Fire-and-forget from request handlers
    dispatcher.dispatch_in_background("ws_123", event)

    # Or await every delivery
    await dispatch_webhook_event(
        dispatcher,
        tenant_id="ws_123",
        event_type="deal.won",
        data={"deal_id": "deal_9", "amount": 12000},
    )
    ```
"""

from .dispatcher import WebhookDispatcher, dispatch_webhook_event
from .executor import (
    DELIVERY_HEADER,
    EVENT_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    WORKSPACE_HEADER,
    DeliveryExecutor,
)
from .health import HealthMonitor, summarize_deliveries
from .registry import WebhookRegistry, is_private_host, validate_events, validate_url
from .replay import (
    ORIGINAL_EVENT_HEADER,
    REPLAY_HEADER,
    REPLAYED_AT_HEADER,
    REPLAYED_BY_HEADER,
    ReplayEngine,
)
from .retry import RetryCoordinator
from .secrets import SecretManager
from .signing import (
    SIGNATURE_PREFIX,
    canonical_json,
    generate_challenge,
    generate_secret,
    sign,
    signature_header,
    verify_signature,
)

__all__ = [
    "DELIVERY_HEADER",
    "DeliveryExecutor",
    "EVENT_HEADER",
    "HealthMonitor",
    "ORIGINAL_EVENT_HEADER",
    "REPLAYED_AT_HEADER",
    "REPLAYED_BY_HEADER",
    "REPLAY_HEADER",
    "ReplayEngine",
    "RetryCoordinator",
    "SIGNATURE_HEADER",
    "SIGNATURE_PREFIX",
    "SecretManager",
    "TIMESTAMP_HEADER",
    "WORKSPACE_HEADER",
    "WebhookDispatcher",
    "WebhookRegistry",
    "canonical_json",
    "dispatch_webhook_event",
    "generate_challenge",
    "generate_secret",
    "is_private_host",
    "sign",
    "signature_header",
    "summarize_deliveries",
    "validate_events",
    "validate_url",
    "verify_signature",
]
