"""Hookshot: outbound webhooks for a multi-tenant CRM.

Delivers signed domain events to the HTTP endpoints tenants subscribe,
with scheduled retries, a durable delivery ledger, health tracking with
auto-disable, secret rotation and manual replay.

Quick Start:
    from hookshot.service import WebhookService

    async with WebhookService.create() as hooks:
        # Register an endpoint
        subscription = await hooks.registry.register(
            tenant_id="ws_123",
            url="https://example.com/hooks",
            events=["contact.*", "deal.won"],
            created_by="user_42",
        )

        # Deliver an event to every matching subscription
        entries = await hooks.emit("ws_123", "deal.won", {"deal_id": "deal_9"})

        # Re-send a logged delivery
        await hooks.replays.replay(entries[0].id, replayed_by="user_42")

Core Types:
    - Subscription: A tenant's endpoint, patterns and health counters
    - Event: Immutable domain event handed to the dispatcher
    - DeliveryLogEntry: Ledger record of a delivery outcome
    - SubscriptionSecret: Signing-secret history row
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    DeliveryError,
    HookshotError,
    NotFoundError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    logger,
    unbind_context,
)

# Models
from .models import (
    AuditEntry,
    DeliveryLogEntry,
    DeliveryResult,
    Event,
    Subscription,
    SubscriptionSecret,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "HookshotError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "DeliveryError",
    "ConfigurationError",
    # Logging
    "configure_logging",
    "get_logger",
    "logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    # Models
    "AuditEntry",
    "DeliveryLogEntry",
    "DeliveryResult",
    "Event",
    "Subscription",
    "SubscriptionSecret",
]
