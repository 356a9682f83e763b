"""Webhook event catalog and the immutable Event model.

The catalog is a closed set of event-type strings. Subscriptions may only
reference catalog types (or wildcard patterns over catalog categories),
and events can only be constructed with a catalog type or one of the
system types used internally for test and verification deliveries.
"""

from datetime import UTC, datetime
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id

# Envelope format version sent with every delivery
ENVELOPE_VERSION = "1.0"

# Domain event types that can trigger webhooks
EventType = Literal[
    "contact.created",
    "contact.updated",
    "contact.deleted",
    "transaction.created",
    "transaction.updated",
    "transaction.deleted",
    "property.created",
    "property.updated",
    "property.deleted",
    "campaign.created",
    "campaign.updated",
    "campaign.deleted",
    "pipeline.created",
    "pipeline.updated",
    "pipeline.deleted",
    "user.created",
    "user.updated",
    "user.deleted",
    "appointment.created",
    "appointment.updated",
    "appointment.completed",
    "appointment.cancelled",
    "deal.created",
    "deal.updated",
    "deal.won",
    "deal.lost",
]

# Event types produced by Hookshot itself; never subscribable
SystemEventType = Literal[
    "webhook.test",
    "webhook.verification",
]

ALL_EVENT_TYPES: tuple[str, ...] = get_args(EventType)
SYSTEM_EVENT_TYPES: tuple[str, ...] = get_args(SystemEventType)

# Categories in catalog order: "contact", "transaction", ...
EVENT_CATEGORIES: tuple[str, ...] = tuple(
    dict.fromkeys(event_type.split(".", 1)[0] for event_type in ALL_EVENT_TYPES)
)

WILDCARD = "*"


def is_valid_pattern(pattern: str) -> bool:
    """Check whether a subscription pattern refers to the catalog.

    Valid patterns are the global wildcard ``*``, an exact catalog event
    type, or ``<category>.*`` for a catalog category.
    """
    if pattern == WILDCARD or pattern in ALL_EVENT_TYPES:
        return True
    if pattern.endswith(".*"):
        return pattern[:-2] in EVENT_CATEGORIES
    return False


def pattern_matches(pattern: str, event_type: str) -> bool:
    """Check whether a single subscription pattern matches an event type.

    ``contact.*`` matches ``contact.created`` but not ``contacts.created``:
    the prefix must end at a category boundary.
    """
    if pattern == WILDCARD or pattern == event_type:
        return True
    if pattern.endswith(".*"):
        return event_type.startswith(pattern[:-1])
    return False


class Event(BaseModel):
    """An immutable domain event handed to the dispatcher.

    Attributes:
        id: Globally unique event id; doubles as the delivery idempotency key.
        type: Dot-namespaced event type, e.g. ``contact.created``.
        tenant_id: Workspace the event belongs to.
        data: Arbitrary JSON payload.
        timestamp: When the event occurred.
        source: Tag naming the producer of the event.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("evt"))
    type: EventType | SystemEventType = Field(description="Event type")
    tenant_id: str = Field(description="Workspace the event belongs to")
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific payload")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the event occurred",
    )
    source: str = Field(default="crm", description="Producer of the event")

    @property
    def timestamp_iso(self) -> str:
        """ISO 8601 timestamp used in both the envelope and the timestamp header."""
        return self.timestamp.isoformat()

    def to_envelope(self) -> dict[str, Any]:
        """Build the wire envelope delivered to subscribers."""
        return {
            "id": self.id,
            "type": self.type,
            "workspaceId": self.tenant_id,
            "data": self.data,
            "timestamp": self.timestamp_iso,
            "source": self.source,
            "version": ENVELOPE_VERSION,
        }


__all__ = [
    "ALL_EVENT_TYPES",
    "ENVELOPE_VERSION",
    "EVENT_CATEGORIES",
    "Event",
    "EventType",
    "SYSTEM_EVENT_TYPES",
    "SystemEventType",
    "WILDCARD",
    "is_valid_pattern",
    "pattern_matches",
]
