"""Data models for Hookshot.

Core Types:
    - Subscription: A tenant's registered endpoint plus health counters
    - SubscriptionSecret: Append-only signing-secret history
    - Event: Immutable domain event handed to the dispatcher
    - DeliveryLogEntry: Durable ledger record of a delivery outcome
    - AuditEntry: Subscription change log

Supporting Types:
    - EventType, ALL_EVENT_TYPES: The closed event catalog
    - DeliveryResult, AttemptRecord: Delivery outcomes
    - Replay*, DeliveryStats, HealthReport, ...: Operation results
"""

from .audit import AuditAction, AuditEntry
from .base import generate_id
from .delivery import MAX_RESPONSE_BODY, AttemptRecord, DeliveryLogEntry, DeliveryResult
from .events import (
    ALL_EVENT_TYPES,
    ENVELOPE_VERSION,
    EVENT_CATEGORIES,
    SYSTEM_EVENT_TYPES,
    WILDCARD,
    Event,
    EventType,
    SystemEventType,
    is_valid_pattern,
    pattern_matches,
)
from .results import (
    BulkReplayResult,
    BulkReplaySummary,
    DeliveryStats,
    HealthReport,
    MaintenanceResult,
    ReplayCheck,
    ReplayerCount,
    ReplayRejection,
    ReplayResult,
    ReplayStats,
    SecretRotationResult,
    SecretStats,
    TestDeliveryResult,
)
from .subscription import SECRET_DISPLAY_PREFIX, Subscription, SubscriptionSecret, mask_secret

__all__ = [
    "ALL_EVENT_TYPES",
    "AttemptRecord",
    "AuditAction",
    "AuditEntry",
    "BulkReplayResult",
    "BulkReplaySummary",
    "DeliveryLogEntry",
    "DeliveryResult",
    "DeliveryStats",
    "ENVELOPE_VERSION",
    "EVENT_CATEGORIES",
    "Event",
    "EventType",
    "HealthReport",
    "MAX_RESPONSE_BODY",
    "MaintenanceResult",
    "ReplayCheck",
    "ReplayRejection",
    "ReplayResult",
    "ReplayStats",
    "ReplayerCount",
    "SECRET_DISPLAY_PREFIX",
    "SYSTEM_EVENT_TYPES",
    "SecretRotationResult",
    "SecretStats",
    "Subscription",
    "SubscriptionSecret",
    "SystemEventType",
    "TestDeliveryResult",
    "WILDCARD",
    "generate_id",
    "is_valid_pattern",
    "mask_secret",
    "pattern_matches",
]
