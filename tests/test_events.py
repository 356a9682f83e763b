"""Tests for the event catalog, pattern matching and the Event model."""

import pytest
from pydantic import ValidationError

from hookshot.models import (
    ALL_EVENT_TYPES,
    ENVELOPE_VERSION,
    EVENT_CATEGORIES,
    SYSTEM_EVENT_TYPES,
    Event,
    Subscription,
    is_valid_pattern,
    pattern_matches,
)


class TestCatalog:
    """Tests for the closed event catalog."""

    def test_catalog_size(self):
        assert len(ALL_EVENT_TYPES) == 26
        assert len(set(ALL_EVENT_TYPES)) == 26

    def test_categories(self):
        assert EVENT_CATEGORIES == (
            "contact",
            "transaction",
            "property",
            "campaign",
            "pipeline",
            "user",
            "appointment",
            "deal",
        )

    def test_appointment_and_deal_types(self):
        assert "appointment.completed" in ALL_EVENT_TYPES
        assert "appointment.cancelled" in ALL_EVENT_TYPES
        assert "deal.won" in ALL_EVENT_TYPES
        assert "deal.lost" in ALL_EVENT_TYPES
        assert "deal.deleted" not in ALL_EVENT_TYPES

    def test_system_types_not_in_catalog(self):
        for event_type in SYSTEM_EVENT_TYPES:
            assert event_type not in ALL_EVENT_TYPES


class TestPatterns:
    """Tests for subscription pattern validation and matching."""

    @pytest.mark.parametrize("pattern", ["*", "contact.created", "deal.won", "contact.*"])
    def test_valid_patterns(self, pattern):
        assert is_valid_pattern(pattern)

    @pytest.mark.parametrize(
        "pattern",
        ["", "contact", "contacts.*", "contact.exploded", "webhook.test", "*.created", "deal.**"],
    )
    def test_invalid_patterns(self, pattern):
        assert not is_valid_pattern(pattern)

    def test_category_wildcard(self):
        """contact.* should match contact events only."""
        assert pattern_matches("contact.*", "contact.created")
        assert pattern_matches("contact.*", "contact.updated")
        assert not pattern_matches("contact.*", "transaction.created")

    def test_category_wildcard_respects_boundary(self):
        """The category prefix must end at the dot."""
        assert not pattern_matches("contact.*", "contacts.created")

    def test_global_wildcard(self):
        for event_type in ALL_EVENT_TYPES:
            assert pattern_matches("*", event_type)

    def test_exact(self):
        assert pattern_matches("deal.won", "deal.won")
        assert not pattern_matches("deal.won", "deal.lost")


class TestEvent:
    """Tests for the Event model."""

    def test_defaults(self):
        event = Event(type="contact.created", tenant_id="ws_1")
        assert event.id.startswith("evt_")
        assert event.data == {}
        assert event.source == "crm"
        assert event.timestamp.tzinfo is not None

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            Event(type="contact.exploded", tenant_id="ws_1")

    def test_system_type_allowed(self):
        event = Event(type="webhook.test", tenant_id="ws_1")
        assert event.type == "webhook.test"

    def test_immutable(self):
        event = Event(type="contact.created", tenant_id="ws_1")
        with pytest.raises(ValidationError):
            event.tenant_id = "ws_2"  # type: ignore[misc]

    def test_envelope(self):
        event = Event(
            type="deal.won",
            tenant_id="ws_9",
            data={"deal_id": "d_1", "amount": 5000},
            source="pipeline-service",
        )
        envelope = event.to_envelope()
        assert envelope == {
            "id": event.id,
            "type": "deal.won",
            "workspaceId": "ws_9",
            "data": {"deal_id": "d_1", "amount": 5000},
            "timestamp": event.timestamp.isoformat(),
            "source": "pipeline-service",
            "version": ENVELOPE_VERSION,
        }


class TestSubscribesTo:
    """Tests for Subscription.subscribes_to()."""

    def _subscription(self, events, **kwargs):
        return Subscription(
            tenant_id="ws_1",
            url="https://example.com/hook",
            events=events,
            secret="secret123",
            **kwargs,
        )

    def test_any_pattern_matches(self):
        subscription = self._subscription(["deal.won", "contact.*"])
        assert subscription.subscribes_to("contact.deleted")
        assert subscription.subscribes_to("deal.won")
        assert not subscription.subscribes_to("deal.lost")

    def test_inactive_never_matches(self):
        subscription = self._subscription(["*"], is_active=False)
        assert not subscription.subscribes_to("contact.created")

    def test_events_required(self):
        with pytest.raises(ValidationError):
            self._subscription([])
