"""Tests for event fan-out through the webhook dispatcher."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import httpx
import pytest
import structlog
from conftest import Router, StubEndpoint

from hookshot.models import Event
from hookshot.storage import WebhookStorage
from hookshot.webhooks import (
    DeliveryExecutor,
    HealthMonitor,
    RetryCoordinator,
    WebhookDispatcher,
    dispatch_webhook_event,
)


def build_dispatcher(storage: WebhookStorage, client: httpx.AsyncClient, sleep):
    executor = DeliveryExecutor(client=client)
    return WebhookDispatcher(
        storage,
        RetryCoordinator(executor, sleep=sleep),
        HealthMonitor(storage),
    )


def contact_created(tenant_id: str = "ws_1") -> Event:
    return Event(
        type="contact.created",
        tenant_id=tenant_id,
        data={"contact_id": "c_1", "name": "Jane Doe"},
    )


class TestDispatchScenarios:
    """End-to-end dispatch against in-memory storage and stub endpoints."""

    async def test_successful_delivery(self, storage, subscribe, fake_sleep):
        """One matching subscription and a 200 endpoint give one successful entry."""
        subscription = await subscribe(events=["contact.created"])
        endpoint = StubEndpoint(200)
        dispatcher = build_dispatcher(storage, endpoint.client(), fake_sleep)
        event = contact_created()

        entries = await dispatcher.dispatch("ws_1", event)

        assert len(entries) == 1
        entry = entries[0]
        assert entry.success
        assert entry.status_code == 200
        assert entry.attempt == 1
        assert entry.event_id == event.id
        assert entry.payload == event.data
        assert endpoint.calls == 1

        logged = await storage.get_delivery_logs(subscription.id)
        assert [e.id for e in logged] == [entry.id]

        updated = await storage.get_subscription(subscription.id)
        assert updated.failed_attempts == 0
        assert updated.delivery_attempts == 1
        assert updated.last_success_at is not None

    async def test_failed_delivery_counts_one_failed_event(self, storage, subscribe, fake_sleep):
        """Three failed attempts add a single failure to the counter."""
        subscription = await subscribe(events=["contact.created"])
        endpoint = StubEndpoint(default=500)
        dispatcher = build_dispatcher(storage, endpoint.client(), fake_sleep)

        entries = await dispatcher.dispatch("ws_1", contact_created())

        assert endpoint.calls == 3
        assert len(entries) == 1
        assert not entries[0].success
        assert entries[0].status_code == 500
        assert entries[0].attempt == 3
        assert len(entries[0].attempts) == 3

        updated = await storage.get_subscription(subscription.id)
        assert updated.failed_attempts == 1
        assert updated.last_error == "HTTP 500: Internal Server Error"

    async def test_no_matching_subscriptions(self, storage, subscribe, fake_sleep):
        """An event nobody subscribes to makes no calls and writes nothing."""
        subscription = await subscribe(events=["contact.*"])
        endpoint = StubEndpoint(200)
        dispatcher = build_dispatcher(storage, endpoint.client(), fake_sleep)

        entries = await dispatcher.dispatch(
            "ws_1", Event(type="deal.lost", tenant_id="ws_1", data={})
        )

        assert entries == []
        assert endpoint.calls == 0
        assert await storage.get_delivery_logs(subscription.id) == []

    async def test_success_after_failures_resets_counter(self, storage, subscribe, fake_sleep):
        subscription = await subscribe(failed_attempts=3)
        endpoint = StubEndpoint(500, 500, 200)
        dispatcher = build_dispatcher(storage, endpoint.client(), fake_sleep)

        entries = await dispatcher.dispatch("ws_1", contact_created())

        assert endpoint.calls == 3
        assert entries[0].success
        assert entries[0].attempt == 3
        updated = await storage.get_subscription(subscription.id)
        assert updated.failed_attempts == 0

    async def test_inactive_subscription_skipped(self, storage, subscribe, fake_sleep):
        await subscribe(is_active=False)
        endpoint = StubEndpoint(200)
        dispatcher = build_dispatcher(storage, endpoint.client(), fake_sleep)

        assert await dispatcher.dispatch("ws_1", contact_created()) == []
        assert endpoint.calls == 0

    async def test_other_tenants_not_delivered(self, storage, subscribe, fake_sleep):
        await subscribe(tenant_id="ws_2")
        endpoint = StubEndpoint(200)
        dispatcher = build_dispatcher(storage, endpoint.client(), fake_sleep)

        assert await dispatcher.dispatch("ws_1", contact_created()) == []
        assert endpoint.calls == 0


class TestAutoDisable:
    """Tests for auto-disable after consecutive failed events."""

    async def test_disabled_after_ten_failed_events(self, storage, subscribe, fake_sleep):
        subscription = await subscribe()
        endpoint = StubEndpoint(default=500)
        dispatcher = build_dispatcher(storage, endpoint.client(), fake_sleep)

        for _ in range(9):
            await dispatcher.dispatch("ws_1", contact_created())
        assert (await storage.get_subscription(subscription.id)).is_active

        await dispatcher.dispatch("ws_1", contact_created())
        updated = await storage.get_subscription(subscription.id)
        assert not updated.is_active
        assert updated.failed_attempts == 10
        assert endpoint.calls == 30

        # No further deliveries once disabled
        assert await dispatcher.dispatch("ws_1", contact_created()) == []
        assert endpoint.calls == 30

        audit = await storage.get_audit_log(subscription_id=subscription.id)
        assert [a.action for a in audit] == ["auto_disabled"]

    async def test_concurrent_outcomes_are_not_lost(self, storage, subscribe, fake_sleep):
        """Two failures finishing together both land on the counter."""
        subscription = await subscribe()
        endpoint = StubEndpoint(default=500)
        dispatcher = build_dispatcher(storage, endpoint.client(), fake_sleep)

        await asyncio.gather(
            dispatcher.dispatch("ws_1", contact_created()),
            dispatcher.dispatch("ws_1", contact_created()),
        )

        updated = await storage.get_subscription(subscription.id)
        assert updated.failed_attempts == 2
        assert updated.delivery_attempts == 2


class TestPatternFanOut:
    """Tests for wildcard routing across several subscriptions."""

    async def test_wildcards(self, storage, subscribe, fake_sleep):
        contacts = StubEndpoint(200)
        everything = StubEndpoint(200)
        transactions = StubEndpoint(200)
        router = Router(
            {
                "contacts.example.com": contacts,
                "all.example.com": everything,
                "tx.example.com": transactions,
            }
        )
        await subscribe(url="https://contacts.example.com/h", events=["contact.*"])
        await subscribe(url="https://all.example.com/h", events=["*"])
        await subscribe(url="https://tx.example.com/h", events=["transaction.created"])
        dispatcher = build_dispatcher(storage, router.client(), fake_sleep)

        for event_type in ("contact.created", "contact.updated"):
            await dispatcher.dispatch("ws_1", Event(type=event_type, tenant_id="ws_1"))
        assert (contacts.calls, everything.calls, transactions.calls) == (2, 2, 0)

        await dispatcher.dispatch("ws_1", Event(type="transaction.created", tenant_id="ws_1"))
        assert (contacts.calls, everything.calls, transactions.calls) == (2, 3, 1)


class TestIsolation:
    """One subscriber never holds up or breaks another."""

    async def test_hung_endpoint_does_not_block_others(self, storage, subscribe, fake_sleep):
        release = asyncio.Event()

        async def hung(request: httpx.Request) -> httpx.Response:
            await release.wait()
            return httpx.Response(504)

        fast_a = StubEndpoint(200)
        fast_b = StubEndpoint(200)
        router = Router(
            {"a.example.com": fast_a, "b.example.com": fast_b, "slow.example.com": hung}
        )
        hung_sub = await subscribe(url="https://slow.example.com/h")
        await subscribe(url="https://a.example.com/h")
        await subscribe(url="https://b.example.com/h")
        dispatcher = build_dispatcher(storage, router.client(), fake_sleep)
        since = datetime.now(UTC) - timedelta(minutes=1)

        task = dispatcher.dispatch_in_background("ws_1", contact_created())

        logged = []
        for _ in range(200):
            logged = await storage.get_deliveries_since(since)
            if len(logged) == 2:
                break
            await asyncio.sleep(0.01)

        assert len(logged) == 2
        assert all(e.success for e in logged)
        assert hung_sub.id not in {e.subscription_id for e in logged}
        assert not task.done()
        assert dispatcher.pending == 1

        release.set()
        entries = await task
        assert len(entries) == 3
        assert dispatcher.pending == 0

    async def test_one_subscriber_raising_does_not_affect_others(
        self, storage, subscribe, fake_sleep
    ):
        broken = await subscribe(url="https://a.example.com/h", secret="")
        healthy = await subscribe(url="https://b.example.com/h")
        endpoint = StubEndpoint(200)
        dispatcher = build_dispatcher(storage, endpoint.client(), fake_sleep)

        entries = await dispatcher.dispatch("ws_1", contact_created())

        assert [e.subscription_id for e in entries] == [healthy.id]
        assert await storage.get_delivery_logs(broken.id) == []

    async def test_storage_failure_never_raises(self, storage, subscribe, fake_sleep):
        await subscribe()
        storage.get_subscriptions_for_event = AsyncMock(side_effect=RuntimeError("qdrant down"))
        dispatcher = build_dispatcher(storage, StubEndpoint(200).client(), fake_sleep)

        assert await dispatcher.dispatch("ws_1", contact_created()) == []

    async def test_ledger_write_failure_still_updates_health(
        self, storage, subscribe, fake_sleep
    ):
        subscription = await subscribe()
        storage.log_delivery = AsyncMock(side_effect=RuntimeError("disk full"))
        endpoint = StubEndpoint(200)
        dispatcher = build_dispatcher(storage, endpoint.client(), fake_sleep)

        entries = await dispatcher.dispatch("ws_1", contact_created())

        assert entries == []
        assert endpoint.calls == 1
        updated = await storage.get_subscription(subscription.id)
        assert updated.delivery_attempts == 1

    async def test_health_failure_keeps_ledger_entry(self, storage, subscribe, fake_sleep):
        await subscribe()
        dispatcher = build_dispatcher(storage, StubEndpoint(200).client(), fake_sleep)
        dispatcher._health.record_outcome = AsyncMock(side_effect=RuntimeError("boom"))

        entries = await dispatcher.dispatch("ws_1", contact_created())

        assert len(entries) == 1
        assert entries[0].success


class TestBackgroundDispatch:
    """Tests for fire-and-forget dispatch."""

    async def test_aclose_waits_for_pending(self, storage, subscribe, fake_sleep):
        subscription = await subscribe()
        dispatcher = build_dispatcher(storage, StubEndpoint(200).client(), fake_sleep)

        dispatcher.dispatch_in_background("ws_1", contact_created())
        dispatcher.dispatch_in_background("ws_1", contact_created())
        await dispatcher.aclose()

        assert dispatcher.pending == 0
        assert len(await storage.get_delivery_logs(subscription.id)) == 2

    async def test_context_unbound_after_dispatch(self, storage, subscribe, fake_sleep):
        await subscribe()
        dispatcher = build_dispatcher(storage, StubEndpoint(200).client(), fake_sleep)

        await dispatcher.dispatch("ws_1", contact_created())

        context = structlog.contextvars.get_contextvars()
        assert "tenant_id" not in context
        assert "event_id" not in context


class TestDispatchWebhookEvent:
    """Tests for the dispatch_webhook_event() convenience function."""

    async def test_builds_event(self, storage, subscribe, fake_sleep):
        subscription = await subscribe(events=["deal.*"])
        endpoint = StubEndpoint(200)
        dispatcher = build_dispatcher(storage, endpoint.client(), fake_sleep)

        entries = await dispatch_webhook_event(
            dispatcher, "ws_1", "deal.won", data={"deal_id": "d_1"}, source="billing"
        )

        assert len(entries) == 1
        assert entries[0].subscription_id == subscription.id
        assert entries[0].event_type == "deal.won"
        assert entries[0].source == "billing"
        assert endpoint.requests[0].headers["X-Webhook-Event"] == "deal.won"

    async def test_unknown_event_type_rejected(self, storage, fake_sleep):
        from pydantic import ValidationError

        dispatcher = build_dispatcher(storage, StubEndpoint(200).client(), fake_sleep)
        with pytest.raises(ValidationError):
            await dispatch_webhook_event(dispatcher, "ws_1", "contact.exploded")
