"""Tests for the retry coordinator."""

from __future__ import annotations

import httpx
import pytest
from conftest import DEFAULT_SECRET, StubEndpoint

from hookshot.config import Settings
from hookshot.exceptions import DeliveryError
from hookshot.models import Event, Subscription
from hookshot.webhooks import DeliveryExecutor, RetryCoordinator


@pytest.fixture
def subscription() -> Subscription:
    return Subscription(
        id="whk_test123",
        tenant_id="ws_1",
        url="https://hooks.example.com/a",
        events=["*"],
        secret=DEFAULT_SECRET,
    )


@pytest.fixture
def event() -> Event:
    return Event(type="deal.won", tenant_id="ws_1", data={"deal_id": "d_1"})


def coordinator_for(endpoint: StubEndpoint, sleep, **kwargs) -> RetryCoordinator:
    return RetryCoordinator(DeliveryExecutor(client=endpoint.client()), sleep=sleep, **kwargs)


class TestDeliverWithRetry:
    """Tests for RetryCoordinator.deliver_with_retry()."""

    async def test_first_attempt_success(self, subscription, event, fake_sleep, sleeps):
        endpoint = StubEndpoint(200)
        result = await coordinator_for(endpoint, fake_sleep).deliver_with_retry(
            subscription, event
        )

        assert result.success
        assert result.attempt == 1
        assert len(result.attempts) == 1
        assert endpoint.calls == 1
        assert sleeps == []

    async def test_always_failing_gets_exactly_three_attempts(
        self, subscription, event, fake_sleep, sleeps
    ):
        """An endpoint that always fails is tried exactly max_retries times."""
        endpoint = StubEndpoint(default=500)
        result = await coordinator_for(endpoint, fake_sleep).deliver_with_retry(
            subscription, event
        )

        assert not result.success
        assert endpoint.calls == 3
        assert result.attempt == 3
        assert result.status_code == 500
        assert result.error == "HTTP 500: Internal Server Error"
        assert [a.attempt for a in result.attempts] == [1, 2, 3]
        assert not any(a.success for a in result.attempts)

    async def test_success_on_third_attempt(self, subscription, event, fake_sleep, sleeps):
        """Retries stop at the first success."""
        endpoint = StubEndpoint(500, 503, 200, default=500)
        result = await coordinator_for(endpoint, fake_sleep).deliver_with_retry(
            subscription, event
        )

        assert result.success
        assert result.attempt == 3
        assert endpoint.calls == 3
        assert [a.success for a in result.attempts] == [False, False, True]

    async def test_delay_schedule(self, subscription, event, fake_sleep, sleeps):
        """Delays follow the literal schedule and none follows the last attempt."""
        endpoint = StubEndpoint(default=500)
        await coordinator_for(endpoint, fake_sleep).deliver_with_retry(subscription, event)

        assert sleeps == [1.0, 5.0]

    async def test_schedule_reuses_last_delay(self, subscription, event, fake_sleep, sleeps):
        endpoint = StubEndpoint(default=500)
        coordinator = coordinator_for(endpoint, fake_sleep, max_retries=5, delays=[1, 5, 15])

        await coordinator.deliver_with_retry(subscription, event)

        assert endpoint.calls == 5
        assert sleeps == [1, 5, 15, 15]

    async def test_short_configured_schedule(self, subscription, event, fake_sleep, sleeps):
        endpoint = StubEndpoint(default=503)
        configured = Settings(max_retries=5, retry_delays=[1.0, 5.0], _env_file=None)
        coordinator = coordinator_for(
            endpoint,
            fake_sleep,
            max_retries=configured.max_retries,
            delays=configured.retry_delays,
        )

        result = await coordinator.deliver_with_retry(subscription, event)

        assert not result.success
        assert endpoint.calls == 5
        assert sleeps == [1.0, 5.0, 5.0, 5.0]

    async def test_client_errors_are_retried(self, subscription, event, fake_sleep):
        """4xx responses go through the same schedule as 5xx."""
        endpoint = StubEndpoint(default=410)
        result = await coordinator_for(endpoint, fake_sleep).deliver_with_retry(
            subscription, event
        )
        assert endpoint.calls == 3
        assert result.status_code == 410

    async def test_timeouts_are_retried(self, subscription, event, fake_sleep):
        endpoint = StubEndpoint(httpx.ReadTimeout("slow"), httpx.ReadTimeout("slow"), 200)
        result = await coordinator_for(endpoint, fake_sleep).deliver_with_retry(
            subscription, event
        )
        assert result.success
        assert result.attempts[0].error is not None
        assert result.attempts[0].status_code is None

    async def test_same_event_id_on_every_attempt(self, subscription, event, fake_sleep):
        """The delivery id header is the idempotency key and never changes."""
        endpoint = StubEndpoint(default=500)
        await coordinator_for(endpoint, fake_sleep).deliver_with_retry(subscription, event)

        ids = {r.headers["X-Webhook-Delivery"] for r in endpoint.requests}
        bodies = {r.content for r in endpoint.requests}
        assert ids == {event.id}
        assert len(bodies) == 1

    async def test_explicit_secret_overrides(self, subscription, event, fake_sleep):
        from hookshot.webhooks.signing import verify_signature

        endpoint = StubEndpoint(200)
        await coordinator_for(endpoint, fake_sleep).deliver_with_retry(
            subscription, event, secret="another_secret_value"
        )

        request = endpoint.requests[0]
        assert verify_signature(
            request.content.decode(),
            request.headers["X-Webhook-Signature"],
            "another_secret_value",
        )

    async def test_missing_secret_raises(self, subscription, event, fake_sleep):
        subscription.secret = ""
        coordinator = coordinator_for(StubEndpoint(200), fake_sleep)

        with pytest.raises(DeliveryError):
            await coordinator.deliver_with_retry(subscription, event)

    def test_defaults_from_settings(self):
        coordinator = RetryCoordinator(DeliveryExecutor())
        assert coordinator.max_retries == 3
