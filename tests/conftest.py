"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import httpx
import pytest
from qdrant_client import AsyncQdrantClient

from hookshot.models import DeliveryLogEntry, Subscription, SubscriptionSecret, generate_id
from hookshot.storage import WebhookStorage

# Add tests directory to path so helpers can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

DEFAULT_SECRET = "test_secret_16chars"


class StubEndpoint:
    """Programmable webhook receiver for ``httpx.MockTransport``.

    Each request consumes the next scripted outcome (a status code or an
    exception to raise); once the script runs out, ``default`` is returned.
    Every request is recorded.

    Example:
        ```python
        endpoint = StubEndpoint(500, 500, 200)
        executor = DeliveryExecutor(client=endpoint.client())
        ```
    """

    def __init__(
        self,
        *script: int | Exception,
        default: int = 200,
        body: str = "ok",
    ) -> None:
        self.script = list(script)
        self.default = default
        self.body = body
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.script.pop(0) if self.script else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, text=self.body)

    @property
    def calls(self) -> int:
        """Number of requests received."""
        return len(self.requests)

    def client(self) -> httpx.AsyncClient:
        """HTTP client whose every request lands on this endpoint."""
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class Router:
    """Routes requests to per-host stub endpoints."""

    def __init__(self, routes: dict[str, Callable[[httpx.Request], Awaitable[httpx.Response]]]):
        self.routes = routes

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        return await self.routes[request.url.host](request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
async def storage() -> AsyncIterator[WebhookStorage]:
    """Create an in-memory storage instance for testing.

    Uses qdrant-client's local mode with in-memory storage.
    """
    store = WebhookStorage(prefix="test")
    # Override with in-memory client
    store._client = AsyncQdrantClient(location=":memory:")
    await store._ensure_collections()
    store._collections_initialized = True

    yield store

    await store.close()


@pytest.fixture
def sleeps() -> list[float]:
    """Backoff delays requested through :func:`fake_sleep`."""
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]) -> Callable[[float], Awaitable[None]]:
    """Sleep replacement that records the delay and yields once."""

    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)
        await asyncio.sleep(0)

    return _sleep


@pytest.fixture
def subscribe(storage: WebhookStorage) -> Callable[..., Awaitable[Subscription]]:
    """Factory storing a subscription together with its initial secret row."""

    async def _subscribe(
        tenant_id: str = "ws_1",
        url: str = "https://hooks.example.com/a",
        events: list[str] | None = None,
        secret: str = DEFAULT_SECRET,
        **fields: Any,
    ) -> Subscription:
        subscription = Subscription(
            tenant_id=tenant_id,
            url=url,
            events=events or ["*"],
            secret=secret,
            **fields,
        )
        await storage.store_subscription(subscription)
        await storage.store_secret(
            SubscriptionSecret(subscription_id=subscription.id, secret=secret)
        )
        return subscription

    return _subscribe


async def log_entry(
    storage: WebhookStorage,
    subscription: Subscription,
    success: bool = True,
    age: timedelta = timedelta(0),
    **fields: Any,
) -> DeliveryLogEntry:
    """Write a ledger entry for a subscription, backdated by ``age``."""
    fields.setdefault("status_code", 200 if success else 500)
    fields.setdefault("response_time_ms", 100)
    entry = DeliveryLogEntry(
        subscription_id=subscription.id,
        tenant_id=subscription.tenant_id,
        event_id=generate_id("evt"),
        event_type="contact.created",
        payload={"contact_id": "c_1"},
        success=success,
        created_at=datetime.now(UTC) - age,
        **fields,
    )
    await storage.log_delivery(entry)
    return entry
