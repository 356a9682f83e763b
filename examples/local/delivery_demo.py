#!/usr/bin/env python3
"""Signed delivery and retry demo.

Demonstrates what a subscriber receives from Hookshot:

- The JSON envelope and the X-Webhook-* headers
- How to verify the HMAC-SHA256 signature on the receiving side
- The retry schedule applied when an endpoint keeps failing

No external dependencies required - the receiving endpoint is an in-process
httpx mock transport and no datastore is needed.
"""

import asyncio
import json

import httpx

from hookshot.models import Event, Subscription
from hookshot.webhooks import (
    SIGNATURE_HEADER,
    DeliveryExecutor,
    RetryCoordinator,
    generate_secret,
    verify_signature,
)


async def main() -> None:
    print("=" * 70)
    print("Hookshot Signed Delivery Demo")
    print("=" * 70)

    secret = generate_secret()
    subscription = Subscription(
        tenant_id="ws_demo",
        url="https://receiver.example.com/hooks",
        events=["contact.*"],
        secret=secret,
    )
    event = Event(
        type="contact.created",
        tenant_id="ws_demo",
        data={"contact_id": "c_42", "email": "ada@example.com"},
    )

    # =========================================================================
    # Part 1: A healthy receiver
    # =========================================================================
    print("\n1. SUCCESSFUL DELIVERY")
    print("-" * 70)

    async def receiver(request: httpx.Request) -> httpx.Response:
        body = request.content.decode()
        valid = verify_signature(body, request.headers[SIGNATURE_HEADER], secret)
        print("  Headers:")
        for name, value in request.headers.items():
            if name.lower().startswith("x-webhook"):
                print(f"    {name}: {value}")
        print(f"  Envelope: {json.dumps(json.loads(body), indent=2)}")
        print(f"  Signature valid: {valid}")
        return httpx.Response(200 if valid else 401)

    executor = DeliveryExecutor(client=httpx.AsyncClient(transport=httpx.MockTransport(receiver)))
    result = await executor.deliver(str(subscription.url), event, secret)
    print(f"\n  Result: success={result.success} status={result.status_code}")

    # =========================================================================
    # Part 2: A failing receiver
    # =========================================================================
    print("\n2. RETRIES AGAINST A FAILING ENDPOINT")
    print("-" * 70)

    async def failing(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    async def no_wait(seconds: float) -> None:
        print(f"  (would wait {seconds:g}s before the next attempt)")

    coordinator = RetryCoordinator(
        DeliveryExecutor(client=httpx.AsyncClient(transport=httpx.MockTransport(failing))),
        sleep=no_wait,
    )
    result = await coordinator.deliver_with_retry(subscription, event)

    for attempt in result.attempts:
        print(f"  Attempt {attempt.attempt}: {attempt.error}")
    print(f"\n  Final: success={result.success} after {result.attempt} attempts")


if __name__ == "__main__":
    asyncio.run(main())
