"""Single-attempt webhook delivery over HTTP.

The executor serializes an event into the wire envelope, signs it and
POSTs it once. It never retries and never persists; the retry coordinator
and the ledger own those concerns.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import httpx

from hookshot.config import settings
from hookshot.models import MAX_RESPONSE_BODY, DeliveryResult

from .signing import canonical_json, generate_challenge, signature_header

if TYPE_CHECKING:
    from hookshot.models import Event

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"
DELIVERY_HEADER = "X-Webhook-Delivery"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
WORKSPACE_HEADER = "X-Webhook-Workspace"


class DeliveryExecutor:
    """Performs one signed HTTP POST per call and captures the outcome.

    A 2xx or 3xx response is a success. Any status of 400 or above, a
    timeout, or a network error is a failure; the result carries the status
    code (when a response arrived), latency and an error description.

    Example:
        ```python
        executor = DeliveryExecutor()
        result = await executor.deliver(str(subscription.url), event, subscription.secret)
        if not result.success:
            print(result.status_code, result.error)
        ```
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float | None = None,
        user_agent: str | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            client: Shared HTTP client. A short-lived client is created
                per request when omitted.
            timeout_seconds: Per-attempt timeout. Defaults to
                settings.delivery_timeout_seconds (30s).
            user_agent: User-Agent header. Defaults to settings.user_agent.
        """
        self._client = client
        self._timeout = timeout_seconds or settings.delivery_timeout_seconds
        self._user_agent = user_agent or settings.user_agent

    @property
    def timeout_seconds(self) -> float:
        """Per-attempt request timeout."""
        return self._timeout

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client

    def build_request(self, event: Event, secret: str) -> tuple[str, dict[str, str]]:
        """Serialize and sign an event.

        Args:
            event: Event to deliver.
            secret: Signing secret.

        Returns:
            Tuple of (raw body, headers).
        """
        body = canonical_json(event.to_envelope())
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: signature_header(body, secret),
            EVENT_HEADER: event.type,
            DELIVERY_HEADER: event.id,
            TIMESTAMP_HEADER: event.timestamp_iso,
            WORKSPACE_HEADER: event.tenant_id,
            "User-Agent": self._user_agent,
        }
        return body, headers

    async def deliver(
        self,
        url: str,
        event: Event,
        secret: str,
        extra_headers: dict[str, str] | None = None,
    ) -> DeliveryResult:
        """Deliver an event to an endpoint with a single attempt.

        Args:
            url: Endpoint URL.
            event: Event to deliver.
            secret: Signing secret.
            extra_headers: Additional headers (used for replay provenance).

        Returns:
            DeliveryResult describing the attempt.
        """
        body, headers = self.build_request(event, secret)
        if extra_headers:
            headers.update(extra_headers)

        started = time.perf_counter()
        try:
            async with self._session() as client:
                response = await client.post(
                    url,
                    content=body.encode("utf-8"),
                    headers=headers,
                    timeout=self._timeout,
                )
        except httpx.TimeoutException:
            elapsed = _elapsed_ms(started)
            logger.warning("Webhook %s to %s timed out after %dms", event.type, url, elapsed)
            return DeliveryResult(
                success=False,
                response_time_ms=elapsed,
                error=f"Request timed out after {self._timeout:g}s",
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            elapsed = _elapsed_ms(started)
            logger.warning("Webhook %s to %s failed: %s", event.type, url, e)
            return DeliveryResult(
                success=False,
                response_time_ms=elapsed,
                error=str(e) or type(e).__name__,
            )

        elapsed = _elapsed_ms(started)
        response_body = response.text[:MAX_RESPONSE_BODY] if response.text else None

        if response.status_code >= 400:
            logger.warning(
                "Webhook rejected: %s to %s (status %d)", event.type, url, response.status_code
            )
            return DeliveryResult(
                success=False,
                status_code=response.status_code,
                response_time_ms=elapsed,
                error=f"HTTP {response.status_code}: {response.reason_phrase}",
                response_body=response_body,
            )

        logger.info(
            "Webhook delivered: %s to %s (status %d, %dms)",
            event.type,
            url,
            response.status_code,
            elapsed,
        )
        return DeliveryResult(
            success=True,
            status_code=response.status_code,
            response_time_ms=elapsed,
            response_body=response_body,
        )

    async def send_verification_challenge(
        self,
        url: str,
        secret: str,
        tenant_id: str,
        timeout_seconds: float | None = None,
    ) -> bool:
        """Ask an endpoint to prove it is a willing webhook receiver.

        Sends a signed ``webhook.verification`` POST carrying a random
        challenge. The endpoint passes only by answering HTTP 200 with a JSON
        body that echoes the same ``challenge`` value.

        Args:
            url: Endpoint URL.
            secret: Signing secret the endpoint was registered with.
            tenant_id: Registering workspace.
            timeout_seconds: Defaults to settings.verification_timeout_seconds.

        Returns:
            True if the endpoint echoed the challenge.
        """
        challenge = generate_challenge()
        body = canonical_json(
            {
                "type": "webhook.verification",
                "challenge": challenge,
                "timestamp": datetime.now(UTC).isoformat(),
                "workspaceId": tenant_id,
            }
        )
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: signature_header(body, secret),
            EVENT_HEADER: "webhook.verification",
            WORKSPACE_HEADER: tenant_id,
            "User-Agent": self._user_agent,
        }

        try:
            async with self._session() as client:
                response = await client.post(
                    url,
                    content=body.encode("utf-8"),
                    headers=headers,
                    timeout=timeout_seconds or settings.verification_timeout_seconds,
                )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Verification challenge to %s failed: %s", url, e)
            return False

        if response.status_code != 200:
            logger.warning(
                "Verification challenge to %s rejected (status %d)", url, response.status_code
            )
            return False

        try:
            echoed = response.json().get("challenge")
        except (ValueError, AttributeError):
            logger.warning("Verification challenge to %s returned a non-JSON body", url)
            return False

        return echoed == challenge

    async def probe_url(self, url: str, timeout_seconds: float | None = None) -> bool:
        """Check that an endpoint answers at all.

        Issues a HEAD request; any status below 500 (including 404 or 405)
        counts as reachable.

        Args:
            url: Endpoint URL.
            timeout_seconds: Defaults to settings.url_check_timeout_seconds (5s).

        Returns:
            True if the endpoint is reachable.
        """
        try:
            async with self._session() as client:
                response = await client.head(
                    url,
                    headers={"User-Agent": self._user_agent},
                    timeout=timeout_seconds or settings.url_check_timeout_seconds,
                )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.info("Reachability probe to %s failed: %s", url, e)
            return False
        return response.status_code < 500


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
