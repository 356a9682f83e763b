"""Bounded retry around the delivery executor.

Each delivery gets up to ``max_retries`` attempts. After a failed attempt
the coordinator sleeps the delay at that attempt's index in a literal
schedule (1s, 5s, 15s by default) before trying again; attempts beyond the
schedule reuse its last delay. No delay follows the final attempt.

Attempts for one delivery are strictly sequential. The backoff sleeps are
``asyncio.sleep`` calls, so one subscriber waiting out its schedule never
holds up deliveries to other subscribers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_chain,
    wait_fixed,
)

from hookshot.config import settings
from hookshot.exceptions import DeliveryError

if TYPE_CHECKING:
    from hookshot.models import AttemptRecord, DeliveryResult, Event, Subscription

    from .executor import DeliveryExecutor

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


def _is_failure(result: DeliveryResult) -> bool:
    return not result.success


def _last_result(retry_state: RetryCallState) -> DeliveryResult:
    """Return the final failed result instead of raising RetryError."""
    result: DeliveryResult = retry_state.outcome.result()  # type: ignore[union-attr]
    return result


def _log_retry(retry_state: RetryCallState) -> None:
    result = retry_state.outcome.result() if retry_state.outcome else None
    logger.info(
        "Delivery attempt %d failed (%s), retrying in %.0fs",
        retry_state.attempt_number,
        result.error if result is not None else "unknown error",
        retry_state.upcoming_sleep,
    )


class RetryCoordinator:
    """Wraps the delivery executor with bounded, scheduled retries.

    Example:
        ```python
        coordinator = RetryCoordinator(DeliveryExecutor())
        result = await coordinator.deliver_with_retry(subscription, event)
        print(result.success, result.attempt)
        ```
    """

    def __init__(
        self,
        executor: DeliveryExecutor,
        max_retries: int | None = None,
        delays: Sequence[float] | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize the coordinator.

        Args:
            executor: Executor performing single attempts.
            max_retries: Attempts per delivery. Defaults to settings.max_retries (3).
            delays: Backoff schedule in seconds. Defaults to settings.retry_delays.
            sleep: Coroutine used for backoff sleeps (injectable for tests).
        """
        self._executor = executor
        self._max_retries = max_retries or settings.max_retries
        self._delays = list(delays if delays is not None else settings.retry_delays) or [0.0]
        self._sleep = sleep

    @property
    def max_retries(self) -> int:
        """Attempts per delivery."""
        return self._max_retries

    async def deliver_with_retry(
        self,
        subscription: Subscription,
        event: Event,
        secret: str | None = None,
    ) -> DeliveryResult:
        """Deliver an event to a subscription, retrying failed attempts.

        Args:
            subscription: Target subscription.
            event: Event to deliver.
            secret: Signing secret. Defaults to the subscription's current secret.

        Returns:
            The succeeding attempt's result, or the last failed one. ``attempt``
            holds the attempt number and ``attempts`` every attempt made.

        Raises:
            DeliveryError: If there is no secret to sign with.
        """
        signing_secret = secret or subscription.secret
        if not signing_secret:
            raise DeliveryError(f"subscription {subscription.id} has no signing secret")

        attempts: list[AttemptRecord] = []
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_chain(*(wait_fixed(delay) for delay in self._delays)),
            retry=retry_if_result(_is_failure),
            sleep=self._sleep,
            before_sleep=_log_retry,
            retry_error_callback=_last_result,
        )

        result: DeliveryResult = await retrying(
            self._attempt,
            str(subscription.url),
            event,
            signing_secret,
            attempts,
        )
        result.attempts = attempts
        return result

    async def _attempt(
        self,
        url: str,
        event: Event,
        secret: str,
        attempts: list[AttemptRecord],
    ) -> DeliveryResult:
        result = await self._executor.deliver(url, event, secret)
        result.attempt = len(attempts) + 1
        attempts.append(result.to_attempt_record())
        return result
