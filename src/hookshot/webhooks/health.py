"""Subscription health bookkeeping and ledger statistics.

Health counters live on the subscription and are updated once per
terminal delivery outcome (not per attempt). Success rates and other
statistics are computed from the delivery ledger over a trailing window
of ``health_window_days`` (30 days by default); a subscription with no
deliveries in that window has no success rate and counts as healthy.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from hookshot.config import settings
from hookshot.models import AuditEntry, DeliveryStats, HealthReport

if TYPE_CHECKING:
    from hookshot.models import DeliveryLogEntry, Subscription
    from hookshot.storage import WebhookStorage

logger = logging.getLogger(__name__)


def _percent(part: int, whole: int) -> float | None:
    if whole == 0:
        return None
    return round(part / whole * 100, 2)


def summarize_deliveries(
    subscription: Subscription,
    entries: Iterable[DeliveryLogEntry],
) -> DeliveryStats:
    """Aggregate ledger entries of one subscription into statistics.

    ``is_healthy`` is left at its default; the monitor fills it in.
    """
    entries = list(entries)
    successful = sum(1 for e in entries if e.success)
    response_times = [e.response_time_ms for e in entries]

    return DeliveryStats(
        subscription_id=subscription.id,
        total_deliveries=len(entries),
        successful_deliveries=successful,
        failed_deliveries=len(entries) - successful,
        success_rate=_percent(successful, len(entries)),
        average_response_time_ms=(
            round(sum(response_times) / len(response_times), 2) if response_times else None
        ),
        last_delivery_at=max((e.created_at for e in entries), default=None),
        failed_attempts=subscription.failed_attempts,
        is_active=subscription.is_active,
    )


class HealthMonitor:
    """Tracks delivery outcomes and derives subscription health.

    Example:
        ```python
        health = HealthMonitor(storage)
        await health.record_outcome(subscription.id, success=False, response_time_ms=120)

        report = await health.get_health_report("ws_123")
        print(report.healthy_subscriptions, report.success_rate)

        removed = await health.cleanup_old_entries(retention_days=30)
        ```
    """

    def __init__(
        self,
        storage: WebhookStorage,
        max_failed_attempts: int | None = None,
        unhealthy_failure_threshold: int | None = None,
        healthy_success_rate: float | None = None,
        window_days: int | None = None,
    ) -> None:
        """Initialize the health monitor.

        Args:
            storage: WebhookStorage instance.
            max_failed_attempts: Consecutive failed events before auto-disable (10).
            unhealthy_failure_threshold: Consecutive failures that make a
                subscription unhealthy (5).
            healthy_success_rate: Percent success rate to exceed (80).
            window_days: Trailing window for success rates (30).
        """
        self._storage = storage
        self._max_failed_attempts = max_failed_attempts or settings.max_failed_attempts
        self._unhealthy_threshold = (
            unhealthy_failure_threshold or settings.unhealthy_failure_threshold
        )
        self._healthy_rate = (
            healthy_success_rate
            if healthy_success_rate is not None
            else settings.healthy_success_rate
        )
        self._window = timedelta(days=window_days or settings.health_window_days)

    async def record_outcome(
        self,
        subscription_id: str,
        success: bool,
        response_time_ms: int,
        error: str | None = None,
    ) -> Subscription | None:
        """Apply one terminal delivery outcome to a subscription's counters.

        On success the consecutive-failure counter resets. On failure it
        increments, and reaching ``max_failed_attempts`` deactivates the
        subscription and records an ``auto_disabled`` audit entry.

        Args:
            subscription_id: Subscription the delivery went to.
            success: Whether the delivery succeeded.
            response_time_ms: Latency of the final attempt.
            error: Failure reason.

        Returns:
            The updated subscription, or None if it no longer exists.
        """
        subscription, disabled = await self._storage.apply_delivery_outcome(
            subscription_id,
            success=success,
            max_failed_attempts=self._max_failed_attempts,
            error=error,
        )
        if subscription is None:
            logger.warning("Outcome for unknown subscription %s dropped", subscription_id)
            return None

        logger.debug(
            "Recorded %s for subscription %s (%dms, %d consecutive failures)",
            "success" if success else "failure",
            subscription_id,
            response_time_ms,
            subscription.failed_attempts,
        )

        if disabled:
            logger.warning(
                "Subscription %s auto-disabled after %d consecutive failures",
                subscription_id,
                subscription.failed_attempts,
            )
            await self._storage.log_audit(
                AuditEntry.for_auto_disabled(
                    subscription_id=subscription.id,
                    tenant_id=subscription.tenant_id,
                    reason=subscription.last_error or "consecutive failures",
                    failed_attempts=subscription.failed_attempts,
                )
            )
        return subscription

    def evaluate(self, subscription: Subscription, success_rate: float | None) -> bool:
        """Health predicate over a subscription and its recent success rate.

        Args:
            subscription: Subscription to judge.
            success_rate: Percent success rate in the window, None if no deliveries.

        Returns:
            True if active, below the failure threshold, and (when there is
            recent traffic) above the success-rate threshold.
        """
        if not subscription.is_active:
            return False
        if subscription.failed_attempts >= self._unhealthy_threshold:
            return False
        return success_rate is None or success_rate > self._healthy_rate

    async def is_healthy(self, subscription: Subscription) -> bool:
        """Check whether a subscription is healthy."""
        stats = await self.get_stats(subscription)
        return stats.is_healthy

    async def get_stats(self, subscription: Subscription) -> DeliveryStats:
        """Compute ledger statistics for one subscription over the window.

        Args:
            subscription: Subscription to summarize.

        Returns:
            DeliveryStats including the health verdict.
        """
        since = datetime.now(UTC) - self._window
        entries = await self._storage.get_deliveries_since(since, subscription_id=subscription.id)
        stats = summarize_deliveries(subscription, entries)
        stats.is_healthy = self.evaluate(subscription, stats.success_rate)
        return stats

    async def get_health_report(self, tenant_id: str) -> HealthReport:
        """Summarize the health of every subscription in a tenant.

        Args:
            tenant_id: Tenant to report on.

        Returns:
            HealthReport with per-subscription statistics.
        """
        subscriptions = await self._storage.list_subscriptions(tenant_id)
        since = datetime.now(UTC) - self._window
        entries = await self._storage.get_deliveries_since(since, tenant_id=tenant_id)

        by_subscription: defaultdict[str, list[DeliveryLogEntry]] = defaultdict(list)
        for entry in entries:
            by_subscription[entry.subscription_id].append(entry)

        per_subscription: list[DeliveryStats] = []
        for subscription in subscriptions:
            stats = summarize_deliveries(subscription, by_subscription[subscription.id])
            stats.is_healthy = self.evaluate(subscription, stats.success_rate)
            per_subscription.append(stats)

        known = {s.id for s in subscriptions}
        counted = [e for e in entries if e.subscription_id in known]
        successful = sum(1 for e in counted if e.success)

        return HealthReport(
            tenant_id=tenant_id,
            total_subscriptions=len(subscriptions),
            active_subscriptions=sum(1 for s in subscriptions if s.is_active),
            healthy_subscriptions=sum(1 for s in per_subscription if s.is_healthy),
            failing_subscriptions=sum(
                1 for s in subscriptions if s.is_active and s.failed_attempts > 0
            ),
            total_deliveries=len(counted),
            success_rate=_percent(successful, len(counted)),
            average_response_time_ms=(
                round(sum(e.response_time_ms for e in counted) / len(counted), 2)
                if counted
                else None
            ),
            subscriptions=per_subscription,
        )

    async def cleanup_old_entries(self, retention_days: int | None = None) -> int:
        """Delete ledger entries older than the retention period.

        Idempotent: a second run with nothing left to delete removes 0.

        Args:
            retention_days: Days to keep. Defaults to settings.log_retention_days (30).

        Returns:
            Number of entries removed.
        """
        days = retention_days if retention_days is not None else settings.log_retention_days
        cutoff = datetime.now(UTC) - timedelta(days=days)
        removed = await self._storage.delete_deliveries_before(cutoff)
        if removed:
            logger.info("Removed %d delivery log entries older than %d days", removed, days)
        return removed

    async def check_and_disable_failed(
        self,
        window_hours: int | None = None,
        min_failures: int | None = None,
    ) -> list[str]:
        """Disable subscriptions that only failed during a trailing window.

        Secondary check alongside the per-outcome counter: any active
        subscription with at least ``min_failures`` failed deliveries and
        no successful one in the window is deactivated.

        Args:
            window_hours: Trailing window. Defaults to settings.disable_check_window_hours (24).
            min_failures: Failure count that triggers. Defaults to
                settings.disable_check_min_failures (10).

        Returns:
            IDs of subscriptions disabled by this run.
        """
        hours = window_hours or settings.disable_check_window_hours
        threshold = min_failures or settings.disable_check_min_failures
        since = datetime.now(UTC) - timedelta(hours=hours)

        failures: defaultdict[str, int] = defaultdict(int)
        succeeded: set[str] = set()
        for entry in await self._storage.get_deliveries_since(since):
            if entry.success:
                succeeded.add(entry.subscription_id)
            else:
                failures[entry.subscription_id] += 1

        reason = f"auto-disabled: no successful delivery in the last {hours} hours"
        disabled: list[str] = []
        for subscription_id, count in failures.items():
            if count < threshold or subscription_id in succeeded:
                continue

            subscription, changed = await self._storage.modify_subscription(
                subscription_id,
                lambda s: _deactivate(s, reason),
            )
            if subscription is None or not changed:
                continue

            disabled.append(subscription_id)
            logger.warning(
                "Subscription %s disabled: %d failures and no successes in %dh",
                subscription_id,
                count,
                hours,
            )
            await self._storage.log_audit(
                AuditEntry.for_auto_disabled(
                    subscription_id=subscription.id,
                    tenant_id=subscription.tenant_id,
                    reason=reason,
                    failed_attempts=subscription.failed_attempts,
                )
            )

        return disabled


def _deactivate(subscription: Subscription, reason: str) -> bool:
    if not subscription.is_active:
        return False
    subscription.is_active = False
    subscription.last_error = reason
    return True
