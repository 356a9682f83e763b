"""Periodic webhook maintenance on the event loop.

Usage::

    from hookshot.workers import MaintenanceScheduler

    scheduler = MaintenanceScheduler.for_webhooks(health, secret_manager)
    await scheduler.start()
    ...
    await scheduler.stop()

Default tasks:

- ``delivery_cleanup`` (daily): purge ledger entries past retention and
  secrets whose rotation grace period has ended.
- ``failed_subscription_check`` (every 30 minutes): disable subscriptions
  that failed repeatedly without a single success in the last 24 hours.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from hookshot.config import settings
from hookshot.exceptions import ConfigurationError, NotFoundError
from hookshot.models import MaintenanceResult

if TYPE_CHECKING:
    from hookshot.webhooks.health import HealthMonitor
    from hookshot.webhooks.secrets import SecretManager

logger = logging.getLogger(__name__)

# A task receives the current UTC time and reports what it did
TaskFn = Callable[[datetime], Awaitable[MaintenanceResult]]


@dataclass
class MaintenanceTask:
    """A named periodic task executed by :class:`MaintenanceScheduler`."""

    name: str
    interval_seconds: float
    fn: TaskFn

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ConfigurationError(
                f"maintenance task {self.name!r} needs a positive interval, "
                f"got {self.interval_seconds}"
            )


@dataclass
class MaintenanceScheduler:
    """In-process scheduler running each task on its own interval.

    Each task loops independently: if one fails the others still run, and
    the failing task is retried at its next interval. Failures are logged.
    """

    tasks: Sequence[MaintenanceTask] = field(default_factory=list)
    run_on_start: bool = False
    _running: dict[str, asyncio.Task[None]] = field(default_factory=dict, init=False, repr=False)

    @classmethod
    def for_webhooks(
        cls,
        health: HealthMonitor,
        secrets: SecretManager,
        cleanup_interval_seconds: float | None = None,
        disable_check_interval_seconds: float | None = None,
        run_on_start: bool = False,
    ) -> MaintenanceScheduler:
        """Build a scheduler with the default webhook maintenance tasks."""

        async def delivery_cleanup(now: datetime) -> MaintenanceResult:
            started = time.perf_counter()
            entries = await health.cleanup_old_entries()
            secrets_removed = await secrets.cleanup_expired_secrets()
            return MaintenanceResult(
                task="delivery_cleanup",
                started_at=now,
                duration_ms=int((time.perf_counter() - started) * 1000),
                entries_removed=entries,
                secrets_removed=secrets_removed,
            )

        async def failed_subscription_check(now: datetime) -> MaintenanceResult:
            started = time.perf_counter()
            disabled = await health.check_and_disable_failed()
            return MaintenanceResult(
                task="failed_subscription_check",
                started_at=now,
                duration_ms=int((time.perf_counter() - started) * 1000),
                disabled_subscriptions=disabled,
            )

        return cls(
            tasks=[
                MaintenanceTask(
                    name="delivery_cleanup",
                    interval_seconds=cleanup_interval_seconds or settings.cleanup_interval_seconds,
                    fn=delivery_cleanup,
                ),
                MaintenanceTask(
                    name="failed_subscription_check",
                    interval_seconds=(
                        disable_check_interval_seconds or settings.disable_check_interval_seconds
                    ),
                    fn=failed_subscription_check,
                ),
            ],
            run_on_start=run_on_start,
        )

    @property
    def is_running(self) -> bool:
        """Whether the task loops have been started."""
        return bool(self._running)

    async def start(self) -> None:
        """Start one loop per task. Calling start twice is a no-op."""
        if self._running:
            return
        for task in self.tasks:
            self._running[task.name] = asyncio.create_task(
                self._loop(task), name=f"maintenance-{task.name}"
            )
        logger.info(
            "Maintenance scheduler started: %s",
            ", ".join(f"{t.name} every {t.interval_seconds:g}s" for t in self.tasks),
        )

    async def stop(self) -> None:
        """Cancel every task loop and wait for them to finish."""
        running = list(self._running.values())
        self._running.clear()
        for loop_task in running:
            loop_task.cancel()
        for loop_task in running:
            try:
                await loop_task
            except asyncio.CancelledError:
                pass
        if running:
            logger.info("Maintenance scheduler stopped")

    async def run_once(self, name: str) -> MaintenanceResult:
        """Run a task immediately, outside its schedule.

        Raises:
            NotFoundError: If no task has this name.
        """
        for task in self.tasks:
            if task.name == name:
                return await task.fn(datetime.now(UTC))
        raise NotFoundError("maintenance_task", name)

    async def _run(self, task: MaintenanceTask) -> None:
        try:
            result = await task.fn(datetime.now(UTC))
        except Exception:
            logger.exception("Maintenance task %s failed", task.name)
            return

        logger.info(
            "Maintenance task %s completed in %dms "
            "(%d entries removed, %d secrets removed, %d subscriptions disabled)",
            task.name,
            result.duration_ms,
            result.entries_removed,
            result.secrets_removed,
            len(result.disabled_subscriptions),
        )

    async def _loop(self, task: MaintenanceTask) -> None:
        if self.run_on_start:
            await self._run(task)
        while True:
            await asyncio.sleep(task.interval_seconds)
            await self._run(task)
