"""Hookshot service wiring.

Builds every webhook component from one Settings object so callers hold a
single handle.

Example:
    ```python
    from hookshot.service import WebhookService

    async with WebhookService.create() as hooks:
        subscription = await hooks.registry.register(
            tenant_id="ws_123",
            url="https://example.com/hooks",
            events=["contact.*"],
            created_by="user_42",
        )
        await hooks.emit("ws_123", "contact.created", {"contact_id": "c_1"})
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from hookshot.config import Settings
from hookshot.models import DeliveryLogEntry
from hookshot.storage import WebhookStorage
from hookshot.webhooks import (
    DeliveryExecutor,
    HealthMonitor,
    ReplayEngine,
    RetryCoordinator,
    SecretManager,
    WebhookDispatcher,
    WebhookRegistry,
    dispatch_webhook_event,
)
from hookshot.workers import MaintenanceScheduler


@dataclass
class WebhookService:
    """Webhook delivery subsystem with its collaborators wired together.

    Attributes:
        settings: Configuration the components were built from.
        storage: Qdrant-backed storage.
        executor: Single-attempt HTTP executor.
        coordinator: Retry wrapper around the executor.
        health: Health counters and ledger statistics.
        dispatcher: Event fan-out entry point.
        secrets: Secret rotation and verification.
        replays: Manual replay of logged deliveries.
        registry: Subscription management.
        scheduler: Periodic cleanup and disable checks.
    """

    settings: Settings
    storage: WebhookStorage
    executor: DeliveryExecutor
    coordinator: RetryCoordinator
    health: HealthMonitor
    dispatcher: WebhookDispatcher
    secrets: SecretManager
    replays: ReplayEngine
    registry: WebhookRegistry
    scheduler: MaintenanceScheduler

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        storage: WebhookStorage | None = None,
        executor: DeliveryExecutor | None = None,
    ) -> WebhookService:
        """Create a WebhookService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.
            storage: Storage to use instead of one built from settings.
            executor: Executor to use instead of one built from settings.

        Returns:
            Configured WebhookService instance.
        """
        if settings is None:
            settings = Settings()

        if storage is None:
            storage = WebhookStorage(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                prefix=settings.collection_prefix,
            )
        if executor is None:
            executor = DeliveryExecutor(
                timeout_seconds=settings.delivery_timeout_seconds,
                user_agent=settings.user_agent,
            )

        coordinator = RetryCoordinator(
            executor,
            max_retries=settings.max_retries,
            delays=settings.retry_delays,
        )
        health = HealthMonitor(
            storage,
            max_failed_attempts=settings.max_failed_attempts,
            unhealthy_failure_threshold=settings.unhealthy_failure_threshold,
            healthy_success_rate=settings.healthy_success_rate,
            window_days=settings.health_window_days,
        )
        secrets = SecretManager(storage)

        return cls(
            settings=settings,
            storage=storage,
            executor=executor,
            coordinator=coordinator,
            health=health,
            dispatcher=WebhookDispatcher(storage, coordinator, health),
            secrets=secrets,
            replays=ReplayEngine(
                storage, executor, secrets, max_age_days=settings.replay_max_age_days
            ),
            registry=WebhookRegistry(storage, executor, secrets),
            scheduler=MaintenanceScheduler.for_webhooks(
                health,
                secrets,
                cleanup_interval_seconds=settings.cleanup_interval_seconds,
                disable_check_interval_seconds=settings.disable_check_interval_seconds,
            ),
        )

    async def initialize(self) -> None:
        """Initialize storage collections."""
        await self.storage.initialize()

    async def close(self) -> None:
        """Stop maintenance, drain background dispatches and close storage."""
        await self.scheduler.stop()
        await self.dispatcher.aclose()
        await self.storage.close()

    async def __aenter__(self) -> WebhookService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def emit(
        self,
        tenant_id: str,
        event_type: str,
        data: dict[str, Any] | None = None,
    ) -> list[DeliveryLogEntry]:
        """Create an event and deliver it to every matching subscription."""
        return await dispatch_webhook_event(
            self.dispatcher,
            tenant_id,
            event_type,
            data=data,
            source=self.settings.event_source,
        )


__all__ = ["WebhookService"]
