"""Manual re-delivery of logged webhook deliveries.

A replay re-sends the payload of a ledger entry (or a caller-supplied
replacement) through the normal signing and delivery path, once, with no
automatic retries. The payload gains a ``_replay`` block and the request
carries replay headers, so receivers can tell a replay from the original.

Every replay is recorded as a new ledger entry whose ``replayed_from``
points at the root of the chain, never at an intermediate replay.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, NamedTuple

from hookshot.config import settings
from hookshot.models import (
    AuditEntry,
    BulkReplayResult,
    BulkReplaySummary,
    DeliveryLogEntry,
    Event,
    ReplayCheck,
    ReplayerCount,
    ReplayRejection,
    ReplayResult,
    ReplayStats,
)

if TYPE_CHECKING:
    from hookshot.models import Subscription, SubscriptionSecret
    from hookshot.storage import WebhookStorage

    from .executor import DeliveryExecutor
    from .secrets import SecretManager

logger = logging.getLogger(__name__)

REPLAY_HEADER = "X-Webhook-Replay"
ORIGINAL_EVENT_HEADER = "X-Webhook-Original-Event-ID"
REPLAYED_BY_HEADER = "X-Webhook-Replayed-By"
REPLAYED_AT_HEADER = "X-Webhook-Replayed-At"


class _Preflight(NamedTuple):
    entry: DeliveryLogEntry | None
    subscription: Subscription | None
    secret: SubscriptionSecret | None
    reason: ReplayRejection | None


class ReplayEngine:
    """Replays logged deliveries and tracks replay lineage.

    Example:
        ```python
        replays = ReplayEngine(storage, executor, secret_manager)

        check = await replays.can_replay("dlv_a1b2c3d4e5f6")
        if check.can_replay:
            result = await replays.replay("dlv_a1b2c3d4e5f6", replayed_by="user_42")

        chain = await replays.get_replay_chain("dlv_a1b2c3d4e5f6")
        ```
    """

    def __init__(
        self,
        storage: WebhookStorage,
        executor: DeliveryExecutor,
        secrets: SecretManager,
        max_age_days: int | None = None,
    ) -> None:
        """Initialize the replay engine.

        Args:
            storage: WebhookStorage instance.
            executor: Executor used for the single replay attempt.
            secrets: SecretManager providing the active signing secret.
            max_age_days: Replay window. Defaults to settings.replay_max_age_days (30).
        """
        self._storage = storage
        self._executor = executor
        self._secrets = secrets
        self._max_age = timedelta(days=max_age_days or settings.replay_max_age_days)

    async def _preflight(self, log_id: str, now: datetime) -> _Preflight:
        """Run the replay preconditions in order, stopping at the first failure."""
        entry = await self._storage.get_delivery(log_id)
        if entry is None:
            return _Preflight(None, None, None, ReplayRejection.LOG_NOT_FOUND)

        subscription = await self._storage.get_subscription(entry.subscription_id)
        if subscription is None or not subscription.is_active:
            return _Preflight(entry, subscription, None, ReplayRejection.SUBSCRIPTION_INACTIVE)

        secret = await self._secrets.get_active_secret(subscription.id)
        if secret is None:
            return _Preflight(entry, subscription, None, ReplayRejection.NO_ACTIVE_SECRET)

        if now - entry.created_at > self._max_age:
            return _Preflight(entry, subscription, secret, ReplayRejection.TOO_OLD_TO_REPLAY)

        return _Preflight(entry, subscription, secret, None)

    async def can_replay(self, log_id: str) -> ReplayCheck:
        """Check whether a ledger entry can be replayed, without replaying it.

        Args:
            log_id: Ledger entry to check.

        Returns:
            ReplayCheck with the first failing precondition as ``reason``.
        """
        preflight = await self._preflight(log_id, datetime.now(UTC))
        return ReplayCheck(can_replay=preflight.reason is None, reason=preflight.reason)

    async def replay(
        self,
        log_id: str,
        replayed_by: str,
        custom_payload: dict[str, Any] | None = None,
    ) -> ReplayResult:
        """Re-deliver a logged delivery once.

        Precondition failures are returned as a result with ``reason`` set;
        no HTTP call is made in that case.

        Args:
            log_id: Ledger entry to replay.
            replayed_by: Actor triggering the replay.
            custom_payload: Replacement for the logged payload.

        Returns:
            ReplayResult describing the outcome.
        """
        now = datetime.now(UTC)
        entry, subscription, secret, reason = await self._preflight(log_id, now)
        if reason is not None:
            logger.info("Replay of %s rejected: %s", log_id, reason.value)
            return ReplayResult(log_id=log_id, success=False, reason=reason)

        assert entry is not None and subscription is not None and secret is not None

        root_id = entry.replayed_from or entry.id
        original_event_id = entry.original_event_id or entry.event_id
        payload = dict(custom_payload if custom_payload is not None else entry.payload)
        payload["_replay"] = {
            "original_event_id": original_event_id,
            "replayed_at": now.isoformat(),
            "replayed_by": replayed_by,
            "original_timestamp": (entry.event_timestamp or entry.created_at).isoformat(),
        }

        event = Event(
            type=entry.event_type,  # type: ignore[arg-type]
            tenant_id=subscription.tenant_id,
            data=payload,
            source=entry.source or settings.event_source,
            timestamp=now,
        )
        result = await self._executor.deliver(
            str(subscription.url),
            event,
            secret.secret,
            extra_headers={
                REPLAY_HEADER: "true",
                ORIGINAL_EVENT_HEADER: original_event_id,
                REPLAYED_BY_HEADER: replayed_by,
                REPLAYED_AT_HEADER: now.isoformat(),
            },
        )

        new_entry = DeliveryLogEntry.from_result(
            result,
            subscription_id=subscription.id,
            tenant_id=subscription.tenant_id,
            event_id=event.id,
            event_type=event.type,
            payload=payload,
            source=event.source,
            event_timestamp=event.timestamp,
            replayed_from=root_id,
            replayed_by=replayed_by,
            replayed_at=now,
            original_event_id=original_event_id,
        )
        await self._storage.log_delivery(new_entry)
        await self._storage.log_audit(
            AuditEntry.for_replayed(
                subscription_id=subscription.id,
                tenant_id=subscription.tenant_id,
                actor=replayed_by,
                original_log_id=log_id,
                new_log_id=new_entry.id,
                success=result.success,
                custom_payload=custom_payload is not None,
            )
        )

        logger.info(
            "Replayed %s as %s (success=%s, status=%s)",
            log_id,
            new_entry.id,
            result.success,
            result.status_code,
        )
        return ReplayResult(
            log_id=log_id,
            success=result.success,
            new_log_id=new_entry.id,
            status_code=result.status_code,
            response_time_ms=result.response_time_ms,
            error=result.error,
        )

    async def bulk_replay(
        self,
        log_ids: Sequence[str],
        replayed_by: str,
        skip_failures: bool = True,
    ) -> BulkReplayResult:
        """Replay several deliveries one after another.

        A replay that raises is recorded as a failed result carrying the
        error, so one storage failure does not abort the batch.

        Args:
            log_ids: Ledger entries to replay, in order.
            replayed_by: Actor triggering the replays.
            skip_failures: If False, stop at the first unsuccessful replay.

        Returns:
            BulkReplayResult with per-id results and summary counts.
        """
        summary = BulkReplaySummary(total=len(log_ids))
        results: list[ReplayResult] = []

        for log_id in log_ids:
            try:
                result = await self.replay(log_id, replayed_by)
            except Exception as e:
                logger.exception("Bulk replay of %s failed", log_id)
                result = ReplayResult(log_id=log_id, success=False, error=str(e))
            results.append(result)
            summary.processed += 1
            if result.success:
                summary.successful += 1
                continue

            summary.failed += 1
            if not skip_failures:
                summary.skipped = summary.total - summary.processed
                logger.info(
                    "Bulk replay stopped at %s, skipping %d", log_id, summary.skipped
                )
                break

        return BulkReplayResult(results=results, summary=summary)

    async def get_replay_chain(self, log_id: str) -> list[DeliveryLogEntry]:
        """Get a delivery's root entry followed by all its replays, oldest first.

        ``log_id`` may identify the root or any replay in the chain.

        Args:
            log_id: Any entry of the chain.

        Returns:
            ``[root, *replays]``; empty if the entry does not exist. The root
            is omitted if it has already been purged.
        """
        entry = await self._storage.get_delivery(log_id)
        if entry is None:
            return []

        root_id = entry.replayed_from or entry.id
        root = await self._storage.get_delivery(root_id) if entry.is_replay else entry
        replays = await self._storage.get_replays_of(root_id)
        return ([root] if root is not None else []) + replays

    async def get_replay_history(self, log_id: str) -> list[DeliveryLogEntry]:
        """Get only the replays in a delivery's chain, oldest first."""
        return [e for e in await self.get_replay_chain(log_id) if e.is_replay]

    async def get_replay_stats(self, tenant_id: str, days: int = 30) -> ReplayStats:
        """Summarize replay activity in a tenant.

        Args:
            tenant_id: Tenant to summarize.
            days: Trailing window.

        Returns:
            ReplayStats for the window.
        """
        since = datetime.now(UTC) - timedelta(days=days)
        replays = await self._storage.get_deliveries_since(
            since, tenant_id=tenant_id, replays_only=True
        )
        successful = sum(1 for r in replays if r.success)
        replayers = Counter(r.replayed_by or "unknown" for r in replays)

        return ReplayStats(
            total_replays=len(replays),
            successful_replays=successful,
            failed_replays=len(replays) - successful,
            unique_originals=len({r.replayed_from for r in replays}),
            top_replayers=[
                ReplayerCount(replayed_by=actor, count=count)
                for actor, count in replayers.most_common(10)
            ],
        )
