"""Signing-secret storage operations for Hookshot."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from qdrant_client import models

from .base import created_between, match
from .retry import qdrant_retry

if TYPE_CHECKING:
    from hookshot.models import SubscriptionSecret


class SecretMixin:
    """Mixin providing secret-history operations for WebhookStorage.

    Secret rows are only ever appended or flagged; the sole deletions are
    the cascade on subscription delete and the cleanup of expired,
    inactive rows.
    """

    _upsert: Any
    _retrieve: Any
    _scroll_all: Any
    _delete_where: Any
    _payload_to_model: Any

    @qdrant_retry
    async def store_secret(self, secret: SubscriptionSecret) -> str:
        """Store (or update) a secret row.

        Args:
            secret: SubscriptionSecret to store.

        Returns:
            The secret ID.
        """
        await self._upsert("secrets", secret.id, secret)
        return secret.id

    @qdrant_retry
    async def get_secret(self, secret_id: str) -> SubscriptionSecret | None:
        """Get a secret row by ID."""
        from hookshot.models import SubscriptionSecret

        payload = await self._retrieve("secrets", secret_id)
        if payload is None:
            return None
        secret: SubscriptionSecret = self._payload_to_model(payload, SubscriptionSecret)
        return secret

    @qdrant_retry
    async def list_secrets(self, subscription_id: str) -> list[SubscriptionSecret]:
        """List a subscription's secret history, newest first.

        Args:
            subscription_id: Owning subscription.

        Returns:
            List of SubscriptionSecret.
        """
        from hookshot.models import SubscriptionSecret

        payloads = await self._scroll_all(
            "secrets",
            models.Filter(must=[match("subscription_id", subscription_id)]),
        )
        secrets = [self._payload_to_model(p, SubscriptionSecret) for p in payloads]
        secrets.sort(key=lambda s: s.created_at, reverse=True)
        return secrets

    @qdrant_retry
    async def delete_secrets_for_subscription(self, subscription_id: str) -> int:
        """Delete every secret of a subscription.

        Returns:
            Number of secret rows removed.
        """
        removed: int = await self._delete_where(
            "secrets",
            models.Filter(must=[match("subscription_id", subscription_id)]),
        )
        return removed

    @qdrant_retry
    async def delete_expired_secrets(self, now: datetime) -> int:
        """Delete inactive secrets whose expiry has passed.

        Args:
            now: Reference time.

        Returns:
            Number of secret rows removed.
        """
        removed: int = await self._delete_where(
            "secrets",
            models.Filter(
                must=[
                    match("is_active", False),
                    created_between(before=now, key="expires_ts"),
                ]
            ),
        )
        return removed
