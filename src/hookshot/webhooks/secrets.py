"""Signing-secret rotation and verification.

Each subscription keeps an append-only history of secrets. Exactly one
secret signs new deliveries. Rotating moves signing to a fresh secret and
leaves the old one valid for verification until a grace period ends, so
deliveries signed just before the rotation still verify on the receiver.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from hookshot.config import settings
from hookshot.exceptions import NotFoundError, ValidationError
from hookshot.models import (
    AuditEntry,
    SecretRotationResult,
    SecretStats,
    SubscriptionSecret,
)

from .signing import generate_secret, verify_signature

if TYPE_CHECKING:
    from hookshot.models import Subscription
    from hookshot.storage import WebhookStorage

logger = logging.getLogger(__name__)


class SecretManager:
    """Manages the signing-secret history of subscriptions.

    Example:
        ```python
        secrets = SecretManager(storage)
        rotation = await secrets.rotate_secret(subscription.id, rotated_by="user_42")
        print(rotation.new_secret.prefix, rotation.grace_period_ends)

        ok = await secrets.validate_signature(subscription.id, raw_body, signature)
        ```
    """

    def __init__(self, storage: WebhookStorage) -> None:
        self._storage = storage

    async def create_initial_secret(
        self,
        subscription: Subscription,
        created_by: str | None = None,
    ) -> SubscriptionSecret:
        """Record a newly registered subscription's secret as its first history row."""
        secret = SubscriptionSecret(
            subscription_id=subscription.id,
            secret=subscription.secret,
            created_by=created_by,
        )
        await self._storage.store_secret(secret)
        return secret

    async def rotate_secret(
        self,
        subscription_id: str,
        rotated_by: str,
        grace_period_hours: int | None = None,
        new_secret: str | None = None,
    ) -> SecretRotationResult:
        """Replace the signing secret of a subscription.

        Args:
            subscription_id: Subscription to rotate.
            rotated_by: Actor performing the rotation.
            grace_period_hours: How long previous secrets keep verifying.
                Defaults to settings.secret_grace_period_hours (24).
            new_secret: Explicit secret value; generated when omitted.

        Returns:
            SecretRotationResult with the new secret and the rotated-out ids.

        Raises:
            NotFoundError: If the subscription does not exist.
            ValidationError: If new_secret is too short.
        """
        if new_secret is not None and len(new_secret) < settings.min_secret_length:
            raise ValidationError(
                "secret", f"must be at least {settings.min_secret_length} characters"
            )

        hours = (
            grace_period_hours
            if grace_period_hours is not None
            else settings.secret_grace_period_hours
        )
        now = datetime.now(UTC)
        grace_ends = now + timedelta(hours=hours)
        replacement = SubscriptionSecret(
            subscription_id=subscription_id,
            secret=new_secret or generate_secret(),
            created_by=rotated_by,
            created_at=now,
        )

        def _switch_secret(subscription: Subscription) -> None:
            subscription.secret = replacement.secret

        subscription, _ = await self._storage.modify_subscription(subscription_id, _switch_secret)
        if subscription is None:
            raise NotFoundError("subscription", subscription_id)

        previous_ids: list[str] = []
        for previous in await self._storage.list_secrets(subscription_id):
            if not previous.is_active:
                continue
            previous.is_active = False
            previous.expires_at = grace_ends
            await self._storage.store_secret(previous)
            previous_ids.append(previous.id)

        await self._storage.store_secret(replacement)
        await self._storage.log_audit(
            AuditEntry.for_secret_rotated(
                subscription_id=subscription_id,
                tenant_id=subscription.tenant_id,
                actor=rotated_by,
                new_secret_id=replacement.id,
                grace_period_hours=hours,
            )
        )

        logger.info(
            "Rotated secret for subscription %s (%d previous secret(s) expire at %s)",
            subscription_id,
            len(previous_ids),
            grace_ends.isoformat(),
        )
        return SecretRotationResult(
            new_secret=replacement,
            previous_secret_ids=previous_ids,
            grace_period_ends=grace_ends if previous_ids else None,
        )

    async def revoke_secret(self, secret_id: str, revoked_by: str) -> SubscriptionSecret:
        """Revoke a secret immediately, ending its grace period.

        The current signing secret cannot be revoked; rotate first.

        Args:
            secret_id: Secret to revoke.
            revoked_by: Actor performing the revocation.

        Returns:
            The revoked secret.

        Raises:
            NotFoundError: If the secret does not exist.
            ValidationError: If the secret is the active signing secret.
        """
        secret = await self._storage.get_secret(secret_id)
        if secret is None:
            raise NotFoundError("secret", secret_id)
        if secret.is_active:
            raise ValidationError(
                "secret_id", "cannot revoke the active signing secret; rotate it first"
            )

        now = datetime.now(UTC)
        secret.revoked_at = now
        secret.expires_at = now
        await self._storage.store_secret(secret)

        subscription = await self._storage.get_subscription(secret.subscription_id)
        if subscription is not None:
            await self._storage.log_audit(
                AuditEntry.for_secret_revoked(
                    subscription_id=subscription.id,
                    tenant_id=subscription.tenant_id,
                    actor=revoked_by,
                    secret_id=secret_id,
                )
            )

        logger.info("Revoked secret %s of subscription %s", secret_id, secret.subscription_id)
        return secret

    async def get_active_secret(self, subscription_id: str) -> SubscriptionSecret | None:
        """Get the secret that currently signs deliveries, if any."""
        now = datetime.now(UTC)
        for secret in await self._storage.list_secrets(subscription_id):
            if secret.can_sign(now):
                return secret
        return None

    async def get_verification_secrets(self, subscription_id: str) -> list[SubscriptionSecret]:
        """Get every secret whose signatures are currently accepted, newest first."""
        now = datetime.now(UTC)
        return [s for s in await self._storage.list_secrets(subscription_id) if s.can_verify(now)]

    async def validate_signature(
        self,
        subscription_id: str,
        payload: str,
        signature: str,
    ) -> bool:
        """Check a signature against every secret still accepted for a subscription.

        Args:
            subscription_id: Subscription the payload was signed for.
            payload: Raw signed body.
            signature: Signature header value.

        Returns:
            True if any verifying secret produced the signature.
        """
        return any(
            verify_signature(payload, signature, s.secret)
            for s in await self.get_verification_secrets(subscription_id)
        )

    async def cleanup_expired_secrets(self) -> int:
        """Delete rotated-out secrets whose grace period has ended.

        Returns:
            Number of secret rows removed.
        """
        removed = await self._storage.delete_expired_secrets(datetime.now(UTC))
        if removed:
            logger.info("Removed %d expired secret(s)", removed)
        return removed

    async def get_secret_stats(self, subscription_id: str) -> SecretStats:
        """Summarize a subscription's secret history."""
        now = datetime.now(UTC)
        secrets = await self._storage.list_secrets(subscription_id)
        rotations = [s.created_at for s in secrets[:-1]] if len(secrets) > 1 else []
        return SecretStats(
            total_secrets=len(secrets),
            active_secrets=sum(1 for s in secrets if s.can_sign(now)),
            verifying_secrets=sum(1 for s in secrets if s.can_verify(now)),
            expired_secrets=sum(1 for s in secrets if s.is_expired(now)),
            last_rotated_at=max(rotations, default=None),
        )
