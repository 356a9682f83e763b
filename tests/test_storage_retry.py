"""Tests for storage retry behavior on transient Qdrant failures."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest
from qdrant_client.http.exceptions import UnexpectedResponse

from hookshot.models import AuditEntry, DeliveryLogEntry
from hookshot.storage import WebhookStorage
from hookshot.storage.retry import _is_retryable_qdrant_error


def _unexpected(status_code: int) -> UnexpectedResponse:
    return UnexpectedResponse(
        status_code=status_code,
        reason_phrase="error",
        content=b"error",
        headers=httpx.Headers({}),
    )


def _storage_with(mock_client: AsyncMock) -> WebhookStorage:
    store = WebhookStorage(prefix="test")
    store._client = mock_client
    return store


class TestIsRetryable:
    """Tests for the retry predicate."""

    def test_connect_error(self):
        assert _is_retryable_qdrant_error(httpx.ConnectError("Connection refused"))

    def test_timeout(self):
        assert _is_retryable_qdrant_error(httpx.ReadTimeout("timed out"))

    def test_server_error(self):
        assert _is_retryable_qdrant_error(_unexpected(503))

    def test_client_error(self):
        assert not _is_retryable_qdrant_error(_unexpected(400))
        assert not _is_retryable_qdrant_error(_unexpected(404))

    def test_other_exceptions(self):
        assert not _is_retryable_qdrant_error(ValueError("bad"))


class TestLedgerRetry:
    """Tests for ledger write retry behavior."""

    async def test_log_delivery_retries_on_transient_failure(self) -> None:
        """log_delivery should retry on ConnectError and succeed on second attempt."""
        mock_client = AsyncMock()
        mock_client.upsert = AsyncMock(side_effect=[httpx.ConnectError("Connection refused"), None])
        store = _storage_with(mock_client)

        entry = DeliveryLogEntry(
            subscription_id="whk_1",
            tenant_id="ws_1",
            event_id="evt_1",
            event_type="contact.created",
            success=True,
        )

        assert await store.log_delivery(entry) == entry.id
        assert mock_client.upsert.call_count == 2

    async def test_log_delivery_does_not_retry_client_error(self) -> None:
        """log_delivery should not retry on 4xx client errors."""
        mock_client = AsyncMock()
        mock_client.upsert = AsyncMock(side_effect=_unexpected(400))
        store = _storage_with(mock_client)

        entry = DeliveryLogEntry(
            subscription_id="whk_1",
            tenant_id="ws_1",
            event_id="evt_1",
            event_type="contact.created",
            success=False,
        )

        with pytest.raises(UnexpectedResponse):
            await store.log_delivery(entry)
        assert mock_client.upsert.call_count == 1


class TestAuditRetry:
    async def test_log_audit_retries_on_server_error(self) -> None:
        """log_audit should retry on 5xx server errors."""
        mock_client = AsyncMock()
        mock_client.upsert = AsyncMock(side_effect=[_unexpected(503), None])
        store = _storage_with(mock_client)

        entry = AuditEntry.for_deleted(
            subscription_id="whk_1", tenant_id="ws_1", actor="user_1", deliveries_removed=0
        )

        assert await store.log_audit(entry) == entry.id
        assert mock_client.upsert.call_count == 2
