"""Base storage class and helpers.

Contains initialization, collection management, and shared utilities.
Qdrant is used as a payload store: every point carries a one-dimensional
placeholder vector and all lookups go through payload filters.
"""

from __future__ import annotations

import asyncio
import hashlib
from collections import defaultdict
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models

from hookshot.config import settings
from hookshot.exceptions import StorageError

ModelT = TypeVar("ModelT", bound=BaseModel)

# Collection suffixes by record kind
COLLECTION_NAMES = {
    "subscriptions": "subscriptions",
    "secrets": "secrets",
    "deliveries": "deliveries",
    "audit": "audit",
}

# Keyword-indexed payload fields per collection
KEYWORD_INDEXES = {
    "subscriptions": ("tenant_id",),
    "secrets": ("subscription_id",),
    "deliveries": ("tenant_id", "subscription_id", "replayed_from"),
    "audit": ("tenant_id", "subscription_id"),
}

# Epoch-seconds mirrors of datetime fields, used for range filters
TIMESTAMP_FIELDS = {
    "created_at": "created_ts",
    "expires_at": "expires_ts",
    "timestamp": "created_ts",
}

PLACEHOLDER_VECTOR = [1.0]

SCROLL_PAGE_SIZE = 256


class StorageBase:
    """Base class for Hookshot storage with initialization and helpers.

    Provides:
    - Client initialization and lifecycle management
    - Collection creation and indexing
    - Record id to point ID conversion
    - Payload serialization/deserialization
    - Per-subscription locks for read-modify-write updates
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._client: AsyncQdrantClient | None = None
        self._collections_initialized = False
        self._subscription_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized.

        Raises:
            StorageError: If initialize() has not been called.
        """
        if self._client is None:
            raise StorageError("Storage not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        """Initialize the storage client and ensure collections exist."""
        if self._client is None:
            self._client = AsyncQdrantClient(
                url=self._url,
                api_key=self._api_key,
            )
        await self._ensure_collections()
        self._collections_initialized = True

    async def close(self) -> None:
        """Close the storage client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._collections_initialized = False

    async def __aenter__(self) -> StorageBase:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    def _collection_name(self, kind: str) -> str:
        """Get full collection name with prefix."""
        suffix = COLLECTION_NAMES.get(kind, kind)
        return f"{self._prefix}_{suffix}"

    @staticmethod
    def _key_to_point_id(key: str) -> str:
        """Convert a record id to a valid Qdrant point ID.

        Qdrant requires point IDs to be UUIDs or unsigned integers.
        We hash the key to create a deterministic UUID-format string.
        """
        h = hashlib.sha256(key.encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    def _subscription_lock(self, subscription_id: str) -> asyncio.Lock:
        """Lock serializing read-modify-write updates of one subscription."""
        return self._subscription_locks[subscription_id]

    async def _ensure_collections(self) -> None:
        """Ensure all required collections exist with proper schemas."""
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for kind in COLLECTION_NAMES:
            collection_name = self._collection_name(kind)
            if collection_name in existing:
                continue

            await self.client.create_collection(
                collection_name=collection_name,
                vectors_config=models.VectorParams(
                    size=len(PLACEHOLDER_VECTOR),
                    distance=models.Distance.DOT,
                ),
            )
            await self._create_indexes(kind, collection_name)

    async def _create_indexes(self, kind: str, collection_name: str) -> None:
        """Create payload indexes for efficient filtering."""
        for field_name in KEYWORD_INDEXES.get(kind, ()):
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name=field_name,
                field_schema=models.PayloadSchemaType.KEYWORD,
            )
        if kind in ("deliveries", "audit"):
            await self.client.create_payload_index(
                collection_name=collection_name,
                field_name="created_ts",
                field_schema=models.PayloadSchemaType.FLOAT,
            )

    def _model_to_payload(self, record: BaseModel) -> dict[str, Any]:
        """Convert a model to a Qdrant payload with range-filterable timestamps."""
        data = record.model_dump(mode="json")
        for field_name, ts_field in TIMESTAMP_FIELDS.items():
            value = getattr(record, field_name, None)
            if isinstance(value, datetime):
                data[ts_field] = value.timestamp()
            elif field_name in data:
                data[ts_field] = None
        return data

    def _payload_to_model(self, payload: dict[str, Any], model_class: type[ModelT]) -> ModelT:
        """Convert a Qdrant payload back to a model."""
        data = {k: v for k, v in payload.items() if k in model_class.model_fields}
        return model_class.model_validate(data)

    async def _upsert(self, kind: str, record_id: str, record: BaseModel) -> None:
        """Insert or replace one record."""
        await self.client.upsert(
            collection_name=self._collection_name(kind),
            points=[
                models.PointStruct(
                    id=self._key_to_point_id(record_id),
                    vector=PLACEHOLDER_VECTOR,
                    payload=self._model_to_payload(record),
                )
            ],
        )

    async def _retrieve(self, kind: str, record_id: str) -> dict[str, Any] | None:
        """Fetch one record's payload by id."""
        results = await self.client.retrieve(
            collection_name=self._collection_name(kind),
            ids=[self._key_to_point_id(record_id)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return dict(results[0].payload)

    async def _scroll_all(
        self,
        kind: str,
        scroll_filter: models.Filter | None = None,
    ) -> list[dict[str, Any]]:
        """Page through every payload matching a filter."""
        payloads: list[dict[str, Any]] = []
        offset: Any = None
        while True:
            points, offset = await self.client.scroll(
                collection_name=self._collection_name(kind),
                scroll_filter=scroll_filter,
                limit=SCROLL_PAGE_SIZE,
                offset=offset,
                with_payload=True,
                with_vectors=False,
            )
            payloads.extend(dict(p.payload) for p in points if p.payload is not None)
            if offset is None:
                return payloads

    async def _delete_where(self, kind: str, delete_filter: models.Filter) -> int:
        """Delete every record matching a filter, returning how many were removed."""
        collection = self._collection_name(kind)
        counted = await self.client.count(
            collection_name=collection,
            count_filter=delete_filter,
            exact=True,
        )
        if counted.count == 0:
            return 0

        await self.client.delete(
            collection_name=collection,
            points_selector=models.FilterSelector(filter=delete_filter),
        )
        return counted.count


def match(key: str, value: Any) -> models.FieldCondition:
    """Exact-match payload condition."""
    return models.FieldCondition(key=key, match=models.MatchValue(value=value))


def created_between(
    since: datetime | None = None,
    before: datetime | None = None,
    key: str = "created_ts",
) -> models.FieldCondition:
    """Range condition over an epoch-seconds timestamp field."""
    return models.FieldCondition(
        key=key,
        range=models.Range(
            gte=since.timestamp() if since else None,
            lt=before.timestamp() if before else None,
        ),
    )
