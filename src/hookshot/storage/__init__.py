"""Storage backends for Hookshot.

This module provides the storage layer for persisting subscriptions,
signing secrets, delivery ledger entries and audit entries to Qdrant.

Example:
    ```python
    from hookshot.storage import WebhookStorage

    async with WebhookStorage() as storage:
        await storage.store_subscription(subscription)
        entry = await storage.get_delivery("dlv_a1b2c3d4e5f6")
    ```
"""

from .base import COLLECTION_NAMES
from .client import StorageStats, WebhookStorage

__all__ = [
    "COLLECTION_NAMES",
    "StorageStats",
    "WebhookStorage",
]
