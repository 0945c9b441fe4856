"""
Product catalog sync hook.

The storefront notifies us when a product is created or updated. Syncing
product and variant details into blank mappings is owned by an external
collaborator; this module only records the notification and hands it to a
configurable sync callback.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Any, Optional

from models.requests import ProductWebhookPayload
from logging_config import get_logger


logger = get_logger(__name__)


SyncCallback = Callable[[ProductWebhookPayload], None]


class CatalogSync:
    """
    Receives product notifications.

    Usage:
        sync = CatalogSync(on_product=push_to_catalog_worker)
        sync.handle(ProductWebhookPayload.from_dict(body))
    """

    def __init__(self, on_product: Optional[SyncCallback] = None):
        self._on_product = on_product
        self._lock = threading.Lock()
        self._last_seen: Dict[str, datetime] = {}

    def handle(self, payload: ProductWebhookPayload) -> None:
        """
        Process one product notification.

        Raises:
            Whatever the sync callback raises; the webhook route reports it
            as a processing failure.
        """
        logger.info(f"Product notification for {payload.admin_graphql_api_id} ({payload.title or 'untitled'})")
        if self._on_product is not None:
            self._on_product(payload)
        with self._lock:
            self._last_seen[payload.admin_graphql_api_id] = datetime.now(timezone.utc)

    def last_seen(self, product_id: str) -> Optional[datetime]:
        with self._lock:
            return self._last_seen.get(product_id)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {"products_seen": len(self._last_seen)}
