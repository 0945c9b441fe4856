"""
Unit tests for the product catalog sync hook.
"""

from unittest.mock import Mock

import pytest

from models.requests import ProductWebhookPayload
from modules.catalog_sync import CatalogSync


# Fixtures

@pytest.fixture
def payload():
    return ProductWebhookPayload.from_dict({"admin_graphql_api_id": "gid://shopify/Product/7", "title": "Tee"})


class TestCatalogSync:
    """Test notification handling."""

    def test_callback_receives_payload(self, payload):
        callback = Mock()
        sync = CatalogSync(on_product=callback)

        sync.handle(payload)

        callback.assert_called_once_with(payload)
        assert sync.last_seen("gid://shopify/Product/7") is not None
        assert sync.stats() == {"products_seen": 1}

    def test_callback_failure_propagates(self, payload):
        sync = CatalogSync(on_product=Mock(side_effect=RuntimeError("down")))

        with pytest.raises(RuntimeError):
            sync.handle(payload)
        assert sync.last_seen("gid://shopify/Product/7") is None

    def test_without_callback(self, payload):
        sync = CatalogSync()
        sync.handle(payload)
        assert sync.stats()["products_seen"] == 1
