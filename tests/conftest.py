"""
Shared fixtures for the PrintFulfillment tests.

The store is seeded with two blanks:
    bella-3001 (tee):      black-m (10 on hand, 5 pre-printed), white-l (3 on hand)
    gildan-18500 (hoodie): navy-xl (4 on hand)
"""

import pytest

from core.context import OperatorContext
from core.store import FulfillmentStore
from models.order import Order
from models.line_item import LineItem
from models.inventory import Blank, BlankVariant
from services.inventory_ledger import InventoryLedger
from services.line_item_service import LineItemService
from services.hold_registry import HoldRegistry
from services.order_queue import OrderQueue
from services.batch_manager import BatchManager


# Fixtures

@pytest.fixture
def ctx():
    """Operator performing test actions."""
    return OperatorContext(actor_id="staff-1", username="Dana")


@pytest.fixture
def store():
    """Store seeded with blanks and variants."""
    store = FulfillmentStore()
    store.add_blank(
        Blank(id="bella-3001", vendor="Bella+Canvas", name="Unisex Jersey Tee", garment_type="tee"),
        [
            BlankVariant(id="black-m", blank_id="", size="md", color="Black",
                         weight_oz=5.0, volume=300, on_hand=10, preprinted=5),
            BlankVariant(id="white-l", blank_id="", size="lg", color="White",
                         weight_oz=6.0, volume=350, on_hand=3),
        ],
    )
    store.add_blank(
        Blank(id="gildan-18500", vendor="Gildan", name="Heavy Blend Hoodie", garment_type="hoodie"),
        [
            BlankVariant(id="navy-xl", blank_id="", size="xl", color="Navy",
                         weight_oz=18.0, volume=900, on_hand=4),
        ],
    )
    return store


@pytest.fixture
def add_order(store):
    """
    Factory adding an order with line items.

    ``items`` is a list of (blank_variant_id, quantity) pairs; line item ids
    are ``<order_id>-li-<n>``.
    """

    def _add(order_id, items=(("black-m", 1),), **order_kwargs):
        order = Order(id=order_id, name=f"#{order_id}", **order_kwargs)
        line_items = [
            LineItem(
                id=f"{order_id}-li-{n}",
                order_id=order_id,
                name=f"Design {n}",
                blank_variant_id=variant_id,
                quantity=quantity,
                unit_value=25.0,
            )
            for n, (variant_id, quantity) in enumerate(items, start=1)
        ]
        return store.add_order(order, line_items)

    return _add


@pytest.fixture
def ledger(store):
    return InventoryLedger(store)


@pytest.fixture
def holds(store):
    return HoldRegistry(store)


@pytest.fixture
def line_items(store, ledger):
    return LineItemService(store, ledger)


@pytest.fixture
def order_queue(store, holds):
    return OrderQueue(store, holds)


@pytest.fixture
def batches(store, holds, ledger):
    return BatchManager(store, holds, ledger)
