"""
Thread-safe in-process store for fulfillment state.

The store holds every entity in plain dictionaries and hands out the locks
services need to keep their invariants:

    - variant_lock(id): serialises ledger adjustments to one BlankVariant
    - order_lock(id):   serialises line-item transitions, queue toggles and
                        batch assignment for one Order (re-entrant)
    - active_batch:     compare-and-set slot enforcing a single active batch

Lock ordering (always acquire in this order, never the reverse):
    order locks (sorted by id) -> variant lock -> store lock

The store lock only guards dictionary structure and id counters; it is held
for short, non-blocking sections.

Usage:
    store = FulfillmentStore()
    with store.order_lock(order_id):
        order = store.get_order(order_id)
        ...
"""

from __future__ import annotations

import itertools
import threading
from contextlib import contextmanager, ExitStack
from typing import Dict, Iterable, Iterator, List, Optional

from core.exceptions import (
    OrderNotFound,
    LineItemNotFound,
    BlankVariantNotFound,
    BatchNotFound,
    HoldNotFound,
    ShipmentNotFound,
)
from models.order import Order
from models.line_item import LineItem
from models.inventory import Blank, BlankVariant, InventoryTransaction
from models.batch import Batch
from models.hold import OrderHold
from models.shipment import Shipment
from logging_config import get_logger


logger = get_logger(__name__)


class ActiveBatchSlot:
    """
    Holder of the single active batch id.

    ``compare_and_set`` is the only way to claim or release the slot, so two
    concurrent batch creations cannot both win.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._batch_id: Optional[int] = None

    @property
    def current(self) -> Optional[int]:
        with self._lock:
            return self._batch_id

    def compare_and_set(self, expected: Optional[int], new: Optional[int]) -> bool:
        """
        Set the slot to ``new`` only if it currently holds ``expected``.

        Returns:
            True if the swap happened
        """
        with self._lock:
            if self._batch_id != expected:
                return False
            self._batch_id = new
            return True


class FulfillmentStore:
    """In-memory repository for orders, items, inventory, batches, holds and shipments."""

    def __init__(self):
        self._lock = threading.RLock()

        self.orders: Dict[str, Order] = {}
        self.line_items: Dict[str, LineItem] = {}
        self.blanks: Dict[str, Blank] = {}
        self.variants: Dict[str, BlankVariant] = {}
        self.transactions: List[InventoryTransaction] = []
        self.batches: Dict[int, Batch] = {}
        self.holds: Dict[int, OrderHold] = {}
        self.shipments: Dict[str, Shipment] = {}

        self.active_batch = ActiveBatchSlot()

        self._variant_locks: Dict[str, threading.RLock] = {}
        self._order_locks: Dict[str, threading.RLock] = {}

        self._transaction_ids = itertools.count(1)
        self._batch_ids = itertools.count(1)
        self._hold_ids = itertools.count(1)

    # =========================================================================
    # LOCKS
    # =========================================================================

    def variant_lock(self, blank_variant_id: str) -> threading.RLock:
        """Lock serialising stock changes for one blank variant."""
        with self._lock:
            lock = self._variant_locks.get(blank_variant_id)
            if lock is None:
                lock = self._variant_locks[blank_variant_id] = threading.RLock()
            return lock

    def order_lock(self, order_id: str) -> threading.RLock:
        """Re-entrant lock serialising mutations of one order and its items."""
        with self._lock:
            lock = self._order_locks.get(order_id)
            if lock is None:
                lock = self._order_locks[order_id] = threading.RLock()
            return lock

    @contextmanager
    def order_locks(self, order_ids: Iterable[str]) -> Iterator[None]:
        """Hold the locks of several orders, acquired in sorted id order."""
        with ExitStack() as stack:
            for order_id in sorted(set(order_ids)):
                stack.enter_context(self.order_lock(order_id))
            yield

    # =========================================================================
    # ID GENERATION
    # =========================================================================

    def next_transaction_id(self) -> int:
        with self._lock:
            return next(self._transaction_ids)

    def next_batch_id(self) -> int:
        with self._lock:
            return next(self._batch_ids)

    def next_hold_id(self) -> int:
        with self._lock:
            return next(self._hold_ids)

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get_order(self, order_id: str) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def get_line_item(self, line_item_id: str) -> LineItem:
        item = self.line_items.get(line_item_id)
        if item is None:
            raise LineItemNotFound(line_item_id)
        return item

    def get_variant(self, blank_variant_id: str) -> BlankVariant:
        variant = self.variants.get(blank_variant_id)
        if variant is None:
            raise BlankVariantNotFound(blank_variant_id)
        return variant

    def get_batch(self, batch_id: int) -> Batch:
        batch = self.batches.get(batch_id)
        if batch is None:
            raise BatchNotFound(batch_id)
        return batch

    def get_hold(self, hold_id: int) -> OrderHold:
        hold = self.holds.get(hold_id)
        if hold is None:
            raise HoldNotFound(hold_id)
        return hold

    def get_shipment(self, shipment_id: str) -> Shipment:
        shipment = self.shipments.get(shipment_id)
        if shipment is None:
            raise ShipmentNotFound(shipment_id)
        return shipment

    def items_for_order(self, order_id: str) -> List[LineItem]:
        order = self.get_order(order_id)
        return [self.line_items[i] for i in order.line_item_ids if i in self.line_items]

    def holds_for_order(self, order_id: str) -> List[OrderHold]:
        order = self.get_order(order_id)
        return [self.holds[h] for h in order.hold_ids if h in self.holds]

    def shipments_for_order(self, order_id: str) -> List[Shipment]:
        order = self.get_order(order_id)
        return [self.shipments[s] for s in order.shipment_ids if s in self.shipments]

    # =========================================================================
    # WRITES
    # =========================================================================

    def add_order(self, order: Order, line_items: Iterable[LineItem] = ()) -> Order:
        """Register an order and its line items."""
        with self._lock:
            self.orders[order.id] = order
            for item in line_items:
                item.order_id = order.id
                self.line_items[item.id] = item
                if item.id not in order.line_item_ids:
                    order.line_item_ids.append(item.id)
        logger.debug(f"Stored order {order.id} with {len(order.line_item_ids)} line items")
        return order

    def add_blank(self, blank: Blank, variants: Iterable[BlankVariant] = ()) -> Blank:
        with self._lock:
            self.blanks[blank.id] = blank
            for variant in variants:
                variant.blank_id = blank.id
                self.variants[variant.id] = variant
        return blank

    def add_transaction(self, transaction: InventoryTransaction) -> None:
        with self._lock:
            self.transactions.append(transaction)

    def add_batch(self, batch: Batch) -> None:
        with self._lock:
            self.batches[batch.id] = batch

    def add_hold(self, hold: OrderHold) -> None:
        with self._lock:
            self.holds[hold.id] = hold

    def add_shipment(self, shipment: Shipment) -> None:
        with self._lock:
            self.shipments[shipment.id] = shipment

    def snapshot_transactions(self) -> List[InventoryTransaction]:
        with self._lock:
            return list(self.transactions)
