"""
Order queue.

Lists the orders waiting for a batch and lets staff toggle whether an order
is waiting. The listing is a read-only snapshot in priority order:

    1. Fulfillment priority (critical > urgent > priority > normal > low;
       low orders older than the promotion window count as normal)
    2. Shipping priority (fastest > express > standard)
    3. Oldest first
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Any, Iterable, List, Optional

from core.context import OperatorContext
from core.exceptions import OrderNotQueueable, ValidationError
from core.store import FulfillmentStore
from models.order import Order
from models.line_item import LineItem
from services.hold_registry import HoldRegistry
from logging_config import get_logger


logger = get_logger(__name__)


class OrderQueue:
    """Queue listing and queued-flag toggles."""

    def __init__(self, store: FulfillmentStore, holds: HoldRegistry, promotion_days: int = 28):
        self._store = store
        self._holds = holds
        self._promotion_days = promotion_days

    def list_queued(
        self,
        with_item_data: bool = False,
        include_held: bool = False,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        Queued, unassigned, uncancelled orders in priority order.

        Args:
            with_item_data: Include each order's line items
            include_held: Also list orders with an unresolved hold
            now: Reference time for low-priority promotion (tests)

        Returns:
            Order dictionaries, each with a ``held`` flag
        """
        now = now or datetime.now(timezone.utc)
        candidates = [
            order for order in list(self._store.orders.values())
            if order.queued and order.batch_id is None and not order.cancelled
        ]

        entries = []
        for order in candidates:
            held = self._holds.has_unresolved_hold(order.id)
            if held and not include_held:
                continue
            entries.append((order, held))

        entries.sort(key=lambda entry: self._sort_key(entry[0], now))

        result = []
        for order, held in entries:
            data = order.to_dict()
            data["held"] = held
            if with_item_data:
                data["line_items"] = [i.to_dict() for i in self._store.items_for_order(order.id)]
            result.append(data)
        return result

    def _sort_key(self, order: Order, now: datetime):
        return (
            -order.fulfillment_score(now, self._promotion_days),
            -order.shipping_score,
            order.created_at,
        )

    def enqueue(self, order_id: str, ctx: OperatorContext) -> Order:
        """
        Mark an order as waiting for a batch.

        An order whose batch has settled starts a new cycle: the old batch
        id moves to ``batch_history``.

        Raises:
            OrderNotFound: Unknown order
            OrderNotQueueable: Order is cancelled or still in an unsettled batch
        """
        with self._store.order_lock(order_id):
            order = self._store.get_order(order_id)
            if order.cancelled:
                raise OrderNotQueueable([order_id], reason="cancelled")

            if order.batch_id is not None:
                batch = self._store.get_batch(order.batch_id)
                if not batch.is_settled:
                    raise OrderNotQueueable([order_id], reason=f"still assigned to batch {batch.id}")
                order.batch_history.append(batch.id)
                order.batch_id = None

            order.queued = True

        logger.info(f"Order {order_id} queued by {ctx.display}")
        return order

    def dequeue(self, order_id: str, ctx: OperatorContext) -> Order:
        """Stop an order waiting for a batch. Assignment is not affected."""
        with self._store.order_lock(order_id):
            order = self._store.get_order(order_id)
            order.queued = False

        logger.info(f"Order {order_id} dequeued by {ctx.display}")
        return order

    def import_order(self, order: Order, line_items: Iterable[LineItem] = ()) -> Order:
        """
        Register an order received from the storefront.

        Raises:
            ValidationError: An order with the same id already exists
        """
        if order.id in self._store.orders:
            raise ValidationError(f"Order {order.id} already exists", field="id")
        self._store.add_order(order, line_items)
        logger.info(f"Imported order {order.id} ({order.fulfillment_priority.value}/{order.shipping_priority.value})")
        return order
