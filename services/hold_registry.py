"""
Order hold registry.

Holds block an order independently of its line items' progress. An order
may carry any number of holds at once; it is blocked while at least one is
unresolved. Resolution is one-way.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from core.context import OperatorContext
from core.exceptions import InvalidTransition, ValidationError
from core.store import FulfillmentStore
from models.hold import OrderHold, HoldCause
from logging_config import get_logger


logger = get_logger(__name__)


class HoldRegistry:
    """Create, resolve and query order holds."""

    def __init__(self, store: FulfillmentStore):
        self._store = store

    def create_hold(
        self,
        order_id: str,
        cause: HoldCause,
        reason_notes: str,
        ctx: OperatorContext,
    ) -> OrderHold:
        """
        Put a hold on an order.

        Args:
            order_id: Order to block
            cause: Hold category
            reason_notes: Why the order is blocked (required)
            ctx: Operator

        Returns:
            The new, unresolved hold

        Raises:
            OrderNotFound: Unknown order
            ValidationError: Empty reason notes
        """
        if not reason_notes or not reason_notes.strip():
            raise ValidationError("Hold reason notes are required", field="reason_notes")

        with self._store.order_lock(order_id):
            order = self._store.get_order(order_id)
            hold = OrderHold(
                id=self._store.next_hold_id(),
                order_id=order.id,
                cause=cause,
                reason_notes=reason_notes.strip(),
                created_by=ctx.actor_id,
                created_at=datetime.now(timezone.utc),
            )
            self._store.add_hold(hold)
            order.hold_ids.append(hold.id)

        logger.info(f"Hold {hold.id} ({cause.value}) placed on order {order_id} by {ctx.display}")
        return hold

    def resolve_hold(
        self,
        hold_id: int,
        ctx: OperatorContext,
        resolved_notes: Optional[str] = None,
    ) -> OrderHold:
        """
        Resolve a hold.

        Raises:
            HoldNotFound: Unknown hold
            InvalidTransition: Hold already resolved
        """
        hold = self._store.get_hold(hold_id)
        with self._store.order_lock(hold.order_id):
            if hold.is_resolved:
                raise InvalidTransition(
                    f"Hold {hold_id} is already resolved",
                    current_state="resolved",
                    hold_id=hold_id,
                )
            hold.resolved_at = datetime.now(timezone.utc)
            hold.resolved_notes = resolved_notes
            hold.resolved_by = ctx.actor_id

        logger.info(f"Hold {hold_id} on order {hold.order_id} resolved by {ctx.display}")
        return hold

    def has_unresolved_hold(self, order_id: str) -> bool:
        return any(not h.is_resolved for h in self._store.holds_for_order(order_id))

    def list_holds(self, order_id: str) -> List[OrderHold]:
        """All holds of an order, oldest first."""
        return sorted(self._store.holds_for_order(order_id), key=lambda h: h.id)

    def list_unresolved(self, order_id: Optional[str] = None) -> List[OrderHold]:
        """Unresolved holds, for one order or system-wide."""
        if order_id is not None:
            holds = self._store.holds_for_order(order_id)
        else:
            holds = list(self._store.holds.values())
        return sorted((h for h in holds if not h.is_resolved), key=lambda h: h.id)
