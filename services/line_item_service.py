"""
Line item state machine.

Drives a LineItem through its completion statuses and issues the inventory
ledger adjustment each transition implies. The ledger step always runs
before the item is touched, so a rejected adjustment (InsufficientStock,
InsufficientPrestock) leaves the status exactly as it was.

Transitions:
    mark_printed     not_printed | partially_printed -> partially_printed | printed
                     consumes quantity on-hand blanks (once per cycle)
    mark_stocked     not_printed | partially_printed -> in_stock
                     consumes quantity pre-printed units (once per cycle)
    mark_oos         any but oos_blank -> oos_blank
                     skips the order's unfinished siblings (restored by reset)
    reset            any but not_printed -> not_printed
                     returns everything the item holds unless opted out
    mark_skipped     -> skipped  (no ledger effect)
    mark_ignored     -> ignore   (no ledger effect)
    report_misprint  no status change; one blank written off as misprint

Conservation:
    ``consumed_on_hand`` / ``consumed_preprinted`` track what the item holds.
    The ledger's net change for the item (misprints aside) always equals
    minus their sum, so a default reset brings it back to zero.

Thread Safety:
    Every transition runs under the order lock, which also covers the
    sibling items touched by mark_oos / reset. Ledger adjustments take the
    variant lock inside it.
"""

from __future__ import annotations

from typing import Dict, Optional

from core.context import OperatorContext
from core.exceptions import InvalidTransition
from core.store import FulfillmentStore
from models.order import Order
from models.line_item import LineItem, CompletionStatus, TERMINAL_STATUSES
from models.inventory import StockField, TransactionReason
from services.inventory_ledger import InventoryLedger
from logging_config import get_logger


logger = get_logger(__name__)


WORKABLE_STATUSES = frozenset({
    CompletionStatus.NOT_PRINTED,
    CompletionStatus.PARTIALLY_PRINTED,
})


class LineItemService:
    """
    Line item transitions tied to the inventory ledger.

    Usage:
        service = LineItemService(store, ledger)
        service.mark_printed("li-1", ctx)
        service.reset("li-1", ctx)                          # stock returned
        service.reset("li-2", ctx, restore_inventory=False)  # item keeps its blank
    """

    def __init__(self, store: FulfillmentStore, ledger: InventoryLedger):
        self._store = store
        self._ledger = ledger

    def get(self, line_item_id: str) -> LineItem:
        return self._store.get_line_item(line_item_id)

    # =========================================================================
    # PRINT / STOCK
    # =========================================================================

    def mark_printed(
        self,
        line_item_id: str,
        ctx: OperatorContext,
        print_id: Optional[str] = None,
        override: bool = False,
    ) -> LineItem:
        """
        Record printing for a line item.

        The first print of a cycle consumes ``quantity`` on-hand blanks,
        unless the item still holds blanks from an earlier cycle (reset
        with ``restore_inventory=False``). Items with several print
        locations stay PARTIALLY_PRINTED until every location is recorded.

        Args:
            line_item_id: Item to print
            ctx: Operator
            print_id: Print location recorded by this call; None records
                every outstanding location at once
            override: Allow on-hand stock to go negative (audited)

        Returns:
            The updated line item

        Raises:
            LineItemNotFound: Unknown item
            InvalidTransition: Item not printable, no blank variant, print
                already recorded, or batch already settled
            InsufficientStock: Not enough blanks and no override
        """
        item = self._store.get_line_item(line_item_id)
        with self._store.order_lock(item.order_id):
            order = self._store.get_order(item.order_id)
            self._check_open(order, item)
            self._require_status(item, WORKABLE_STATUSES, "print")
            variant_id = self._require_variant(item)

            if print_id is not None and print_id in item.completed_prints:
                raise InvalidTransition(
                    f"Print '{print_id}' already recorded for line item {item.id}",
                    current_state=item.status.value,
                    line_item_id=item.id,
                    print_id=print_id,
                )

            if item.consumed_on_hand == 0:
                self._ledger.adjust(
                    variant_id,
                    StockField.ON_HAND,
                    -item.quantity,
                    ctx,
                    TransactionReason.ASSEMBLY_USAGE,
                    line_item_id=item.id,
                    batch_id=order.batch_id,
                    override=override,
                )
                item.consumed_on_hand = item.quantity

            previous = item.status
            if print_id is None:
                _complete_all_prints(item)
            else:
                item.completed_prints.add(print_id)

            if len(item.completed_prints) >= item.required_prints:
                item.status = CompletionStatus.PRINTED
            else:
                item.status = CompletionStatus.PARTIALLY_PRINTED

        self._log_transition(item, previous, ctx)
        return item

    def mark_stocked(self, line_item_id: str, ctx: OperatorContext) -> LineItem:
        """
        Fulfill a line item from pre-printed stock.

        Raises:
            InvalidTransition: Item not in a workable status
            InsufficientPrestock: Not enough pre-printed units
        """
        item = self._store.get_line_item(line_item_id)
        with self._store.order_lock(item.order_id):
            order = self._store.get_order(item.order_id)
            self._check_open(order, item)
            self._require_status(item, WORKABLE_STATUSES, "stock")
            variant_id = self._require_variant(item)

            if item.consumed_preprinted == 0:
                self._ledger.adjust(
                    variant_id,
                    StockField.PREPRINTED,
                    -item.quantity,
                    ctx,
                    TransactionReason.ASSEMBLY_USAGE,
                    line_item_id=item.id,
                    batch_id=order.batch_id,
                )
                item.consumed_preprinted = item.quantity

            previous = item.status
            item.status = CompletionStatus.IN_STOCK

        self._log_transition(item, previous, ctx)
        return item

    # =========================================================================
    # OOS / RESET
    # =========================================================================

    def mark_oos(self, line_item_id: str, ctx: OperatorContext) -> LineItem:
        """
        Mark a line item's blank as unavailable.

        No ledger effect. The order cannot be completed, so its siblings
        that are still unfinished are marked SKIPPED; resetting this item
        puts them back in the status they had.
        """
        item = self._store.get_line_item(line_item_id)
        with self._store.order_lock(item.order_id):
            order = self._store.get_order(item.order_id)
            self._check_open(order, item)
            if item.status == CompletionStatus.OOS_BLANK:
                raise InvalidTransition(
                    f"Line item {item.id} is already marked out of stock",
                    current_state=item.status.value,
                    line_item_id=item.id,
                )

            skipped: Dict[str, CompletionStatus] = {}
            for sibling in self._store.items_for_order(order.id):
                if sibling.id == item.id or sibling.status in TERMINAL_STATUSES:
                    continue
                skipped[sibling.id] = sibling.status
                sibling.status = CompletionStatus.SKIPPED

            previous = item.status
            item.status = CompletionStatus.OOS_BLANK
            item.oos_skipped = skipped

        self._log_transition(item, previous, ctx)
        if skipped:
            logger.info(f"Order {order.id}: skipped {len(skipped)} sibling item(s) after OOS on {item.id}")
        return item

    def reset(self, line_item_id: str, ctx: OperatorContext, restore_inventory: bool = True) -> LineItem:
        """
        Return a line item to NOT_PRINTED.

        Args:
            line_item_id: Item to reset
            ctx: Operator
            restore_inventory: Return the blanks / pre-printed units the item
                holds to the ledger. With False the item keeps holding them
                and the next print or stock will not consume again.

        Raises:
            InvalidTransition: Item already NOT_PRINTED or batch settled
        """
        item = self._store.get_line_item(line_item_id)
        with self._store.order_lock(item.order_id):
            order = self._store.get_order(item.order_id)
            self._check_open(order, item)
            if item.status == CompletionStatus.NOT_PRINTED:
                raise InvalidTransition(
                    f"Line item {item.id} is already not printed",
                    current_state=item.status.value,
                    line_item_id=item.id,
                )

            if restore_inventory:
                self._restore_held_stock(item, order, ctx)

            previous = item.status
            if previous == CompletionStatus.OOS_BLANK:
                # Siblings keep their consumed stock and prints while skipped
                for sibling_id, sibling_status in item.oos_skipped.items():
                    sibling = self._store.line_items.get(sibling_id)
                    if sibling is not None and sibling.status == CompletionStatus.SKIPPED:
                        sibling.status = sibling_status
                item.oos_skipped = {}

            item.completed_prints.clear()
            item.status = CompletionStatus.NOT_PRINTED

        self._log_transition(item, previous, ctx, note="" if restore_inventory else "stock kept")
        return item

    def _restore_held_stock(self, item: LineItem, order: Order, ctx: OperatorContext) -> None:
        if item.consumed_on_hand:
            self._ledger.adjust(
                item.blank_variant_id,
                StockField.ON_HAND,
                item.consumed_on_hand,
                ctx,
                TransactionReason.CORRECTION,
                line_item_id=item.id,
                batch_id=order.batch_id,
                notes="reset",
            )
            item.consumed_on_hand = 0
        if item.consumed_preprinted:
            self._ledger.adjust(
                item.blank_variant_id,
                StockField.PREPRINTED,
                item.consumed_preprinted,
                ctx,
                TransactionReason.CORRECTION,
                line_item_id=item.id,
                batch_id=order.batch_id,
                notes="reset",
            )
            item.consumed_preprinted = 0

    # =========================================================================
    # SKIP / IGNORE / MISPRINT
    # =========================================================================

    def mark_skipped(self, line_item_id: str, ctx: OperatorContext) -> LineItem:
        """Skip a line item for this batch. No ledger effect."""
        return self._mark_terminal(line_item_id, ctx, CompletionStatus.SKIPPED)

    def mark_ignored(self, line_item_id: str, ctx: OperatorContext) -> LineItem:
        """Exclude a line item from fulfillment. No ledger effect."""
        return self._mark_terminal(line_item_id, ctx, CompletionStatus.IGNORE)

    def _mark_terminal(self, line_item_id: str, ctx: OperatorContext, status: CompletionStatus) -> LineItem:
        item = self._store.get_line_item(line_item_id)
        with self._store.order_lock(item.order_id):
            order = self._store.get_order(item.order_id)
            self._check_open(order, item)
            if item.status == status:
                raise InvalidTransition(
                    f"Line item {item.id} is already {status.value}",
                    current_state=item.status.value,
                    line_item_id=item.id,
                )
            previous = item.status
            item.status = status

        self._log_transition(item, previous, ctx)
        return item

    def report_misprint(self, line_item_id: str, ctx: OperatorContext, notes: Optional[str] = None) -> LineItem:
        """
        Write off one blank ruined while printing this item.

        The status does not change; the blank is recorded as a ``misprint``
        transaction attributed to the item.

        Raises:
            InvalidTransition: Item is not being printed or has no blank
            InsufficientStock: No blank left to write off
        """
        item = self._store.get_line_item(line_item_id)
        with self._store.order_lock(item.order_id):
            order = self._store.get_order(item.order_id)
            self._check_open(order, item)
            self._require_status(
                item,
                WORKABLE_STATUSES | {CompletionStatus.PRINTED},
                "report a misprint for",
            )
            variant_id = self._require_variant(item)
            self._ledger.adjust(
                variant_id,
                StockField.ON_HAND,
                -1,
                ctx,
                TransactionReason.MISPRINT,
                line_item_id=item.id,
                batch_id=order.batch_id,
                notes=notes,
            )

        logger.info(f"Misprint reported on line item {item.id} by {ctx.display}")
        return item

    # =========================================================================
    # GUARDS
    # =========================================================================

    def _check_open(self, order: Order, item: LineItem) -> None:
        """Items of a settled batch are frozen."""
        if order.batch_id is None:
            return
        batch = self._store.batches.get(order.batch_id)
        if batch is not None and batch.is_settled:
            raise InvalidTransition(
                f"Batch {batch.id} is settled; line item {item.id} can no longer change",
                current_state=item.status.value,
                line_item_id=item.id,
                batch_id=batch.id,
            )

    @staticmethod
    def _require_status(item: LineItem, allowed, action: str) -> None:
        if item.status not in allowed:
            raise InvalidTransition(
                f"Cannot {action} line item {item.id} while {item.status.value}",
                current_state=item.status.value,
                line_item_id=item.id,
            )

    @staticmethod
    def _require_variant(item: LineItem) -> str:
        if not item.blank_variant_id:
            raise InvalidTransition(
                f"Line item {item.id} has no blank variant",
                current_state=item.status.value,
                line_item_id=item.id,
            )
        return item.blank_variant_id

    @staticmethod
    def _log_transition(item: LineItem, previous: CompletionStatus, ctx: OperatorContext, note: str = "") -> None:
        suffix = f" ({note})" if note else ""
        logger.info(
            f"Line item {item.id}: {previous.value} -> {item.status.value} by {ctx.display}{suffix}"
        )


def _complete_all_prints(item: LineItem) -> None:
    """Fill the outstanding print locations with generated ids."""
    n = 1
    while len(item.completed_prints) < item.required_prints:
        location = f"location-{n}"
        item.completed_prints.add(location)
        n += 1
