"""
Inventory ledger for blank variant stock.

The ledger is the only writer of ``BlankVariant.on_hand`` and
``BlankVariant.preprinted``. Every adjustment:

    1. Takes the variant's lock (store.variant_lock)
    2. Rejects a result below zero unless ``override`` is set
    3. Writes the new quantity
    4. Appends exactly one InventoryTransaction

so concurrent adjustments to the same variant never lose updates, and the
transaction log can always explain the current quantity.

Usage:
    ledger = InventoryLedger(store)
    ledger.adjust("black-m", StockField.ON_HAND, -2, ctx,
                  TransactionReason.ASSEMBLY_USAGE, line_item_id="li-1")
    ledger.net_change_for_line_item("li-1", StockField.ON_HAND)  # -2
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from core.context import OperatorContext
from core.exceptions import NegativeStock, InsufficientStock, InsufficientPrestock, ValidationError
from core.store import FulfillmentStore
from models.inventory import BlankVariant, InventoryTransaction, StockField, TransactionReason
from logging_config import get_logger


logger = get_logger(__name__)


class InventoryLedger:
    """Atomic, audited stock adjustments per blank variant."""

    def __init__(self, store: FulfillmentStore):
        self._store = store

    def get_variant(self, blank_variant_id: str) -> BlankVariant:
        """
        Look up a blank variant.

        Raises:
            BlankVariantNotFound: If the id is unknown
        """
        return self._store.get_variant(blank_variant_id)

    def adjust(
        self,
        blank_variant_id: str,
        field: StockField,
        delta: int,
        ctx: OperatorContext,
        reason: TransactionReason,
        line_item_id: Optional[str] = None,
        batch_id: Optional[int] = None,
        override: bool = False,
        notes: Optional[str] = None,
    ) -> int:
        """
        Apply a signed delta to one stock field of a variant.

        Args:
            blank_variant_id: Variant to adjust
            field: ON_HAND or PREPRINTED
            delta: Signed change (negative consumes stock)
            ctx: Operator performing the change
            reason: Why the stock changed
            line_item_id: Line item the change is attributed to, if any
            batch_id: Batch the change happened in, if any
            override: Allow the quantity to go negative (recorded on the transaction)
            notes: Free-text note stored on the transaction

        Returns:
            The new quantity

        Raises:
            BlankVariantNotFound: If the variant is unknown
            InsufficientStock / InsufficientPrestock: If the result would be
                negative and ``override`` is not set
        """
        variant = self._store.get_variant(blank_variant_id)

        with self._store.variant_lock(blank_variant_id):
            previous = variant.quantity(field)
            new_quantity = previous + delta

            if new_quantity < 0 and not override:
                logger.warning(
                    f"Rejected {field.value} adjustment {delta:+d} on {blank_variant_id} "
                    f"by {ctx.display}: only {previous} available"
                )
                raise _negative_stock_error(blank_variant_id, field, previous, -delta)

            setattr(variant, field.value, new_quantity)

            transaction = InventoryTransaction(
                id=self._store.next_transaction_id(),
                blank_variant_id=blank_variant_id,
                field=field,
                change=delta,
                previous_quantity=previous,
                new_quantity=new_quantity,
                reason=reason,
                actor_id=ctx.actor_id,
                line_item_id=line_item_id,
                batch_id=batch_id,
                override=override and new_quantity < 0,
                notes=notes,
                created_at=datetime.now(timezone.utc),
            )
            self._store.add_transaction(transaction)

        if transaction.override:
            logger.warning(
                f"OVERRIDE: {blank_variant_id} {field.value} forced to {new_quantity} "
                f"by {ctx.display} ({reason.value})"
            )
        logger.info(
            f"{blank_variant_id} {field.value} {previous} -> {new_quantity} "
            f"({delta:+d}, {reason.value}, by {ctx.display}"
            f"{', item ' + line_item_id if line_item_id else ''})"
        )
        return new_quantity

    def restock(
        self,
        blank_variant_id: str,
        quantity: int,
        ctx: OperatorContext,
        field: StockField = StockField.ON_HAND,
        notes: Optional[str] = None,
    ) -> int:
        """Record a delivery of ``quantity`` units."""
        if quantity <= 0:
            raise ValidationError("Restock quantity must be positive", field="quantity")
        return self.adjust(blank_variant_id, field, quantity, ctx, TransactionReason.RESTOCK, notes=notes)

    def stock_take(
        self,
        blank_variant_id: str,
        counted: int,
        ctx: OperatorContext,
        field: StockField = StockField.ON_HAND,
        notes: Optional[str] = None,
    ) -> int:
        """
        Set a stock field to a physically counted quantity.

        Records the difference as a ``stock_take`` transaction; a count that
        matches the books records nothing.
        """
        if counted < 0:
            raise ValidationError("Counted quantity cannot be negative", field="counted")

        variant = self._store.get_variant(blank_variant_id)
        # variant locks are re-entrant; delta and adjustment happen under one hold
        with self._store.variant_lock(blank_variant_id):
            delta = counted - variant.quantity(field)
            if delta == 0:
                return counted
            return self.adjust(
                blank_variant_id, field, delta, ctx, TransactionReason.STOCK_TAKE, notes=notes
            )

    def transactions(
        self,
        blank_variant_id: Optional[str] = None,
        line_item_id: Optional[str] = None,
        batch_id: Optional[int] = None,
    ) -> List[InventoryTransaction]:
        """Transactions matching every given filter, oldest first."""
        result = []
        for tx in self._store.snapshot_transactions():
            if blank_variant_id is not None and tx.blank_variant_id != blank_variant_id:
                continue
            if line_item_id is not None and tx.line_item_id != line_item_id:
                continue
            if batch_id is not None and tx.batch_id != batch_id:
                continue
            result.append(tx)
        return result

    def net_change_for_line_item(
        self,
        line_item_id: str,
        field: Optional[StockField] = None,
        include_misprints: bool = False,
    ) -> int:
        """
        Sum of the changes attributed to a line item (optionally one field).

        Misprint waste is excluded by default: it is stock destroyed while
        working the item, not stock the item holds. With the default, the
        result is always ``-(consumed_on_hand + consumed_preprinted)``.
        """
        return sum(
            tx.change
            for tx in self.transactions(line_item_id=line_item_id)
            if (field is None or tx.field == field)
            and (include_misprints or tx.reason != TransactionReason.MISPRINT)
        )


def _negative_stock_error(blank_variant_id: str, field: StockField, available: int, requested: int) -> NegativeStock:
    if field == StockField.ON_HAND:
        return InsufficientStock(blank_variant_id, available, requested)
    return InsufficientPrestock(blank_variant_id, available, requested)
