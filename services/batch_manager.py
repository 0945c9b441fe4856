"""
Batch (work session) manager.

At most one batch is active system-wide. Creation claims the store's
ActiveBatchSlot with a compare-and-set before touching any order, so of two
concurrent creations exactly one wins and the other fails with
BatchAlreadyActive. Settlement releases the slot.

Batch lifecycle:
    1. create_batch  - claim slot, validate + assign orders (all-or-nothing),
                       generate picking list and assembly line snapshots
    2. (line items are worked through services.line_item_service)
    3. settle_batch  - only when no order is held and every item is terminal
    4. bookkeeping stamps: pre-printed and blank stock verification
       (requirements snapshot), item sync, shipments purchased and verified
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from core.context import OperatorContext
from core.exceptions import (
    BatchAlreadyActive,
    BatchNotFound,
    BatchNotReady,
    InvalidTransition,
    OrderNotQueueable,
    ValidationError,
)
from core.store import FulfillmentStore
from models.batch import Batch, BatchDocument, DocumentType
from models.line_item import LineItem, CompletionStatus, TERMINAL_STATUSES
from models.inventory import StockField, TransactionReason
from services.hold_registry import HoldRegistry
from services.inventory_ledger import InventoryLedger
from logging_config import get_logger


logger = get_logger(__name__)


# Assembly line ordering: heavier garments are pressed first
GARMENT_TYPE_ORDER = [
    "hoodie", "crewneck", "longsleeve", "tee", "shorts",
    "sweatpants", "headwear", "accessory", "jacket", "coat",
]

SIZE_ORDER = ["xs", "sm", "md", "lg", "xl", "2xl", "3xl", "4xl", "5xl", "os"]

# Statuses cleared when an order starts a new batch cycle
CYCLE_RESET_STATUSES = frozenset({
    CompletionStatus.OOS_BLANK,
    CompletionStatus.SKIPPED,
})


class BatchManager:
    """Create, inspect and settle batches."""

    def __init__(self, store: FulfillmentStore, holds: HoldRegistry, ledger: InventoryLedger):
        self._store = store
        self._holds = holds
        self._ledger = ledger

    # =========================================================================
    # CREATE
    # =========================================================================

    def create_batch(self, order_ids: List[str], ctx: OperatorContext) -> Batch:
        """
        Create the active batch from queued orders.

        Args:
            order_ids: Orders to assign (each must be queued and unassigned)
            ctx: Operator

        Returns:
            The new active batch

        Raises:
            ValidationError: Empty or duplicate order list
            OrderNotFound: An order id is unknown
            BatchAlreadyActive: Another batch is active
            OrderNotQueueable: Some orders are not queued or already
                assigned; lists all of them and assigns nothing
        """
        if not order_ids:
            raise ValidationError("A batch needs at least one order", field="order_ids")
        if len(set(order_ids)) != len(order_ids):
            raise ValidationError("Duplicate order ids", field="order_ids")

        orders = [self._store.get_order(order_id) for order_id in order_ids]

        batch_id = self._store.next_batch_id()
        if not self._store.active_batch.compare_and_set(None, batch_id):
            active_id = self._store.active_batch.current
            logger.warning(f"Batch creation by {ctx.display} rejected: batch {active_id} is active")
            raise BatchAlreadyActive(active_id)

        try:
            with self._store.order_locks(order_ids):
                offending = [
                    order.id for order in orders
                    if not order.queued or order.batch_id is not None or order.cancelled
                ]
                if offending:
                    raise OrderNotQueueable(offending)

                now = datetime.now(timezone.utc)
                batch = Batch(
                    id=batch_id,
                    active=True,
                    created_at=now,
                    started_at=now,
                    order_ids=list(order_ids),
                    created_by=ctx.actor_id,
                )

                for order in orders:
                    order.batch_id = batch.id
                    order.queued = False
                    for item in self._store.items_for_order(order.id):
                        _start_cycle(item)

                batch.documents = [
                    BatchDocument(
                        DocumentType.PICKING_LIST,
                        f"picking-list-batch-{batch.id}",
                        self._picking_list(batch),
                    ),
                    BatchDocument(
                        DocumentType.ASSEMBLY_LINE,
                        f"assembly-line-batch-{batch.id}",
                        [
                            {"line_item_id": item.id, "position": position}
                            for position, item in enumerate(self._ordered_items(batch))
                        ],
                    ),
                ]
                self._store.add_batch(batch)
        except Exception:
            self._store.active_batch.compare_and_set(batch_id, None)
            raise

        logger.info(f"Batch {batch.id} created by {ctx.display} with {len(order_ids)} orders")
        return batch

    # =========================================================================
    # SETTLE
    # =========================================================================

    def readiness(self, batch_id: int) -> Dict[str, Any]:
        """
        Report whether a batch can settle, without changing anything.

        Returns:
            {"batch_id", "ready", "blocking_reasons": [...]}
        """
        batch = self._store.get_batch(batch_id)
        reasons = self._blocking_reasons(batch)
        return {"batch_id": batch.id, "ready": not reasons, "blocking_reasons": reasons}

    def _blocking_reasons(self, batch: Batch) -> List[str]:
        reasons = []
        for order_id in batch.order_ids:
            for hold in self._holds.list_unresolved(order_id):
                reasons.append(f"Order {order_id} has unresolved hold {hold.id} ({hold.cause.value})")
            for item in self._store.items_for_order(order_id):
                if item.status not in TERMINAL_STATUSES:
                    reasons.append(f"Line item {item.id} of order {order_id} is {item.status.value}")
        return reasons

    def settle_batch(self, batch_id: int, ctx: OperatorContext, notes: Optional[str] = None) -> Batch:
        """
        Settle a batch.

        Raises:
            BatchNotFound: Unknown batch
            InvalidTransition: Batch already settled
            BatchNotReady: An order is held or an item is not terminal
        """
        batch = self._store.get_batch(batch_id)
        with self._store.order_locks(batch.order_ids):
            if batch.is_settled:
                raise InvalidTransition(f"Batch {batch_id} is already settled", current_state="settled")

            reasons = self._blocking_reasons(batch)
            if reasons:
                logger.warning(f"Batch {batch_id} not ready to settle: {len(reasons)} blocking reason(s)")
                raise BatchNotReady(batch_id, reasons)

            batch.settled_at = datetime.now(timezone.utc)
            batch.settled_by = ctx.actor_id
            batch.settle_notes = notes
            batch.active = False
            self._store.active_batch.compare_and_set(batch.id, None)

        logger.info(f"Batch {batch_id} settled by {ctx.display}")
        return batch

    def verify_item_sync(self, batch_id: int, ctx: OperatorContext) -> Batch:
        """Stamp that the batch's line items were checked against the storefront."""
        batch = self._store.get_batch(batch_id)
        batch.item_sync_verified_at = datetime.now(timezone.utc)
        logger.info(f"Batch {batch_id} item sync verified by {ctx.display}")
        return batch

    def mark_shipments_purchased(self, batch_id: int) -> Batch:
        batch = self._store.get_batch(batch_id)
        batch.shipments_purchased_at = datetime.now(timezone.utc)
        return batch

    def verify_shipments(self, batch_id: int, ctx: OperatorContext) -> Batch:
        """
        Stamp that the batch's labels were checked against its parcels.

        Raises:
            InvalidTransition: Shipments already verified
        """
        batch = self._store.get_batch(batch_id)
        with self._store.order_locks(batch.order_ids):
            if batch.shipments_verified_at is not None:
                raise InvalidTransition(
                    f"Shipments of batch {batch_id} are already verified",
                    current_state="shipments_verified",
                    batch_id=batch_id,
                )
            batch.shipments_verified_at = datetime.now(timezone.utc)

        logger.info(f"Batch {batch_id} shipments verified by {ctx.display}")
        return batch

    # =========================================================================
    # STOCK VERIFICATION
    # =========================================================================

    def premade_stock_requirements(self, batch_id: int) -> Dict[str, Any]:
        """
        Pre-printed units to pull for the batch, per blank variant.

        Only items still waiting to be worked count. ``to_pick`` is capped
        at what is on the shelf; the rest has to be printed.

        Returns:
            {"batch_id", "items": [...], "malformed": [...], "verified_at"}
        """
        batch = self._store.get_batch(batch_id)
        items = self._premade_items(batch)
        return {
            "batch_id": batch.id,
            "items": list(items.values()),
            "malformed": self._malformed_items(batch),
            "verified_at": _iso(batch.premade_stock_verified_at),
        }

    def blank_stock_requirements(self, batch_id: int) -> Dict[str, Any]:
        """
        Blanks to pull for the batch after pre-printed stock is used up.

        Each variant also lists the corrections and stock takes already
        recorded against the batch.
        """
        batch = self._store.get_batch(batch_id)
        from_stock = {variant_id: entry["to_pick"] for variant_id, entry in self._premade_items(batch).items()}

        required: "OrderedDict[str, int]" = OrderedDict()
        for item in self._outstanding_items(batch):
            variant_id = item.blank_variant_id
            if variant_id not in self._store.variants:
                continue
            covered = min(item.quantity, from_stock.get(variant_id, 0))
            from_stock[variant_id] = from_stock.get(variant_id, 0) - covered
            if item.quantity > covered:
                required[variant_id] = required.get(variant_id, 0) + item.quantity - covered

        adjustments: Dict[str, List[Dict[str, Any]]] = {}
        for tx in self._ledger.transactions(batch_id=batch.id):
            if tx.reason in (TransactionReason.CORRECTION, TransactionReason.STOCK_TAKE):
                adjustments.setdefault(tx.blank_variant_id, []).append(tx.to_dict())

        items = []
        for variant_id, quantity in required.items():
            variant = self._store.variants[variant_id]
            items.append({
                "blank_variant_id": variant_id,
                "name": variant.display_name,
                "required": quantity,
                "on_hand": variant.on_hand,
                "to_pick": max(0, min(variant.on_hand, quantity)),
                "shortfall": max(0, quantity - variant.on_hand),
                "adjustments": adjustments.get(variant_id, []),
            })

        return {
            "batch_id": batch.id,
            "items": items,
            "malformed": self._malformed_items(batch),
            "verified_at": _iso(batch.blank_stock_verified_at),
        }

    def verify_premade_stock(self, batch_id: int, ctx: OperatorContext) -> Batch:
        """Snapshot the pre-printed requirements and stamp them verified."""
        snapshot = self.premade_stock_requirements(batch_id)
        batch = self._store.get_batch(batch_id)
        batch.premade_stock_snapshot = snapshot
        batch.premade_stock_verified_at = datetime.now(timezone.utc)
        logger.info(f"Batch {batch_id} pre-printed stock verified by {ctx.display}: {len(snapshot['items'])} variant(s)")
        return batch

    def verify_blank_stock(self, batch_id: int, ctx: OperatorContext) -> Batch:
        """
        Snapshot the blank requirements and stamp them verified.

        Raises:
            BatchNotReady: Pre-printed stock has not been verified yet
        """
        batch = self._store.get_batch(batch_id)
        if batch.premade_stock_verified_at is None:
            raise BatchNotReady(batch_id, ["Pre-printed stock must be verified before blanks"])

        snapshot = self.blank_stock_requirements(batch_id)
        batch.blank_stock_snapshot = snapshot
        batch.blank_stock_verified_at = datetime.now(timezone.utc)
        logger.info(f"Batch {batch_id} blank stock verified by {ctx.display}: {len(snapshot['items'])} variant(s)")
        return batch

    def _outstanding_items(self, batch: Batch) -> List[LineItem]:
        """Items not yet worked that hold no stock."""
        return [
            item for item in self._ordered_items(batch)
            if item.status == CompletionStatus.NOT_PRINTED
            and item.blank_variant_id
            and not item.consumed_on_hand
            and not item.consumed_preprinted
        ]

    def _premade_items(self, batch: Batch) -> "OrderedDict[str, Dict[str, Any]]":
        items: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for item in self._outstanding_items(batch):
            variant = self._store.variants.get(item.blank_variant_id)
            if variant is None or variant.preprinted <= 0:
                continue
            entry = items.setdefault(variant.id, {
                "blank_variant_id": variant.id,
                "name": variant.display_name,
                "required": 0,
                "on_hand": variant.preprinted,
                "to_pick": 0,
            })
            entry["required"] += item.quantity
            entry["to_pick"] = min(entry["on_hand"], entry["required"])
        return items

    def _malformed_items(self, batch: Batch) -> List[Dict[str, Any]]:
        malformed = []
        for item in self._ordered_items(batch):
            if not item.blank_variant_id:
                reason = "missing blank variant"
            elif item.blank_variant_id not in self._store.variants:
                reason = f"unknown blank variant {item.blank_variant_id}"
            else:
                continue
            malformed.append({"line_item_id": item.id, "order_id": item.order_id, "reason": reason})
        return malformed

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_batch(self, batch_id: int) -> Batch:
        return self._store.get_batch(batch_id)

    def get_active_batch(self) -> Batch:
        """
        The single active batch.

        Raises:
            BatchNotFound: No batch is active
        """
        active_id = self._store.active_batch.current
        if active_id is None or active_id not in self._store.batches:
            raise BatchNotFound("active")
        return self._store.batches[active_id]

    def line_items_for_batch(self, batch_id: int) -> List[LineItem]:
        batch = self._store.get_batch(batch_id)
        items = []
        for order_id in batch.order_ids:
            items.extend(self._store.items_for_order(order_id))
        return items

    def assembly_line(self, batch_id: int) -> List[Dict[str, Any]]:
        """Shippable line items of a batch in working order, with positions."""
        batch = self._store.get_batch(batch_id)
        result = []
        for position, item in enumerate(self._ordered_items(batch)):
            data = item.to_dict()
            data["position"] = position
            result.append(data)
        return result

    def settlement_summary(self, batch_id: int) -> Dict[str, Any]:
        """
        Compare each item's status with the stock it actually consumed.

        An item is a mismatch when it is PRINTED without holding blanks, or
        IN_STOCK without holding pre-printed units (e.g. the ledger step was
        reversed manually). Misprints are totalled per variant.
        """
        items = []
        mismatches = 0
        misprints: Dict[str, int] = {}
        for item in self.line_items_for_batch(batch_id):
            on_hand = -self._ledger.net_change_for_line_item(item.id, StockField.ON_HAND)
            preprinted = -self._ledger.net_change_for_line_item(item.id, StockField.PREPRINTED)
            matched = not (
                (item.status == CompletionStatus.PRINTED and on_hand <= 0)
                or (item.status == CompletionStatus.IN_STOCK and preprinted <= 0)
            )
            if not matched:
                mismatches += 1
            items.append({
                "line_item_id": item.id,
                "status": item.status.value,
                "blank_variant_id": item.blank_variant_id,
                "blanks_used": on_hand,
                "preprinted_used": preprinted,
                "matched": matched,
            })

        for tx in self._ledger.transactions(batch_id=batch_id):
            if tx.reason == TransactionReason.MISPRINT:
                misprints[tx.blank_variant_id] = misprints.get(tx.blank_variant_id, 0) - tx.change

        return {"batch_id": batch_id, "items": items, "mismatches": mismatches, "misprints": misprints}

    # =========================================================================
    # DOCUMENTS
    # =========================================================================

    def _picking_list(self, batch: Batch) -> List[Dict[str, Any]]:
        """Blanks to pull per variant, against what is on the shelf."""
        required: "OrderedDict[str, int]" = OrderedDict()
        for item in self._ordered_items(batch):
            if not item.blank_variant_id or item.status != CompletionStatus.NOT_PRINTED:
                continue
            if item.consumed_on_hand:
                continue
            required[item.blank_variant_id] = required.get(item.blank_variant_id, 0) + item.quantity

        picking = []
        for variant_id, quantity in required.items():
            variant = self._store.variants.get(variant_id)
            on_hand = variant.on_hand if variant else 0
            picking.append({
                "blank_variant_id": variant_id,
                "name": variant.display_name if variant else "",
                "required": quantity,
                "on_hand": on_hand,
                "shortfall": max(0, quantity - on_hand),
            })
        return picking

    def _ordered_items(self, batch: Batch) -> List[LineItem]:
        items = []
        for order_id in batch.order_ids:
            items.extend(i for i in self._store.items_for_order(order_id) if i.requires_shipping)
        return sorted(items, key=self._assembly_key)

    def _assembly_key(self, item: LineItem):
        variant = self._store.variants.get(item.blank_variant_id) if item.blank_variant_id else None
        blank = self._store.blanks.get(variant.blank_id) if variant else None
        garment = blank.garment_type if blank else ""
        size = variant.size.lower() if variant else ""
        return (
            _index_or_end(GARMENT_TYPE_ORDER, garment),
            blank.id if blank else "",
            variant.color.lower() if variant else "",
            _index_or_end(SIZE_ORDER, size),
            item.order_id,
            item.id,
        )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _index_or_end(ordering: List[str], value: str) -> int:
    try:
        return ordering.index(value)
    except ValueError:
        return len(ordering)


def _start_cycle(item: LineItem) -> None:
    """Clear statuses that only meant something for the previous batch."""
    if item.status in CYCLE_RESET_STATUSES:
        item.status = CompletionStatus.NOT_PRINTED
        item.completed_prints.clear()
        item.oos_skipped = {}
