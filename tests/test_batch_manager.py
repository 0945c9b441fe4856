"""
Unit tests for the batch manager.

Covers the single-active-batch rule (including concurrent creation),
all-or-nothing assignment, settle preconditions, documents and the
assembly line ordering.
"""

import threading

import pytest

from core.exceptions import (
    BatchAlreadyActive,
    BatchNotFound,
    BatchNotReady,
    InvalidTransition,
    OrderNotFound,
    OrderNotQueueable,
    ValidationError,
)
from models.batch import DocumentType
from models.hold import HoldCause
from models.line_item import CompletionStatus


class TestCreateBatch:
    """Test batch creation."""

    def test_create_assigns_orders(self, batches, add_order, store, ctx):
        add_order("1001")
        add_order("1002")

        batch = batches.create_batch(["1001", "1002"], ctx)

        assert batch.active
        assert batch.started_at is not None
        assert batch.created_by == "staff-1"
        assert store.active_batch.current == batch.id
        for order_id in ("1001", "1002"):
            assert store.orders[order_id].batch_id == batch.id
            assert not store.orders[order_id].queued

    def test_second_batch_rejected_while_active(self, batches, add_order, ctx):
        add_order("1001")
        add_order("1002")
        first = batches.create_batch(["1001"], ctx)

        with pytest.raises(BatchAlreadyActive) as exc_info:
            batches.create_batch(["1002"], ctx)
        assert exc_info.value.active_batch_id == first.id

    def test_concurrent_creation_single_winner(self, batches, add_order, store, ctx):
        for n in range(8):
            add_order(f"10{n:02d}")
        winners = []
        losers = []
        barrier = threading.Barrier(8)

        def worker(order_id):
            barrier.wait()
            try:
                winners.append(batches.create_batch([order_id], ctx))
            except BatchAlreadyActive:
                losers.append(order_id)

        threads = [threading.Thread(target=worker, args=(f"10{n:02d}",)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(winners) == 1
        assert len(losers) == 7
        assert sum(1 for b in store.batches.values() if b.active) == 1
        assigned = [o for o in store.orders.values() if o.batch_id is not None]
        assert len(assigned) == 1

    def test_all_or_nothing_assignment(self, batches, order_queue, add_order, store, ctx):
        add_order("1001")
        add_order("1002")
        add_order("1003")
        order_queue.dequeue("1002", ctx)
        store.orders["1003"].cancelled = True

        with pytest.raises(OrderNotQueueable) as exc_info:
            batches.create_batch(["1001", "1002", "1003"], ctx)

        assert exc_info.value.order_ids == ["1002", "1003"]
        assert store.orders["1001"].batch_id is None
        assert store.orders["1001"].queued
        # The slot is released for the next attempt
        assert store.active_batch.current is None
        assert batches.create_batch(["1001"], ctx).active

    def test_unknown_order(self, batches, add_order, store, ctx):
        add_order("1001")
        with pytest.raises(OrderNotFound):
            batches.create_batch(["1001", "missing"], ctx)
        assert store.active_batch.current is None

    def test_empty_or_duplicate_list(self, batches, add_order, ctx):
        add_order("1001")
        with pytest.raises(ValidationError):
            batches.create_batch([], ctx)
        with pytest.raises(ValidationError):
            batches.create_batch(["1001", "1001"], ctx)

    def test_new_cycle_clears_oos_and_skipped(self, batches, line_items, order_queue, add_order, store, ctx):
        add_order("1001", items=[("black-m", 1), ("white-l", 1)])
        first = batches.create_batch(["1001"], ctx)
        line_items.mark_oos("1001-li-1", ctx)
        batches.settle_batch(first.id, ctx)
        order_queue.enqueue("1001", ctx)

        batches.create_batch(["1001"], ctx)

        assert store.line_items["1001-li-1"].status == CompletionStatus.NOT_PRINTED
        assert store.line_items["1001-li-2"].status == CompletionStatus.NOT_PRINTED


class TestDocuments:
    """Test picking list and assembly line snapshots."""

    def test_documents_attached(self, batches, add_order, ctx):
        add_order("1001", items=[("black-m", 2), ("white-l", 4)])
        add_order("1002", items=[("black-m", 3)])

        batch = batches.create_batch(["1001", "1002"], ctx)

        kinds = [d.document_type for d in batch.documents]
        assert kinds == [DocumentType.PICKING_LIST, DocumentType.ASSEMBLY_LINE]

        picking = {row["blank_variant_id"]: row for row in batch.documents[0].content}
        assert picking["black-m"]["required"] == 5
        assert picking["black-m"]["shortfall"] == 0
        assert picking["white-l"]["required"] == 4
        assert picking["white-l"]["shortfall"] == 1

    def test_assembly_line_order(self, batches, add_order, ctx):
        """Hoodies before tees; within a blank by colour then size."""
        add_order("1001", items=[("white-l", 1), ("black-m", 1)])
        add_order("1002", items=[("navy-xl", 1)])
        batch = batches.create_batch(["1001", "1002"], ctx)

        line = batches.assembly_line(batch.id)

        assert [row["id"] for row in line] == ["1002-li-1", "1001-li-2", "1001-li-1"]
        assert [row["position"] for row in line] == [0, 1, 2]


class TestSettle:
    """Test readiness and settlement."""

    def test_settle_when_all_terminal(self, batches, line_items, add_order, store, ctx):
        add_order("1001", items=[("black-m", 1), ("white-l", 1)])
        batch = batches.create_batch(["1001"], ctx)
        line_items.mark_printed("1001-li-1", ctx)
        line_items.mark_skipped("1001-li-2", ctx)

        settled = batches.settle_batch(batch.id, ctx, notes="done by noon")

        assert settled.is_settled
        assert not settled.active
        assert settled.settled_by == "staff-1"
        assert settled.settle_notes == "done by noon"
        assert store.active_batch.current is None

    def test_unresolved_hold_blocks_settle(self, batches, line_items, holds, add_order, ctx):
        add_order("1001")
        batch = batches.create_batch(["1001"], ctx)
        line_items.mark_printed("1001-li-1", ctx)
        holds.create_hold("1001", HoldCause.ADDRESS_ISSUE, "PO box", ctx)

        readiness = batches.readiness(batch.id)
        assert not readiness["ready"]
        assert len(readiness["blocking_reasons"]) == 1

        with pytest.raises(BatchNotReady) as exc_info:
            batches.settle_batch(batch.id, ctx)
        assert "hold" in exc_info.value.blocking_reasons[0]
        assert batches.get_batch(batch.id).active

    def test_unfinished_item_blocks_settle(self, batches, add_order, ctx):
        add_order("1001")
        batch = batches.create_batch(["1001"], ctx)

        with pytest.raises(BatchNotReady):
            batches.settle_batch(batch.id, ctx)

    def test_settle_twice_rejected(self, batches, line_items, add_order, ctx):
        add_order("1001")
        batch = batches.create_batch(["1001"], ctx)
        line_items.mark_printed("1001-li-1", ctx)
        batches.settle_batch(batch.id, ctx)

        with pytest.raises(InvalidTransition):
            batches.settle_batch(batch.id, ctx)

    def test_new_batch_allowed_after_settle(self, batches, line_items, add_order, ctx):
        add_order("1001")
        add_order("1002")
        batch = batches.create_batch(["1001"], ctx)
        line_items.mark_printed("1001-li-1", ctx)
        batches.settle_batch(batch.id, ctx)

        assert batches.create_batch(["1002"], ctx).id != batch.id

    def test_settlement_summary(self, batches, line_items, add_order, ctx):
        add_order("1001", items=[("black-m", 2), ("white-l", 1)])
        batch = batches.create_batch(["1001"], ctx)
        line_items.mark_printed("1001-li-1", ctx)
        line_items.report_misprint("1001-li-1", ctx)
        line_items.mark_skipped("1001-li-2", ctx)

        summary = batches.settlement_summary(batch.id)

        by_id = {row["line_item_id"]: row for row in summary["items"]}
        assert by_id["1001-li-1"]["blanks_used"] == 2
        assert by_id["1001-li-1"]["matched"]
        assert summary["mismatches"] == 0
        assert summary["misprints"] == {"black-m": 1}



class TestStockVerification:
    """Test pre-printed and blank requirements and the verification stamps."""

    @pytest.fixture
    def batch(self, batches, add_order, ctx):
        add_order("1001", items=[("black-m", 4)])
        add_order("1002", items=[("black-m", 3)])
        add_order("1003", items=[("white-l", 5)])
        return batches.create_batch(["1001", "1002", "1003"], ctx)

    def test_premade_requirements(self, batches, batch):
        report = batches.premade_stock_requirements(batch.id)

        (entry,) = report["items"]
        assert entry["blank_variant_id"] == "black-m"
        assert entry["required"] == 7
        assert entry["on_hand"] == 5
        assert entry["to_pick"] == 5
        assert report["verified_at"] is None

    def test_blank_requirements_after_premade(self, batches, batch):
        report = batches.blank_stock_requirements(batch.id)

        by_variant = {row["blank_variant_id"]: row for row in report["items"]}
        # 7 black-m needed, 5 come from pre-printed stock
        assert by_variant["black-m"]["required"] == 2
        assert by_variant["black-m"]["shortfall"] == 0
        assert by_variant["white-l"]["required"] == 5
        assert by_variant["white-l"]["to_pick"] == 3
        assert by_variant["white-l"]["shortfall"] == 2

    def test_worked_items_not_required(self, batches, line_items, batch, ctx):
        line_items.mark_printed("1003-li-1", ctx, override=True)
        line_items.mark_stocked("1001-li-1", ctx)

        report = batches.blank_stock_requirements(batch.id)

        by_variant = {row["blank_variant_id"]: row for row in report["items"]}
        assert "white-l" not in by_variant
        # 1002 alone needs 3; only 1 pre-printed unit is left after 1001
        assert by_variant["black-m"]["required"] == 2

    def test_corrections_listed(self, batches, line_items, batch, ctx):
        line_items.mark_printed("1002-li-1", ctx)
        line_items.reset("1002-li-1", ctx)

        report = batches.blank_stock_requirements(batch.id)

        by_variant = {row["blank_variant_id"]: row for row in report["items"]}
        (adjustment,) = by_variant["black-m"]["adjustments"]
        assert adjustment["reason"] == "correction"

    def test_malformed_items_reported(self, batches, batch, store):
        store.line_items["1003-li-1"].blank_variant_id = None

        report = batches.premade_stock_requirements(batch.id)

        assert report["malformed"] == [
            {"line_item_id": "1003-li-1", "order_id": "1003", "reason": "missing blank variant"}
        ]

    def test_blank_verification_needs_premade_first(self, batches, batch, ctx):
        with pytest.raises(BatchNotReady):
            batches.verify_blank_stock(batch.id, ctx)

        batches.verify_premade_stock(batch.id, ctx)
        verified = batches.verify_blank_stock(batch.id, ctx)

        assert verified.premade_stock_verified_at is not None
        assert verified.blank_stock_verified_at is not None
        assert verified.premade_stock_snapshot["items"][0]["to_pick"] == 5
        assert len(verified.blank_stock_snapshot["items"]) == 2

    def test_verify_shipments_once(self, batches, batch, ctx):
        assert batches.verify_shipments(batch.id, ctx).shipments_verified_at is not None
        with pytest.raises(InvalidTransition):
            batches.verify_shipments(batch.id, ctx)

class TestQueries:
    """Test batch lookups."""

    def test_active_batch(self, batches, add_order, ctx):
        add_order("1001")
        batch = batches.create_batch(["1001"], ctx)
        assert batches.get_active_batch().id == batch.id

    def test_no_active_batch(self, batches):
        with pytest.raises(BatchNotFound):
            batches.get_active_batch()

    def test_unknown_batch(self, batches):
        with pytest.raises(BatchNotFound):
            batches.get_batch(42)
