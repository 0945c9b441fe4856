"""
Unit tests for the line item state machine.

Tests the status transitions and the ledger effects each one implies,
including the conservation property: print then reset returns the ledger
to where it started.
"""

import threading

import pytest

from core.exceptions import InsufficientStock, InsufficientPrestock, InvalidTransition
from models.line_item import CompletionStatus
from models.inventory import StockField, TransactionReason


class TestMarkPrinted:
    """Test printing and on-hand consumption."""

    def test_print_consumes_quantity(self, line_items, add_order, store, ctx):
        add_order("1001", items=[("black-m", 2)])

        item = line_items.mark_printed("1001-li-1", ctx)

        assert item.status == CompletionStatus.PRINTED
        assert item.consumed_on_hand == 2
        assert store.variants["black-m"].on_hand == 8

    def test_black_m_scenario(self, line_items, add_order, store, ctx):
        """10 on hand; three prints of 2 -> 4; reset one -> 6; print 3 -> 3."""
        add_order("1001", items=[("black-m", 2)])
        add_order("1002", items=[("black-m", 2)])
        add_order("1003", items=[("black-m", 2)])
        add_order("1004", items=[("black-m", 3)])

        for order_id in ("1001", "1002", "1003"):
            line_items.mark_printed(f"{order_id}-li-1", ctx)
        assert store.variants["black-m"].on_hand == 4

        line_items.reset("1002-li-1", ctx)
        assert store.variants["black-m"].on_hand == 6

        item = line_items.mark_printed("1004-li-1", ctx)
        assert item.status == CompletionStatus.PRINTED
        assert store.variants["black-m"].on_hand == 3

    def test_insufficient_stock_leaves_status(self, line_items, add_order, store, ctx):
        add_order("1001", items=[("white-l", 5)])

        with pytest.raises(InsufficientStock):
            line_items.mark_printed("1001-li-1", ctx)

        item = store.line_items["1001-li-1"]
        assert item.status == CompletionStatus.NOT_PRINTED
        assert item.consumed_on_hand == 0
        assert store.variants["white-l"].on_hand == 3

    def test_override_prints_into_negative(self, line_items, add_order, store, ctx):
        add_order("1001", items=[("white-l", 5)])
        line_items.mark_printed("1001-li-1", ctx, override=True)
        assert store.variants["white-l"].on_hand == -2

    def test_cannot_print_twice(self, line_items, add_order, ctx):
        add_order("1001")
        line_items.mark_printed("1001-li-1", ctx)
        with pytest.raises(InvalidTransition):
            line_items.mark_printed("1001-li-1", ctx)

    def test_item_without_blank_cannot_print(self, line_items, add_order, store, ctx):
        add_order("1001")
        store.line_items["1001-li-1"].blank_variant_id = None
        with pytest.raises(InvalidTransition):
            line_items.mark_printed("1001-li-1", ctx)


class TestMultiLocationPrinting:
    """Test items with more than one print location."""

    def test_partial_then_complete(self, line_items, add_order, store, ctx):
        add_order("1001", items=[("black-m", 1)])
        store.line_items["1001-li-1"].required_prints = 2

        item = line_items.mark_printed("1001-li-1", ctx, print_id="front")
        assert item.status == CompletionStatus.PARTIALLY_PRINTED
        assert store.variants["black-m"].on_hand == 9

        item = line_items.mark_printed("1001-li-1", ctx, print_id="back")
        assert item.status == CompletionStatus.PRINTED
        # Blanks are consumed once per cycle, not per location
        assert store.variants["black-m"].on_hand == 9

    def test_duplicate_location_rejected(self, line_items, add_order, store, ctx):
        add_order("1001")
        store.line_items["1001-li-1"].required_prints = 2
        line_items.mark_printed("1001-li-1", ctx, print_id="front")

        with pytest.raises(InvalidTransition):
            line_items.mark_printed("1001-li-1", ctx, print_id="front")

    def test_print_without_location_completes_all(self, line_items, add_order, store, ctx):
        add_order("1001")
        store.line_items["1001-li-1"].required_prints = 3
        line_items.mark_printed("1001-li-1", ctx, print_id="front")

        item = line_items.mark_printed("1001-li-1", ctx)
        assert item.status == CompletionStatus.PRINTED
        assert len(item.completed_prints) == 3


class TestMarkStocked:
    """Test fulfillment from pre-printed stock."""

    def test_stock_consumes_preprinted(self, line_items, add_order, store, ctx):
        add_order("1001", items=[("black-m", 2)])

        item = line_items.mark_stocked("1001-li-1", ctx)

        assert item.status == CompletionStatus.IN_STOCK
        assert store.variants["black-m"].preprinted == 3
        assert store.variants["black-m"].on_hand == 10

    def test_insufficient_prestock(self, line_items, add_order, store, ctx):
        add_order("1001", items=[("navy-xl", 1)])
        with pytest.raises(InsufficientPrestock):
            line_items.mark_stocked("1001-li-1", ctx)
        assert store.line_items["1001-li-1"].status == CompletionStatus.NOT_PRINTED


class TestReset:
    """Test reset and the conservation property."""

    def test_print_reset_nets_zero(self, line_items, ledger, add_order, store, ctx):
        add_order("1001", items=[("black-m", 2)])

        line_items.mark_printed("1001-li-1", ctx)
        line_items.reset("1001-li-1", ctx)

        assert store.variants["black-m"].on_hand == 10
        assert ledger.net_change_for_line_item("1001-li-1") == 0

    def test_stock_reset_nets_zero(self, line_items, ledger, add_order, store, ctx):
        add_order("1001", items=[("black-m", 2)])

        line_items.mark_stocked("1001-li-1", ctx)
        line_items.reset("1001-li-1", ctx)

        assert store.variants["black-m"].preprinted == 5
        assert ledger.net_change_for_line_item("1001-li-1", StockField.PREPRINTED) == 0

    def test_reset_without_restore_keeps_blank(self, line_items, ledger, add_order, store, ctx):
        """The item keeps its blank, so reprinting does not consume again."""
        add_order("1001", items=[("black-m", 2)])
        line_items.mark_printed("1001-li-1", ctx)

        item = line_items.reset("1001-li-1", ctx, restore_inventory=False)
        assert item.status == CompletionStatus.NOT_PRINTED
        assert store.variants["black-m"].on_hand == 8

        line_items.mark_printed("1001-li-1", ctx)
        assert store.variants["black-m"].on_hand == 8
        assert ledger.net_change_for_line_item("1001-li-1") == -2

    def test_reset_from_not_printed_rejected(self, line_items, add_order, ctx):
        add_order("1001")
        with pytest.raises(InvalidTransition):
            line_items.reset("1001-li-1", ctx)

    def test_reset_clears_prints(self, line_items, add_order, store, ctx):
        add_order("1001")
        store.line_items["1001-li-1"].required_prints = 2
        line_items.mark_printed("1001-li-1", ctx, print_id="front")

        item = line_items.reset("1001-li-1", ctx)
        assert item.completed_prints == set()


class TestOutOfStock:
    """Test OOS marking and sibling skipping."""

    def test_oos_skips_unfinished_siblings(self, line_items, add_order, store, ctx):
        add_order("1001", items=[("black-m", 1), ("white-l", 1), ("navy-xl", 1)])
        line_items.mark_printed("1001-li-2", ctx)

        item = line_items.mark_oos("1001-li-1", ctx)

        assert item.status == CompletionStatus.OOS_BLANK
        assert store.line_items["1001-li-2"].status == CompletionStatus.PRINTED
        assert store.line_items["1001-li-3"].status == CompletionStatus.SKIPPED
        assert item.oos_skipped == {"1001-li-3": CompletionStatus.NOT_PRINTED}

    def test_reset_from_oos_restores_siblings(self, line_items, add_order, store, ctx):
        add_order("1001", items=[("black-m", 1), ("white-l", 1)])
        line_items.mark_oos("1001-li-1", ctx)

        line_items.reset("1001-li-1", ctx)

        assert store.line_items["1001-li-1"].status == CompletionStatus.NOT_PRINTED
        assert store.line_items["1001-li-2"].status == CompletionStatus.NOT_PRINTED

    def test_reset_from_oos_keeps_partial_sibling(self, line_items, ledger, add_order, store, ctx):
        add_order("1001", items=[("black-m", 1), ("white-l", 1)])
        store.line_items["1001-li-2"].required_prints = 2
        line_items.mark_printed("1001-li-2", ctx, print_id="front")
        line_items.mark_oos("1001-li-1", ctx)
        assert store.line_items["1001-li-2"].status == CompletionStatus.SKIPPED

        line_items.reset("1001-li-1", ctx)

        sibling = store.line_items["1001-li-2"]
        assert sibling.status == CompletionStatus.PARTIALLY_PRINTED
        assert sibling.completed_prints == {"front"}
        assert ledger.net_change_for_line_item("1001-li-2") == -1

        # The remaining location can still be printed without consuming again
        line_items.mark_printed("1001-li-2", ctx, print_id="back")
        assert sibling.status == CompletionStatus.PRINTED
        assert store.variants["white-l"].on_hand == 2

    def test_oos_twice_rejected(self, line_items, add_order, ctx):
        add_order("1001")
        line_items.mark_oos("1001-li-1", ctx)
        with pytest.raises(InvalidTransition):
            line_items.mark_oos("1001-li-1", ctx)

    def test_oos_has_no_ledger_effect(self, line_items, ledger, add_order, ctx):
        add_order("1001")
        line_items.mark_oos("1001-li-1", ctx)
        assert ledger.transactions(line_item_id="1001-li-1") == []


class TestSkipIgnoreMisprint:
    """Test the remaining transitions."""

    def test_skip_and_ignore(self, line_items, add_order, ctx):
        add_order("1001", items=[("black-m", 1), ("white-l", 1)])

        assert line_items.mark_skipped("1001-li-1", ctx).status == CompletionStatus.SKIPPED
        assert line_items.mark_ignored("1001-li-2", ctx).status == CompletionStatus.IGNORE

        with pytest.raises(InvalidTransition):
            line_items.mark_skipped("1001-li-1", ctx)

    def test_misprint_writes_off_one_blank(self, line_items, ledger, add_order, store, ctx):
        add_order("1001", items=[("black-m", 2)])
        line_items.mark_printed("1001-li-1", ctx)

        item = line_items.report_misprint("1001-li-1", ctx, notes="ink smear")

        assert item.status == CompletionStatus.PRINTED
        assert store.variants["black-m"].on_hand == 7
        misprints = [
            tx for tx in ledger.transactions(line_item_id="1001-li-1")
            if tx.reason == TransactionReason.MISPRINT
        ]
        assert len(misprints) == 1
        assert misprints[0].notes == "ink smear"

    def test_misprint_excluded_from_net_change(self, line_items, ledger, add_order, store, ctx):
        add_order("1001", items=[("black-m", 2)])
        line_items.mark_printed("1001-li-1", ctx)
        line_items.report_misprint("1001-li-1", ctx)
        line_items.reset("1001-li-1", ctx)

        assert ledger.net_change_for_line_item("1001-li-1") == 0
        assert ledger.net_change_for_line_item("1001-li-1", include_misprints=True) == -1
        assert store.variants["black-m"].on_hand == 9

    def test_misprint_not_allowed_when_skipped(self, line_items, add_order, ctx):
        add_order("1001")
        line_items.mark_skipped("1001-li-1", ctx)
        with pytest.raises(InvalidTransition):
            line_items.report_misprint("1001-li-1", ctx)


class TestSettledBatchFrozen:
    """Items of a settled batch cannot change."""

    def test_transition_after_settle_rejected(self, line_items, batches, add_order, ctx):
        add_order("1001")
        batch = batches.create_batch(["1001"], ctx)
        line_items.mark_printed("1001-li-1", ctx)
        batches.settle_batch(batch.id, ctx)

        with pytest.raises(InvalidTransition):
            line_items.reset("1001-li-1", ctx)


class TestConcurrentTransitions:
    """Test racing prints against the shared blank variant."""

    def test_parallel_prints_consume_once(self, line_items, add_order, store, ctx):
        add_order("1001", items=[("black-m", 2)])
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            try:
                line_items.mark_printed("1001-li-1", ctx)
                results.append("ok")
            except InvalidTransition:
                results.append("rejected")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert results.count("rejected") == 7
        assert store.variants["black-m"].on_hand == 8

    def test_parallel_prints_of_different_items_share_variant(self, line_items, ledger, add_order, store, ctx):
        order_ids = [f"20{n:02d}" for n in range(8)]
        for order_id in order_ids:
            add_order(order_id)
        errors = []
        barrier = threading.Barrier(len(order_ids))

        def worker(order_id):
            barrier.wait()
            try:
                line_items.mark_printed(f"{order_id}-li-1", ctx)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(order_id,)) for order_id in order_ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert store.variants["black-m"].on_hand == 10 - len(order_ids)
        usage = [
            tx for tx in ledger.transactions(blank_variant_id="black-m")
            if tx.reason == TransactionReason.ASSEMBLY_USAGE
        ]
        assert len(usage) == len(order_ids)
