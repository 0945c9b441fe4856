"""
Unit tests for request payload parsing and validation.
"""

import pytest

from core.exceptions import ValidationError
from models.hold import HoldCause
from models.inventory import StockField, TransactionReason
from models.requests import (
    AdjustInventoryRequest,
    BulkPurchaseRequest,
    CancelJobRequest,
    CreateBatchRequest,
    CreateHoldRequest,
    PrintRequest,
    ProductWebhookPayload,
    ResetRequest,
    StockTakeRequest,
)


class TestHoldRequests:
    """Test hold payloads."""

    def test_create_hold(self):
        req = CreateHoldRequest.from_dict({"cause": "address_issue", "reasonNotes": "Missing unit number"})
        assert req.cause == HoldCause.ADDRESS_ISSUE
        assert req.reason_notes == "Missing unit number"

    def test_notes_are_sanitized(self):
        req = CreateHoldRequest.from_dict({"cause": "other", "reason_notes": "<b>call</b> customer<script>x</script>"})
        assert "<" not in req.reason_notes
        assert "call customer" in req.reason_notes

    def test_unknown_cause(self):
        with pytest.raises(ValidationError) as exc_info:
            CreateHoldRequest.from_dict({"cause": "weather", "reasonNotes": "snow"})
        assert exc_info.value.field == "cause"

    def test_notes_required(self):
        with pytest.raises(ValidationError):
            CreateHoldRequest.from_dict({"cause": "other"})


class TestBatchAndItemRequests:
    """Test batch and line item payloads."""

    def test_order_ids(self):
        assert CreateBatchRequest.from_dict({"orderIds": ["1001", 1002]}).order_ids == ["1001", "1002"]

    @pytest.mark.parametrize("order_ids", [[], "1001", None, ["1001", "1001"]])
    def test_bad_order_ids(self, order_ids):
        with pytest.raises(ValidationError):
            CreateBatchRequest.from_dict({"orderIds": order_ids})

    def test_print_defaults(self):
        req = PrintRequest.from_dict({})
        assert req.print_id is None
        assert req.override is False

    def test_print_override_must_be_bool(self):
        with pytest.raises(ValidationError):
            PrintRequest.from_dict({"override": "yes"})

    def test_reset_defaults_to_restore(self):
        assert ResetRequest.from_dict({}).restore_inventory is True
        assert ResetRequest.from_dict({"restoreInventory": False}).restore_inventory is False

    def test_body_must_be_object(self):
        with pytest.raises(ValidationError):
            PrintRequest.from_dict(["front"])


class TestInventoryRequests:
    """Test inventory payloads."""

    def test_adjust(self):
        req = AdjustInventoryRequest.from_dict({"field": "preprinted", "delta": 12, "reason": "restock"})
        assert req.field == StockField.PREPRINTED
        assert req.delta == 12
        assert req.reason == TransactionReason.RESTOCK

    @pytest.mark.parametrize("delta", [0, 1.5, True, "3"])
    def test_bad_delta(self, delta):
        with pytest.raises(ValidationError):
            AdjustInventoryRequest.from_dict({"delta": delta})

    def test_usage_reason_reserved(self):
        with pytest.raises(ValidationError):
            AdjustInventoryRequest.from_dict({"delta": -1, "reason": "assembly_usage"})

    def test_stock_take(self):
        req = StockTakeRequest.from_dict({"counted": 0})
        assert req.counted == 0
        assert req.field == StockField.ON_HAND
        with pytest.raises(ValidationError):
            StockTakeRequest.from_dict({"counted": -1})


class TestShipmentRequests:
    """Test bulk purchase payloads."""

    def test_batch_scope(self):
        req = BulkPurchaseRequest.from_dict({"batchId": 3, "carrier": " fake "})
        assert req.batch_id == 3
        assert req.order_ids is None
        assert req.carrier == "fake"

    def test_order_scope_with_targets(self):
        req = BulkPurchaseRequest.from_dict({"orderIds": ["1001"], "targetLineItemIds": ["1001-li-1"]})
        assert req.order_ids == ["1001"]
        assert req.target_line_item_ids == ["1001-li-1"]

    @pytest.mark.parametrize("payload", [{}, {"batchId": 1, "orderIds": ["1001"]}])
    def test_exactly_one_scope(self, payload):
        with pytest.raises(ValidationError):
            BulkPurchaseRequest.from_dict(payload)

    def test_cancel_requires_job_id(self):
        assert CancelJobRequest.from_dict({"jobId": "abc"}).job_id == "abc"
        with pytest.raises(ValidationError):
            CancelJobRequest.from_dict({})


class TestWebhookPayload:
    """Test product webhook parsing."""

    def test_parse(self):
        payload = ProductWebhookPayload.from_dict({
            "admin_graphql_api_id": "gid://shopify/Product/42",
            "title": "Sunset Tee",
        })
        assert payload.admin_graphql_api_id == "gid://shopify/Product/42"
        assert payload.title == "Sunset Tee"

    def test_missing_id(self):
        with pytest.raises(ValidationError):
            ProductWebhookPayload.from_dict({"title": "Sunset Tee"})
