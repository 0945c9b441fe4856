"""
Batch routes.

Handles:
- /batches - Create a batch from queued orders
- /batches/<id> - Batch details and documents
- /batches/<id>/line-items - Every line item of the batch
- /batches/<id>/readiness - Settle preconditions
- /batches/<id>/settle - Settle the batch
- /batches/<id>/settlement - Status vs consumed stock per item
- /batches/<id>/verify-item-sync - Stamp storefront item check
- /batches/<id>/verify-premade-stock - Pre-printed requirements; POST stamps them
- /batches/<id>/verify-blank-stock - Blank requirements; POST stamps them
- /batches/<id>/verify-shipments - Stamp label check
"""

from flask import Blueprint

from models.requests import CreateBatchRequest, SettleBatchRequest
from routes.responses import ok, service, operator_context, json_body
from logging_config import get_logger


logger = get_logger(__name__)

batches_bp = Blueprint("batches", __name__, url_prefix="/batches")


@batches_bp.route("", methods=["POST"])
def create_batch():
    ctx = operator_context()
    req = CreateBatchRequest.from_dict(json_body(required=True))
    batch = service("BATCH_MANAGER").create_batch(req.order_ids, ctx)
    return ok(batch.to_dict(), 201)


@batches_bp.route("/<int:batch_id>", methods=["GET"])
def get_batch(batch_id: int):
    return ok(service("BATCH_MANAGER").get_batch(batch_id).to_dict())


@batches_bp.route("/<int:batch_id>/line-items", methods=["GET"])
def batch_line_items(batch_id: int):
    items = service("BATCH_MANAGER").line_items_for_batch(batch_id)
    return ok([i.to_dict() for i in items])


@batches_bp.route("/<int:batch_id>/readiness", methods=["GET"])
def readiness(batch_id: int):
    return ok(service("BATCH_MANAGER").readiness(batch_id))


@batches_bp.route("/<int:batch_id>/settle", methods=["POST"])
def settle(batch_id: int):
    ctx = operator_context()
    req = SettleBatchRequest.from_dict(json_body())
    batch = service("BATCH_MANAGER").settle_batch(batch_id, ctx, notes=req.notes)
    return ok(batch.to_dict())


@batches_bp.route("/<int:batch_id>/settlement", methods=["GET"])
def settlement(batch_id: int):
    return ok(service("BATCH_MANAGER").settlement_summary(batch_id))


@batches_bp.route("/<int:batch_id>/verify-item-sync", methods=["POST"])
def verify_item_sync(batch_id: int):
    batch = service("BATCH_MANAGER").verify_item_sync(batch_id, operator_context())
    return ok(batch.to_dict())


@batches_bp.route("/<int:batch_id>/verify-premade-stock", methods=["GET"])
def premade_stock(batch_id: int):
    return ok(service("BATCH_MANAGER").premade_stock_requirements(batch_id))


@batches_bp.route("/<int:batch_id>/verify-premade-stock", methods=["POST"])
def verify_premade_stock(batch_id: int):
    batch = service("BATCH_MANAGER").verify_premade_stock(batch_id, operator_context())
    return ok(batch.to_dict())


@batches_bp.route("/<int:batch_id>/verify-blank-stock", methods=["GET"])
def blank_stock(batch_id: int):
    return ok(service("BATCH_MANAGER").blank_stock_requirements(batch_id))


@batches_bp.route("/<int:batch_id>/verify-blank-stock", methods=["POST"])
def verify_blank_stock(batch_id: int):
    batch = service("BATCH_MANAGER").verify_blank_stock(batch_id, operator_context())
    return ok(batch.to_dict())


@batches_bp.route("/<int:batch_id>/verify-shipments", methods=["POST"])
def verify_shipments(batch_id: int):
    batch = service("BATCH_MANAGER").verify_shipments(batch_id, operator_context())
    return ok(batch.to_dict())
