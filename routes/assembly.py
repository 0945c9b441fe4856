"""
Assembly line routes.

Handles:
- /assembly - Active batch line items in working order
- /assembly/<line_item_id>/<action> - Line item state transitions
"""

from flask import Blueprint

from models.requests import PrintRequest, ResetRequest, MisprintRequest
from routes.responses import ok, service, operator_context, json_body
from logging_config import get_logger


logger = get_logger(__name__)

assembly_bp = Blueprint("assembly", __name__, url_prefix="/assembly")


@assembly_bp.route("", methods=["GET"])
def assembly_line():
    """Line items of the single active batch (404 when none is active)."""
    batches = service("BATCH_MANAGER")
    batch = batches.get_active_batch()
    return ok({"batch_id": batch.id, "line_items": batches.assembly_line(batch.id)})


@assembly_bp.route("/<line_item_id>/print", methods=["POST"])
def mark_printed(line_item_id: str):
    ctx = operator_context()
    req = PrintRequest.from_dict(json_body())
    item = service("LINE_ITEM_SERVICE").mark_printed(
        line_item_id, ctx, print_id=req.print_id, override=req.override
    )
    return ok(item.to_dict())


@assembly_bp.route("/<line_item_id>/stock", methods=["POST"])
def mark_stocked(line_item_id: str):
    item = service("LINE_ITEM_SERVICE").mark_stocked(line_item_id, operator_context())
    return ok(item.to_dict())


@assembly_bp.route("/<line_item_id>/oos", methods=["POST"])
def mark_oos(line_item_id: str):
    item = service("LINE_ITEM_SERVICE").mark_oos(line_item_id, operator_context())
    return ok(item.to_dict())


@assembly_bp.route("/<line_item_id>/reset", methods=["POST"])
def reset(line_item_id: str):
    ctx = operator_context()
    req = ResetRequest.from_dict(json_body())
    item = service("LINE_ITEM_SERVICE").reset(line_item_id, ctx, restore_inventory=req.restore_inventory)
    return ok(item.to_dict())


@assembly_bp.route("/<line_item_id>/skip", methods=["POST"])
def mark_skipped(line_item_id: str):
    item = service("LINE_ITEM_SERVICE").mark_skipped(line_item_id, operator_context())
    return ok(item.to_dict())


@assembly_bp.route("/<line_item_id>/ignore", methods=["POST"])
def mark_ignored(line_item_id: str):
    item = service("LINE_ITEM_SERVICE").mark_ignored(line_item_id, operator_context())
    return ok(item.to_dict())


@assembly_bp.route("/<line_item_id>/misprint", methods=["POST"])
def report_misprint(line_item_id: str):
    ctx = operator_context()
    req = MisprintRequest.from_dict(json_body())
    item = service("LINE_ITEM_SERVICE").report_misprint(line_item_id, ctx, notes=req.notes)
    return ok(item.to_dict())
