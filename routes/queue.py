"""
Order queue routes.

Handles:
- /queue - Queued orders in fulfillment order
"""

from flask import Blueprint, request

from routes.responses import ok, service
from logging_config import get_logger


logger = get_logger(__name__)

queue_bp = Blueprint("queue", __name__)


@queue_bp.route("/queue", methods=["GET"])
def list_queue():
    """
    List queued orders, highest priority first.

    Query params:
        withItemData: include each order's line items
        includeHeld: include orders with an unresolved hold
    """
    with_items = request.args.get("withItemData", "false").lower() == "true"
    include_held = request.args.get("includeHeld", "false").lower() == "true"
    orders = service("ORDER_QUEUE").list_queued(with_item_data=with_items, include_held=include_held)
    return ok(orders)
