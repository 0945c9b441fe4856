"""
Storefront webhook routes.

Handles:
- /webhooks/products - Product create/update notifications

Status codes follow what the storefront retries on: 400 for payloads that
will never parse, 500 when processing failed, 200 otherwise.
"""

from flask import Blueprint, request

from core.exceptions import ValidationError
from models.requests import ProductWebhookPayload
from routes.responses import ok, service
from logging_config import get_logger


logger = get_logger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")


@webhooks_bp.route("/products", methods=["POST"])
def product_webhook():
    body = request.get_json(silent=True)
    if body is None:
        raise ValidationError("Webhook body must be valid JSON")
    payload = ProductWebhookPayload.from_dict(body)

    try:
        service("CATALOG_SYNC").handle(payload)
    except Exception as e:
        logger.error(f"Product webhook for {payload.admin_graphql_api_id} failed: {e}", exc_info=True)
        return {"data": None, "error": f"Processing failed: {e}", "kind": "WebhookProcessingError"}, 500

    return ok({"received": payload.admin_graphql_api_id})
