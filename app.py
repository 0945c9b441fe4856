"""
PrintFulfillment - Flask Application Entry Point.

This is a slim app factory that:
1. Configures logging
2. Builds the in-memory fulfillment store and core services
3. Builds carrier backends and starts the shipment worker pool
4. Registers route blueprints
5. Sets up JSON error handlers

ARCHITECTURE:
    Main Thread
    ├── Service wiring (store, ledger, line items, holds, queue, batches)
    ├── Flask request handling (synchronous operations)
    └── Cleanup on shutdown (stop workers, close carrier clients)

    Shipment Worker Threads (background, "Shipments-N")
    └── Bulk purchase jobs, observed through the job store only

Request threads never wait on carrier calls.
"""

from __future__ import annotations

import atexit
import logging
import os
from typing import Dict, Optional

from flask import Flask
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from logging_config import setup_logging, get_logger
from core.carrier_client import CarrierClient, HttpCarrierClient
from core.exceptions import FulfillmentError
from core.store import FulfillmentStore
from services.inventory_ledger import InventoryLedger
from services.line_item_service import LineItemService
from services.hold_registry import HoldRegistry
from services.order_queue import OrderQueue
from services.batch_manager import BatchManager
from services.shipment_service import ShipmentPurchaseService
from modules.parcel_builder import ParcelBuilder
from modules.fake_carrier import FakeCarrierClient
from modules.catalog_sync import CatalogSync
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def build_carrier_clients(config) -> Dict[str, CarrierClient]:
    """
    Build one carrier backend per name in ``CARRIER_BACKENDS``.

    Raises:
        ValueError: An HTTP backend is configured without a gateway URL
    """
    clients: Dict[str, CarrierClient] = {}
    for name in config.get("CARRIER_BACKENDS") or ["fake"]:
        if name == "fake":
            clients[name] = FakeCarrierClient(name=name)
        else:
            clients[name] = HttpCarrierClient(
                name=name,
                base_url=config.get("CARRIER_GATEWAY_URL", ""),
                api_key=config.get("CARRIER_API_KEY") or None,
                timeout_seconds=config.get("CARRIER_TIMEOUT_SECONDS", 15.0),
            )
    return clients


def create_app(
    config_object: str = "config.Config",
    store: Optional[FulfillmentStore] = None,
    carrier_clients: Optional[Dict[str, CarrierClient]] = None,
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    Args:
        config_object: Import path of the config class
        store: Pre-populated store (a fresh empty one by default)
        carrier_clients: Carrier backends by name (built from config by default)

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production"

    root_logger = setup_logging(
        log_level=log_level,
        enable_file_logging=enable_file_logging
    )

    # Set Flask's logger to use our configured logger
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting PrintFulfillment in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # CORE SERVICES
    # =========================================================================

    store = store if store is not None else FulfillmentStore()
    ledger = InventoryLedger(store)
    holds = HoldRegistry(store)
    line_items = LineItemService(store, ledger)
    order_queue = OrderQueue(store, holds, promotion_days=app.config["LOW_PRIORITY_PROMOTION_DAYS"])
    batches = BatchManager(store, holds, ledger)

    app.config["STORE"] = store
    app.config["INVENTORY_LEDGER"] = ledger
    app.config["HOLD_REGISTRY"] = holds
    app.config["LINE_ITEM_SERVICE"] = line_items
    app.config["ORDER_QUEUE"] = order_queue
    app.config["BATCH_MANAGER"] = batches
    app.config["CATALOG_SYNC"] = CatalogSync()

    # =========================================================================
    # SHIPMENTS (background workers)
    # =========================================================================

    carriers = carrier_clients if carrier_clients is not None else build_carrier_clients(app.config)
    shipment_service = ShipmentPurchaseService(
        store,
        holds,
        batches,
        ParcelBuilder(store),
        carriers,
        workers=app.config["SHIPMENT_WORKERS"],
        retention=app.config["JOB_RETENTION"],
    )
    shipment_service.start()
    app.config["SHIPMENT_SERVICE"] = shipment_service
    logger.info("Shipment purchase service started")

    # =========================================================================
    # CLEANUP REGISTRATION
    # =========================================================================

    def cleanup():
        """Cleanup on application shutdown."""
        logger.info("Shutting down...")
        shipment_service.shutdown()
        logger.info("Shutdown complete")

    atexit.register(cleanup)

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(FulfillmentError)
    def handle_fulfillment_error(e: FulfillmentError):
        if e.status_code >= 500:
            logger.error(f"{e.kind}: {e}")
        else:
            logger.info(f"{e.kind}: {e.message}")
        return e.to_dict(), e.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(e):
        max_kb = app.config.get("MAX_CONTENT_LENGTH", 1024 * 1024) / 1024
        return _error_body(f"Request body too large. Maximum size is {max_kb:.0f} KB.", "RequestTooLarge"), 413

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return _error_body(e.description or e.name, e.name.replace(" ", "")), e.code

    @app.errorhandler(Exception)
    def handle_server_error(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return _error_body("An unexpected error occurred.", "InternalError"), 500

    logger.info("Application initialized successfully")
    return app


def _error_body(message: str, kind: str):
    return {"data": None, "error": message, "kind": kind, "details": {}}


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(debug=debug_mode)
