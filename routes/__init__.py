"""
Flask route blueprints for PrintFulfillment.

This module contains all route handlers organized by functionality:
- queue: Queued orders
- orders: Queue membership and holds
- batches: Batch lifecycle and documents
- assembly: Active batch and line item transitions
- inventory: Blank variant stock and ledger
- shipments: Bulk shipment purchase jobs
- webhooks: Storefront notifications
- api: Health check

Each blueprint is registered with the Flask app in create_app().
"""

from .queue import queue_bp
from .orders import orders_bp
from .batches import batches_bp
from .assembly import assembly_bp
from .inventory import inventory_bp
from .shipments import shipments_bp
from .webhooks import webhooks_bp
from .api import api_bp

__all__ = [
    "queue_bp",
    "orders_bp",
    "batches_bp",
    "assembly_bp",
    "inventory_bp",
    "shipments_bp",
    "webhooks_bp",
    "api_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(queue_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(batches_bp)
    app.register_blueprint(assembly_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(shipments_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(api_bp)
