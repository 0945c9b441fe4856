"""
Configuration for PrintFulfillment.

Values come from environment variables; a ``.env`` file next to the
application is loaded first so local settings don't need exporting.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env early so environment variables are visible to the Config class body
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


def _split_list(value: str):
    return [part.strip() for part in value.split(",") if part.strip()]


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"
    TESTING = False
    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # 1 MB JSON bodies

    # ==========================================================================
    # Order queue
    # ==========================================================================
    # LOW priority orders older than this many days sort as NORMAL
    LOW_PRIORITY_PROMOTION_DAYS = int(os.environ.get("LOW_PRIORITY_PROMOTION_DAYS", "28"))

    # ==========================================================================
    # Bulk shipment purchase
    # ==========================================================================
    # SHIPMENT_WORKERS: background threads consuming purchase jobs
    # JOB_RETENTION: finished jobs kept in memory for status polling
    SHIPMENT_WORKERS = int(os.environ.get("SHIPMENT_WORKERS", "2"))
    JOB_RETENTION = int(os.environ.get("JOB_RETENTION", "200"))

    # ==========================================================================
    # Carrier backends
    # ==========================================================================
    # CARRIER_BACKENDS: comma separated backend names. "fake" is the
    #   in-process backend; any other name is an HTTP carrier gateway at
    #   CARRIER_GATEWAY_URL (one client per name).
    # ==========================================================================
    CARRIER_BACKENDS = _split_list(os.environ.get("CARRIER_BACKENDS", "fake"))
    CARRIER_GATEWAY_URL = os.environ.get("CARRIER_GATEWAY_URL", "")
    CARRIER_API_KEY = os.environ.get("CARRIER_API_KEY", "")
    CARRIER_TIMEOUT_SECONDS = float(os.environ.get("CARRIER_TIMEOUT_SECONDS", "15"))


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    ENVIRONMENT = "testing"
    CARRIER_BACKENDS = ["fake"]
    SHIPMENT_WORKERS = 1
