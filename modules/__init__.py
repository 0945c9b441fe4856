"""Helper modules for the PrintFulfillment application."""

__all__ = [
    "catalog_sync",
    "fake_carrier",
    "parcel_builder",
    "rate_selector",
]
