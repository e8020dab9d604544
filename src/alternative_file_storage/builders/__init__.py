"""Builder modules for object stores."""

from .storage import create_storage_from_settings, endpoint_for

__all__ = ["create_storage_from_settings", "endpoint_for"]
