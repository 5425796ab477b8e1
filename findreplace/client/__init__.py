from .admin import AdminClient

__all__ = ["AdminClient"]
