"""Function-as-a-service entry point for Browser Export."""

from .handler import handle, handler

__all__ = ["handle", "handler"]
