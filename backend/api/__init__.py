"""API route handlers."""
from . import connections

__all__ = ["connections"]
