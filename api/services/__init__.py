"""Request-level services for the curation API."""

from .reviewer_auth import get_caller

__all__ = [
    "get_caller",
]
