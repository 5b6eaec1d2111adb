"""Utility modules for the curation tools."""

from curation.utils.logging import setup_logging
from curation.utils.text import (
    content_preview,
    copy_title_markers,
    has_text,
    is_placeholder_title,
    normalize_title,
)

__all__ = [
    # Logging
    "setup_logging",
    # Text utilities
    "normalize_title",
    "is_placeholder_title",
    "content_preview",
    "has_text",
    "copy_title_markers",
]
