"""Text helpers shared by duplicate detection and the review views."""

import re


def normalize_title(title: str | None) -> str:
    """Normalize a lesson title for exact duplicate matching.

    Only case and surrounding whitespace are ignored, so "Garden Basics 101"
    and "garden basics 101 " match but "Garden Basics" and "Garden-Basics"
    do not.

    Args:
        title: Raw lesson title

    Returns:
        Normalized title, or empty string if input is empty/None
    """
    if not title:
        return ""
    return title.strip().lower()


def is_placeholder_title(title: str | None, sentinel: str) -> bool:
    """True for the placeholder title written by failed imports."""
    return (title or "").strip() == sentinel


def content_preview(text: str | None, max_length: int = 200) -> str | None:
    """First max_length characters of the lesson body, or None."""
    if text is None:
        return None
    return text[:max_length]


def has_text(value: str | None) -> bool:
    """True if value contains anything other than whitespace."""
    return bool(value and value.strip())


def copy_title_markers(title: str) -> list[str]:
    """Markers in a title suggesting the lesson is a copy of another one."""
    markers = []
    if "Copy" in title:
        markers.append("Copy")
    if re.search(r"_v\d+", title):
        markers.append("_v")
    if "(Updated)" in title:
        markers.append("(Updated)")
    return markers
