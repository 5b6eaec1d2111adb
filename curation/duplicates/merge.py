"""
Metadata merge from duplicates into a canonical lesson.

Set-valued classification fields become the ordered, deduplicated union of
the canonical's values and every duplicate's values. Single-valued fields
are only backfilled when the canonical has nothing. Title and summary are
curated by hand and never merged.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from curation.config import BACKFILL_FIELDS, CLASSIFICATION_FIELDS
from curation.database import Lesson, utcnow
from curation.duplicates.archive import lock_live_lessons
from curation.duplicates.errors import InvalidArgument, OperationResult
from curation.duplicates.permissions import Caller, require_reviewer
from curation.duplicates.state import clean_ids
from curation.duplicates.transaction import run_in_transaction


@dataclass
class MergeSummary:
    """What a merge changed on the canonical lesson."""
    canonical_id: str
    source_ids: list[str]
    added_values: dict[str, list[Any]] = field(default_factory=dict)
    backfilled_fields: dict[str, str] = field(default_factory=dict)  # field -> source lesson id

    @property
    def changed(self) -> bool:
        return bool(self.added_values or self.backfilled_fields)

    def to_dict(self) -> dict[str, Any]:
        return {
            "canonical_id": self.canonical_id,
            "source_ids": self.source_ids,
            "added_values": self.added_values,
            "backfilled_fields": self.backfilled_fields,
        }


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def union_values(*value_lists: Iterable[Any] | None) -> list[Any]:
    """Ordered union of several lists, skipping None and repeats."""
    merged: list[Any] = []
    for values in value_lists:
        for value in values or []:
            if value is not None and value not in merged:
                merged.append(value)
    return merged


def merge_into(canonical: Lesson, duplicates: Sequence[Lesson]) -> MergeSummary:
    """
    Merge classification metadata from duplicates into canonical, in place.

    Does not flush or commit; the caller owns the transaction.

    Args:
        canonical: Lesson that survives
        duplicates: Lessons whose metadata is folded in, in priority order

    Returns:
        MergeSummary describing the changes
    """
    summary = MergeSummary(
        canonical_id=canonical.lesson_id,
        source_ids=[d.lesson_id for d in duplicates],
    )

    for key in CLASSIFICATION_FIELDS:
        current = list(getattr(canonical, key) or [])
        merged = union_values(current, *(getattr(d, key) for d in duplicates))
        if merged != current:
            summary.added_values[key] = [v for v in merged if v not in current]
            # New list object so the JSON column registers the change
            setattr(canonical, key, merged)

    for key in BACKFILL_FIELDS:
        if not _is_empty(getattr(canonical, key)):
            continue
        for duplicate in duplicates:
            value = getattr(duplicate, key)
            if not _is_empty(value):
                setattr(canonical, key, value)
                summary.backfilled_fields[key] = duplicate.lesson_id
                break

    canonical.updated_at = utcnow()
    return summary


def merge_metadata(
    session: Session,
    caller: Caller,
    canonical_id: str,
    duplicate_ids: Sequence[str],
) -> OperationResult:
    """
    Merge duplicates' metadata into the canonical lesson without archiving.

    Returns:
        OperationResult with the merge summary
    """
    def work() -> dict[str, Any]:
        require_reviewer(session, caller)
        canon_id = clean_ids([canonical_id])[0]
        dup_ids = clean_ids(duplicate_ids)
        if canon_id in dup_ids:
            raise InvalidArgument(
                f"Lesson {canon_id} cannot be merged into itself",
                hint="Remove the canonical lesson from the duplicate list.",
            )

        lessons = lock_live_lessons(session, [canon_id, *dup_ids])
        summary = merge_into(lessons[canon_id], [lessons[d] for d in dup_ids])
        return {"merge": summary.to_dict()}

    return run_in_transaction(session, "merge_metadata", [canonical_id, *(duplicate_ids or [])], work)
