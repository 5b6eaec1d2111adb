"""
Resolution state of a group of lesson ids.

"archived" wins over "dismissed": a group is archived when any earlier
resolution or archive row names one of its ids as the canonical lesson.
"dismissed" requires a dismissal over exactly the same id set.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from curation.database import DuplicateGroupDismissal, DuplicateResolution, LessonArchive
from curation.duplicates.errors import InvalidArgument
from curation.duplicates.groups import group_key

NOT_RESOLVED = "not_resolved"
ARCHIVED = "archived"
DISMISSED = "dismissed"


@dataclass(frozen=True)
class GroupState:
    state: str
    resolved_at: datetime | None = None

    @property
    def is_resolved(self) -> bool:
        return self.state != NOT_RESOLVED

    def to_dict(self) -> dict:
        """Shape returned to the review UI."""
        return {
            "is_resolved": self.is_resolved,
            "resolution_type": self.state if self.is_resolved else "none",
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


def clean_ids(lesson_ids: Iterable[str] | None) -> list[str]:
    """Deduplicated, stripped ids; InvalidArgument if nothing usable is left."""
    if lesson_ids is None or isinstance(lesson_ids, str):
        raise InvalidArgument("lesson_ids must be a list of lesson ids")

    cleaned = []
    for lesson_id in lesson_ids:
        if not isinstance(lesson_id, str) or not lesson_id.strip():
            raise InvalidArgument(f"Malformed lesson id: {lesson_id!r}")
        if lesson_id.strip() not in cleaned:
            cleaned.append(lesson_id.strip())

    if not cleaned:
        raise InvalidArgument("At least one lesson id is required")
    return cleaned


def _latest_archive_time(session: Session, ids: list[str]) -> datetime | None:
    resolved = session.scalar(
        select(func.max(DuplicateResolution.resolved_at))
        .where(DuplicateResolution.canonical_lesson_id.in_(ids))
    )
    archived = session.scalar(
        select(func.max(LessonArchive.archived_at))
        .where(LessonArchive.canonical_id.in_(ids))
    )
    times = [t for t in (resolved, archived) if t is not None]
    return max(times) if times else None


def _has_archive_reference(session: Session, ids: list[str]) -> bool:
    return bool(
        session.scalar(
            select(func.count()).select_from(DuplicateResolution)
            .where(DuplicateResolution.canonical_lesson_id.in_(ids))
        )
        or session.scalar(
            select(func.count()).select_from(LessonArchive)
            .where(LessonArchive.canonical_id.in_(ids))
        )
    )


def check_group_state(session: Session, lesson_ids: Iterable[str]) -> GroupState:
    """
    Determine whether a group was already archived or dismissed.

    Args:
        session: Database session
        lesson_ids: Ids in the group, any order

    Returns:
        GroupState with the latest matching decision time
    """
    ids = clean_ids(lesson_ids)

    if _has_archive_reference(session, ids):
        return GroupState(ARCHIVED, _latest_archive_time(session, ids))

    dismissed_at = session.scalar(
        select(func.max(DuplicateGroupDismissal.dismissed_at))
        .where(DuplicateGroupDismissal.group_key == group_key(ids))
    )
    if dismissed_at is not None:
        return GroupState(DISMISSED, dismissed_at)

    return GroupState(NOT_RESOLVED)


def check_group_already_resolved(session: Session, lesson_ids: Iterable[str]) -> dict:
    """check_group_state in the review UI's response shape."""
    return check_group_state(session, lesson_ids).to_dict()


def dismissed_group_keys(session: Session) -> set[str]:
    """Every dismissed group key, for filtering many groups with one query."""
    return set(session.scalars(select(DuplicateGroupDismissal.group_key)).all())


def archived_canonical_ids(session: Session) -> set[str]:
    """Every id that some resolution or archive row names as canonical."""
    resolved = session.scalars(select(DuplicateResolution.canonical_lesson_id)).all()
    archived = session.scalars(
        select(LessonArchive.canonical_id).where(LessonArchive.canonical_id.is_not(None))
    ).all()
    return set(resolved) | set(archived)
