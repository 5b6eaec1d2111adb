"""
Archival engine: moves a duplicate lesson into lesson_archive.

The order inside the transaction is fixed:

1. read the duplicate (row locked)
2. insert the complete snapshot into lesson_archive and flush it
3. re-point live lessons whose canonical_id names the duplicate
4. delete the live lesson

The delete is always last. If anything before it fails the transaction is
rolled back and the live lesson is untouched.

Canonical pointers stored in lesson_archive and duplicate_resolutions are
plain text and may dangle once their target is archived in turn;
resolve_canonical_id follows them to the lesson that is live today.
"""

import copy
import uuid
from collections.abc import Iterable
from typing import Any

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from curation.config import DuplicateSettings, settings as app_settings
from curation.database import (
    Lesson,
    LessonArchive,
    empty_value,
    lesson_column_keys,
)
from curation.duplicates.errors import Conflict, InvalidArgument, NotFound, OperationResult
from curation.duplicates.permissions import Caller, require_reviewer
from curation.duplicates.transaction import run_in_transaction

# Lesson columns with no direct counterpart in the archive row
_LINK_COLUMNS = ("lesson_id", "canonical_id")


def _require_id(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"{name} must be a non-empty lesson id")
    return value.strip()


def lock_live_lessons(session: Session, lesson_ids: Iterable[str]) -> dict[str, Lesson]:
    """
    Load and row-lock live lessons, in id order to avoid lock cycles.

    Raises:
        NotFound: if any id is not a live lesson. A concurrent resolution
            that already archived the row surfaces here.
    """
    ids = list(dict.fromkeys(lesson_ids))
    rows = session.scalars(
        select(Lesson)
        .where(Lesson.lesson_id.in_(ids))
        .order_by(Lesson.lesson_id)
        .with_for_update()
    ).all()
    found = {lesson.lesson_id: lesson for lesson in rows}

    for lesson_id in ids:
        if lesson_id in found:
            continue
        archived_to = session.scalar(
            select(LessonArchive.canonical_id).where(LessonArchive.lesson_id == lesson_id)
        )
        if archived_to is not None:
            live = resolve_canonical_id(session, lesson_id)
            raise NotFound(
                f"Lesson not found: {lesson_id} (already archived as a duplicate of {archived_to})",
                hint=f"Use {live} instead." if live else "Restore the archived lesson first.",
            )
        raise NotFound(f"Lesson not found: {lesson_id}")

    return found


def snapshot_lesson(
    lesson: Lesson,
    canonical_id: str,
    archived_by: str | None,
    config: DuplicateSettings | None = None,
) -> LessonArchive:
    """Build the archive row for a lesson: every column copied, no NULL collections."""
    config = config or app_settings.duplicates

    values: dict[str, Any] = {}
    for key in lesson_column_keys():
        if key in _LINK_COLUMNS:
            continue
        value = getattr(lesson, key)
        if value is None:
            value = empty_value(key)
        values[key] = copy.deepcopy(value)

    return LessonArchive(
        id=uuid.uuid4(),
        lesson_id=lesson.lesson_id,
        lesson_canonical_id=lesson.canonical_id,
        archived_by=archived_by,
        archive_reason=f"{config.archive_reason}: duplicate of {canonical_id}",
        canonical_id=canonical_id,
        **values,
    )


def repoint_canonical_references(session: Session, duplicate_id: str, canonical_id: str) -> int:
    """
    Move live version links off the duplicate so it can be deleted.

    Lessons that named the duplicate as their canonical now name the new
    canonical; the new canonical itself just drops the link.

    Returns:
        Number of lessons updated
    """
    moved = session.execute(
        update(Lesson)
        .where(Lesson.canonical_id == duplicate_id, Lesson.lesson_id != canonical_id)
        .values(canonical_id=canonical_id)
        .execution_options(synchronize_session="fetch")
    ).rowcount or 0
    cleared = session.execute(
        update(Lesson)
        .where(Lesson.canonical_id == duplicate_id, Lesson.lesson_id == canonical_id)
        .values(canonical_id=None)
        .execution_options(synchronize_session="fetch")
    ).rowcount or 0
    return moved + cleared


def archive_lesson(
    session: Session,
    duplicate: Lesson,
    canonical_id: str,
    archived_by: str | None,
    config: DuplicateSettings | None = None,
) -> LessonArchive:
    """
    Archive one locked duplicate inside the caller's transaction.

    Does not commit. The caller must already hold the row locks on the
    duplicate and the canonical.
    """
    duplicate_id = duplicate.lesson_id

    # lesson_archive.lesson_id is unique; a re-imported lesson can't be archived twice
    previous = session.scalar(
        select(LessonArchive.canonical_id).where(LessonArchive.lesson_id == duplicate_id)
    )
    if previous is not None:
        raise Conflict(
            f"Lesson {duplicate_id} already has an archived copy (duplicate of {previous})",
            hint="Restore the archived copy or rename the live lesson before archiving it.",
        )

    # Step 2: durable snapshot first
    record = snapshot_lesson(duplicate, canonical_id, archived_by, config)
    session.add(record)
    session.flush()

    # Step 3: nothing may reference the duplicate when it goes
    repointed = repoint_canonical_references(session, duplicate_id, canonical_id)
    dependents = session.scalar(
        select(func.count()).select_from(LessonArchive)
        .where(LessonArchive.canonical_id == duplicate_id)
    )
    if dependents:
        logger.info(
            f"{dependents} archived lessons point at {duplicate_id}; "
            f"they now resolve through it to {canonical_id}"
        )

    # Step 4: delete last
    session.delete(duplicate)
    session.flush()

    logger.info(
        f"Archived {duplicate_id} as duplicate of {canonical_id} "
        f"(archive {record.id}, {repointed} version links re-pointed)"
    )
    return record


def archive_lessons(
    session: Session,
    lessons: dict[str, Lesson],
    duplicate_ids: Iterable[str],
    canonical_id: str,
    archived_by: str | None,
    config: DuplicateSettings | None = None,
) -> list[LessonArchive]:
    """Archive several locked duplicates in favour of one canonical, in the given order."""
    return [
        archive_lesson(session, lessons[duplicate_id], canonical_id, archived_by, config)
        for duplicate_id in duplicate_ids
    ]


def archive_duplicate_lesson(
    session: Session,
    caller: Caller,
    duplicate_id: str,
    canonical_id: str,
    config: DuplicateSettings | None = None,
) -> OperationResult:
    """
    Archive a duplicate lesson in favour of a canonical one.

    All-or-nothing: on any failure no snapshot exists and the duplicate is
    still live.

    Args:
        session: Database session with no pending work
        caller: Identity from the auth provider
        duplicate_id: Lesson to archive
        canonical_id: Lesson that stays live

    Returns:
        OperationResult with archived_id, canonical_id and archive_record_id
    """
    def work() -> dict[str, Any]:
        require_reviewer(session, caller, config)
        dup_id = _require_id(duplicate_id, "duplicate_id")
        canon_id = _require_id(canonical_id, "canonical_id")
        if dup_id == canon_id:
            raise InvalidArgument(
                f"Lesson {dup_id} cannot be archived as a duplicate of itself",
                hint="Pick a different lesson as the canonical version.",
            )

        lessons = lock_live_lessons(session, [dup_id, canon_id])
        record = archive_lesson(session, lessons[dup_id], canon_id, caller.actor, config)
        return {
            "archived_id": dup_id,
            "canonical_id": canon_id,
            "archive_record_id": str(record.id),
        }

    return run_in_transaction(session, "archive_duplicate_lesson", [duplicate_id, canonical_id], work)


def resolve_canonical_id(session: Session, lesson_id: str) -> str | None:
    """
    Follow archive canonical pointers until reaching a live lesson.

    Returns:
        The live lesson id, lesson_id itself if it is live, or None when the
        chain ends at a lesson that is neither live nor archived (or loops)
    """
    seen: set[str] = set()
    current = lesson_id
    while current and current not in seen:
        seen.add(current)
        if session.get(Lesson, current) is not None:
            return current
        current = session.scalar(
            select(LessonArchive.canonical_id).where(LessonArchive.lesson_id == current)
        )
    return None


def restore_archived_lesson(
    session: Session,
    caller: Caller,
    lesson_id: str,
) -> OperationResult:
    """
    Put an archived lesson back into the live table and drop its snapshot.

    The version link is restored only if its target is live again.

    Returns:
        OperationResult with restored_id and the archive row's canonical_id
    """
    def work() -> dict[str, Any]:
        require_reviewer(session, caller)
        restore_id = _require_id(lesson_id, "lesson_id")

        record = session.scalars(
            select(LessonArchive)
            .where(LessonArchive.lesson_id == restore_id)
            .with_for_update()
        ).first()
        if record is None:
            raise NotFound(f"No archived lesson with id {restore_id}")
        if session.get(Lesson, restore_id) is not None:
            raise Conflict(
                f"Lesson {restore_id} is already live",
                hint="Archive or rename the live lesson before restoring.",
            )

        values = {
            key: copy.deepcopy(getattr(record, key))
            for key in lesson_column_keys()
            if key not in _LINK_COLUMNS
        }
        link = record.lesson_canonical_id
        if link and session.get(Lesson, link) is None:
            link = None

        session.add(Lesson(lesson_id=restore_id, canonical_id=link, **values))
        session.flush()
        session.delete(record)
        session.flush()

        return {"restored_id": restore_id, "canonical_id": record.canonical_id}

    return run_in_transaction(session, "restore_archived_lesson", [lesson_id], work)
