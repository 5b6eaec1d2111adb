"""
Group-level duplicate review: list open groups and resolve one in a single step.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from curation.config import DuplicateSettings, settings as app_settings
from curation.database import DuplicateResolution, Lesson, utcnow
from curation.duplicates.archive import archive_lessons, lock_live_lessons
from curation.duplicates.errors import InvalidArgument, OperationResult
from curation.duplicates.finder import DETECTION_METHODS, find_duplicate_pairs
from curation.duplicates.groups import MIXED, group_pairs
from curation.duplicates.merge import merge_into
from curation.duplicates.permissions import Caller, require_reviewer
from curation.duplicates.review import lesson_details, recommend_canonical
from curation.duplicates.state import (
    archived_canonical_ids,
    clean_ids,
    dismissed_group_keys,
)
from curation.duplicates.transaction import run_in_transaction

ARCHIVE_ONLY = "archive_only"
MERGE_AND_ARCHIVE = "merge_and_archive"
MAX_TITLE_LENGTH = 500


def fetch_duplicate_groups(
    session: Session,
    caller: Caller,
    include_resolved: bool = False,
    config: DuplicateSettings | None = None,
) -> list[dict[str, Any]]:
    """
    Candidate duplicate groups ready for review.

    Groups that were already dismissed (exact id set) or that contain a
    lesson some earlier resolution kept as canonical are left out unless
    include_resolved is set.

    Raises:
        PermissionDenied: caller is not a reviewer
    """
    config = config or app_settings.duplicates
    require_reviewer(session, caller, config)

    groups = group_pairs(find_duplicate_pairs(session, config))

    if not include_resolved:
        dismissed = dismissed_group_keys(session)
        canonicals = archived_canonical_ids(session)
        before = len(groups)
        groups = [
            g for g in groups
            if g.key not in dismissed and not canonicals.intersection(g.lesson_ids)
        ]
        if before != len(groups):
            logger.info(f"Skipped {before - len(groups)} already resolved groups")

    all_ids = {lesson_id for g in groups for lesson_id in g.lesson_ids}
    lessons = {
        lesson.lesson_id: lesson
        for lesson in session.scalars(select(Lesson).where(Lesson.lesson_id.in_(all_ids)))
    } if all_ids else {}

    results = []
    for group in groups:
        members = [lessons[i] for i in group.lesson_ids if i in lessons]
        results.append({
            "group_id": group.key,
            "lesson_ids": group.lesson_ids,
            "detection_method": group.detection_method,
            "confidence": group.confidence,
            "avg_similarity": group.avg_similarity,
            "pair_count": group.pair_count,
            "recommended_canonical": recommend_canonical(members),
            "lessons": [lesson_details(lesson, config) for lesson in members],
        })
    return results


def _check_title_updates(
    title_updates: Mapping[str, str] | None,
    group_ids: Sequence[str],
) -> dict[str, str]:
    """Validate explicit title edits against the group being resolved."""
    if not title_updates:
        return {}
    if not isinstance(title_updates, Mapping):
        raise InvalidArgument("title_updates must map lesson ids to new titles")

    checked: dict[str, str] = {}
    for lesson_id, title in title_updates.items():
        lesson_id = lesson_id.strip() if isinstance(lesson_id, str) else lesson_id
        if lesson_id not in group_ids:
            raise InvalidArgument(
                f"Title update for {lesson_id!r}, which is not in this group",
                hint="Only lessons being resolved can be renamed here.",
            )
        if not isinstance(title, str) or not title.strip():
            raise InvalidArgument(f"Invalid title for lesson {lesson_id}: title cannot be empty")
        if len(title) > MAX_TITLE_LENGTH:
            raise InvalidArgument(
                f"Invalid title for lesson {lesson_id}: title exceeds {MAX_TITLE_LENGTH} characters"
            )
        checked[lesson_id] = title.strip()
    return checked


def apply_title_updates(
    lessons: Mapping[str, Lesson],
    title_updates: Mapping[str, str],
    actor: str | None,
) -> list[dict[str, str]]:
    """
    Rename locked lessons and note the old title in processing_notes.

    Returns:
        One {lesson_id, old_title, new_title} entry per lesson whose title changed
    """
    applied = []
    for lesson_id, new_title in title_updates.items():
        lesson = lessons[lesson_id]
        old_title = lesson.title
        if old_title == new_title:
            continue
        lesson.title = new_title
        lesson.updated_at = utcnow()
        note = (
            f"[{lesson.updated_at.isoformat()}] Title updated during duplicate resolution "
            f"by {actor or 'unknown'}. Original title: \"{old_title}\""
        )
        lesson.processing_notes = f"{lesson.processing_notes}\n{note}" if lesson.processing_notes else note
        applied.append({"lesson_id": lesson_id, "old_title": old_title, "new_title": new_title})
        logger.info(f"Renamed {lesson_id}: {old_title!r} -> {new_title!r}")
    return applied



def resolve_duplicate_group(
    session: Session,
    caller: Caller,
    canonical_id: str,
    duplicate_ids: Sequence[str],
    merge_metadata: bool = False,
    detection_method: str | None = None,
    notes: str | None = None,
    title_updates: Mapping[str, str] | None = None,
    config: DuplicateSettings | None = None,
) -> OperationResult:
    """
    Keep canonical_id and archive every duplicate, optionally merging
    their classification metadata first. One transaction for the lot.

    title_updates maps lesson ids of this group to reviewer-edited titles.
    They are applied before the merge and the snapshots, so an archived
    duplicate keeps the title it was renamed to. The merge itself never
    touches titles.

    Returns:
        OperationResult with canonical_id, archived_ids, resolution_id,
        the merge summary (None when merge_metadata is off) and the
        applied title_updates
    """
    ids = [canonical_id, *(duplicate_ids or [])]

    def work() -> dict[str, Any]:
        require_reviewer(session, caller, config)

        if not isinstance(canonical_id, str) or not canonical_id.strip():
            raise InvalidArgument("canonical_id must be a non-empty lesson id")
        canon_id = canonical_id.strip()
        dup_ids = clean_ids(duplicate_ids)
        if canon_id in dup_ids:
            raise InvalidArgument(
                f"Lesson {canon_id} cannot be archived as a duplicate of itself",
                hint="Remove the canonical lesson from the duplicate list.",
            )
        if detection_method is not None and detection_method not in (*DETECTION_METHODS, MIXED):
            raise InvalidArgument(f"Unknown detection method: {detection_method!r}")
        renames = _check_title_updates(title_updates, [canon_id, *dup_ids])

        lessons = lock_live_lessons(session, [canon_id, *dup_ids])
        renamed = apply_title_updates(lessons, renames, caller.actor)

        summary = None
        if merge_metadata:
            summary = merge_into(lessons[canon_id], [lessons[d] for d in dup_ids])
            session.flush()

        records = archive_lessons(session, lessons, dup_ids, canon_id, caller.actor, config)

        resolution = DuplicateResolution(
            canonical_lesson_id=canon_id,
            archived_lesson_ids=dup_ids,
            lessons_in_group=len(dup_ids) + 1,
            action_taken=MERGE_AND_ARCHIVE if merge_metadata else ARCHIVE_ONLY,
            metadata_merged=summary.to_dict() if summary else None,
            title_updates=renamed or None,
            detection_method=detection_method,
            resolved_by=caller.actor,
            notes=notes,
        )
        session.add(resolution)
        session.flush()

        return {
            "canonical_id": canon_id,
            "archived_ids": dup_ids,
            "archive_record_ids": [str(r.id) for r in records],
            "resolution_id": str(resolution.id),
            "merge": summary.to_dict() if summary else None,
            "title_updates": renamed,
        }

    return run_in_transaction(session, "resolve_duplicate_group", ids, work)
