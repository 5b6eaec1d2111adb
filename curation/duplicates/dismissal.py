"""Dismissal tracker: records "keep all" decisions over an exact lesson id set."""

from collections.abc import Sequence
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from curation.database import DuplicateGroupDismissal
from curation.duplicates.errors import Conflict, InvalidArgument, NotFound, OperationResult
from curation.duplicates.finder import DETECTION_METHODS
from curation.duplicates.groups import group_key
from curation.duplicates.permissions import Caller, require_reviewer
from curation.duplicates.state import clean_ids
from curation.duplicates.transaction import run_in_transaction

DEFAULT_NOTE = "Dismissed via duplicate review interface"


def dismiss_group(
    session: Session,
    caller: Caller,
    lesson_ids: Sequence[str],
    detection_method: str,
    note: str | None = None,
) -> OperationResult:
    """
    Record that a group of lessons are not duplicates.

    No lesson is modified. Later state checks over the identical id set
    report "dismissed"; subsets and supersets do not match.

    Returns:
        OperationResult with dismissal_id and the stored lesson_ids
    """
    def work() -> dict[str, Any]:
        require_reviewer(session, caller)

        ids = clean_ids(lesson_ids)
        if len(ids) < 2:
            raise InvalidArgument("A dismissed group needs at least two distinct lessons")
        if detection_method not in DETECTION_METHODS:
            raise InvalidArgument(
                f"Unknown detection method: {detection_method!r}",
                hint=f"Use one of: {', '.join(DETECTION_METHODS)}",
            )

        key = group_key(ids)
        existing = session.scalar(
            select(DuplicateGroupDismissal.id).where(DuplicateGroupDismissal.group_key == key)
        )
        if existing is not None:
            raise Conflict(f"This group was already dismissed ({existing})")

        dismissal = DuplicateGroupDismissal(
            lesson_ids=sorted(ids),
            group_key=key,
            dismissed_by=caller.actor,
            detection_method=detection_method,
            notes=note or DEFAULT_NOTE,
        )
        session.add(dismissal)
        session.flush()
        return {"dismissal_id": str(dismissal.id), "lesson_ids": dismissal.lesson_ids}

    return run_in_transaction(session, "dismiss_group", list(lesson_ids or []), work)


def undismiss_group(
    session: Session,
    caller: Caller,
    lesson_ids: Sequence[str],
) -> OperationResult:
    """
    Remove the dismissal recorded for exactly this id set.

    The group shows up for review again. Lessons are not touched.

    Returns:
        OperationResult with the removed dismissal_id and its lesson_ids
    """
    def work() -> dict[str, Any]:
        require_reviewer(session, caller)

        key = group_key(clean_ids(lesson_ids))
        dismissals = session.scalars(
            select(DuplicateGroupDismissal)
            .where(DuplicateGroupDismissal.group_key == key)
            .with_for_update()
        ).all()
        if not dismissals:
            raise NotFound(
                "No dismissal recorded for this group",
                hint="Dismissals match the exact set of lesson ids.",
            )

        removed = dismissals[0]
        for dismissal in dismissals:
            session.delete(dismissal)
        session.flush()
        return {"dismissal_id": str(removed.id), "lesson_ids": removed.lesson_ids}

    return run_in_transaction(session, "undismiss_group", list(lesson_ids or []), work)
