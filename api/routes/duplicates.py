"""
Duplicate Review API - find, inspect and resolve duplicate lessons.

Every endpoint requires a reviewer (admin, reviewer, super_admin role) or the
trusted service key. Mutations answer with the operation's result body and an
HTTP status derived from its error category.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.services.reviewer_auth import get_caller
from curation.database import get_db
from curation.duplicates import (
    Caller,
    DuplicateResolutionError,
    ErrorCategory,
    OperationResult,
    archive_duplicate_lesson,
    check_group_already_resolved,
    dismiss_group,
    undismiss_group,
    fetch_duplicate_groups,
    find_duplicate_pairs,
    get_lesson_details_for_review,
    require_reviewer,
    resolve_duplicate_group,
    restore_archived_lesson,
)

logger = logging.getLogger(__name__)
router = APIRouter()

STATUS_BY_CATEGORY = {
    ErrorCategory.PERMISSION_DENIED: 403,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.INVALID_ARGUMENT: 400,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.STORAGE_FAILURE: 503,
}


# =============================================================================
# Request Models
# =============================================================================

# Argument checks happen inside each operation, after the permission gate,
# so the models only describe shape.

class LessonIdsRequest(BaseModel):
    """A set of lesson ids."""
    lesson_ids: list[str] = Field(default_factory=list)


class ArchiveRequest(BaseModel):
    """Archive one duplicate in favour of a canonical lesson."""
    duplicate_id: str = ""
    canonical_id: str = ""


class ResolveGroupRequest(BaseModel):
    """Keep one lesson of a group and archive the rest."""
    canonical_id: str = ""
    duplicate_ids: list[str] = Field(default_factory=list)
    merge_metadata: bool = False
    detection_method: str | None = None
    notes: str | None = None
    title_updates: dict[str, str] | None = Field(None, description="lesson_id -> reviewer-edited title")


class DismissGroupRequest(BaseModel):
    """Mark a group as distinct lessons that should all stay."""
    lesson_ids: list[str] = Field(default_factory=list)
    detection_method: str = ""
    notes: str | None = None


# =============================================================================
# Helpers
# =============================================================================

def _http_error(e: DuplicateResolutionError) -> HTTPException:
    detail = {"error": e.category.value, "message": e.message}
    if e.hint:
        detail["hint"] = e.hint
    return HTTPException(status_code=STATUS_BY_CATEGORY[e.category], detail=detail)


def _result_response(result: OperationResult) -> JSONResponse:
    status_code = 200 if result.success else STATUS_BY_CATEGORY[result.error]
    return JSONResponse(status_code=status_code, content=result.to_dict())


def _gate(db: Session, caller: Caller) -> None:
    try:
        require_reviewer(db, caller)
    except DuplicateResolutionError as e:
        raise _http_error(e)


# =============================================================================
# Read Endpoints
# =============================================================================

@router.get("/pairs")
def get_duplicate_pairs(
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """
    Candidate duplicate pairs among live lessons.

    Ordered by detection method (both, same_title, embedding), then
    similarity descending.
    """
    _gate(db, caller)
    pairs = find_duplicate_pairs(db)
    return {"count": len(pairs), "pairs": [p.to_dict() for p in pairs]}


@router.get("/groups")
def get_duplicate_groups(
    include_resolved: bool = False,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Duplicate groups with lesson details and a recommended canonical."""
    try:
        groups = fetch_duplicate_groups(db, caller, include_resolved=include_resolved)
    except DuplicateResolutionError as e:
        raise _http_error(e)
    return {"count": len(groups), "groups": groups}


@router.post("/lessons/details")
def get_lesson_details(
    request: LessonIdsRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Review cards for the given lessons. Unknown ids are left out."""
    _gate(db, caller)
    return {"lessons": get_lesson_details_for_review(db, request.lesson_ids)}


@router.post("/groups/status")
def get_group_status(
    request: LessonIdsRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Whether a group was already archived or dismissed."""
    _gate(db, caller)
    try:
        return check_group_already_resolved(db, request.lesson_ids)
    except DuplicateResolutionError as e:
        raise _http_error(e)


# =============================================================================
# Mutating Endpoints
# =============================================================================

@router.post("/archive")
def archive_lesson(
    request: ArchiveRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Archive a duplicate lesson. All or nothing."""
    result = archive_duplicate_lesson(db, caller, request.duplicate_id, request.canonical_id)
    return _result_response(result)


@router.post("/groups/resolve")
def resolve_group(
    request: ResolveGroupRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Keep the canonical lesson, optionally merge metadata, archive the rest."""
    result = resolve_duplicate_group(
        db,
        caller,
        request.canonical_id,
        request.duplicate_ids,
        merge_metadata=request.merge_metadata,
        detection_method=request.detection_method,
        notes=request.notes,
        title_updates=request.title_updates,
    )
    return _result_response(result)


@router.post("/groups/dismiss")
def dismiss_duplicate_group(
    request: DismissGroupRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Record that a group's lessons are intentionally distinct."""
    result = dismiss_group(db, caller, request.lesson_ids, request.detection_method, request.notes)
    return _result_response(result)


@router.post("/groups/undismiss")
def undismiss_duplicate_group(
    request: LessonIdsRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Withdraw a dismissal so the group is reviewed again."""
    result = undismiss_group(db, caller, request.lesson_ids)
    return _result_response(result)


@router.post("/archive/{lesson_id}/restore")
def restore_lesson(
    lesson_id: str,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Move an archived lesson back into the live library."""
    result = restore_archived_lesson(db, caller, lesson_id)
    return _result_response(result)
