"""
Duplicate lesson detection and resolution.

Detection is read-only. Every resolution (archive, merge, dismiss, restore)
checks the caller's role and runs in a single transaction.
"""

from curation.duplicates.archive import (
    archive_duplicate_lesson,
    resolve_canonical_id,
    restore_archived_lesson,
)
from curation.duplicates.dismissal import dismiss_group, undismiss_group
from curation.duplicates.errors import (
    Conflict,
    DuplicateResolutionError,
    ErrorCategory,
    InvalidArgument,
    NotFound,
    OperationResult,
    PermissionDenied,
    StorageFailure,
)
from curation.duplicates.finder import DuplicatePair, find_duplicate_pairs
from curation.duplicates.groups import DuplicateGroup, group_key, group_pairs
from curation.duplicates.merge import merge_metadata
from curation.duplicates.permissions import Caller, can_review_duplicates, require_reviewer
from curation.duplicates.review import (
    canonical_score,
    get_lesson_details_for_review,
    recommend_canonical,
)
from curation.duplicates.service import fetch_duplicate_groups, resolve_duplicate_group
from curation.duplicates.state import (
    GroupState,
    check_group_already_resolved,
    check_group_state,
)

__all__ = [
    # Detection
    "DuplicatePair",
    "find_duplicate_pairs",
    "DuplicateGroup",
    "group_key",
    "group_pairs",
    "fetch_duplicate_groups",
    # Review
    "get_lesson_details_for_review",
    "canonical_score",
    "recommend_canonical",
    "GroupState",
    "check_group_state",
    "check_group_already_resolved",
    # Resolution
    "archive_duplicate_lesson",
    "resolve_duplicate_group",
    "merge_metadata",
    "dismiss_group",
    "undismiss_group",
    "restore_archived_lesson",
    "resolve_canonical_id",
    # Permissions
    "Caller",
    "can_review_duplicates",
    "require_reviewer",
    # Errors
    "ErrorCategory",
    "DuplicateResolutionError",
    "PermissionDenied",
    "NotFound",
    "InvalidArgument",
    "Conflict",
    "StorageFailure",
    "OperationResult",
]
