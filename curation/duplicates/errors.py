"""
Error taxonomy and result envelope for duplicate review operations.

Mutating operations never raise to their callers: they roll back, log and
return an OperationResult. Read operations raise the exceptions below and
let the API layer map them to HTTP errors.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    INVALID_ARGUMENT = "invalid_argument"
    CONFLICT = "conflict"
    STORAGE_FAILURE = "storage_failure"


class DuplicateResolutionError(Exception):
    """Base class for categorized duplicate review failures."""

    category: ErrorCategory = ErrorCategory.STORAGE_FAILURE

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class PermissionDenied(DuplicateResolutionError):
    category = ErrorCategory.PERMISSION_DENIED


class NotFound(DuplicateResolutionError):
    category = ErrorCategory.NOT_FOUND


class InvalidArgument(DuplicateResolutionError):
    category = ErrorCategory.INVALID_ARGUMENT


class Conflict(DuplicateResolutionError):
    category = ErrorCategory.CONFLICT


class StorageFailure(DuplicateResolutionError):
    category = ErrorCategory.STORAGE_FAILURE


@dataclass
class OperationResult:
    """Outcome of a mutating operation."""
    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: ErrorCategory | None = None
    message: str | None = None
    hint: str | None = None

    @classmethod
    def ok(cls, **data: Any) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, exc: DuplicateResolutionError) -> "OperationResult":
        return cls(success=False, error=exc.category, message=exc.message, hint=exc.hint)

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, **self.data}
        body: dict[str, Any] = {
            "success": False,
            "error": self.error.value if self.error else None,
            "message": self.message,
        }
        if self.hint:
            body["hint"] = self.hint
        return body
