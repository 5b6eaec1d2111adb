"""
Permission gate for duplicate review.

Roles are looked up on every call; nothing about a caller is cached between
operations, so a demoted reviewer loses access immediately.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from curation.config import DuplicateSettings, settings as app_settings
from curation.database import UserProfile
from curation.duplicates.errors import PermissionDenied


@dataclass(frozen=True)
class Caller:
    """Identity supplied by the auth provider for one request."""
    user_id: str | None = None
    is_service: bool = False
    service_name: str | None = None

    @classmethod
    def user(cls, user_id: str) -> "Caller":
        return cls(user_id=user_id)

    @classmethod
    def service(cls, name: str = "service") -> "Caller":
        return cls(is_service=True, service_name=name)

    @classmethod
    def anonymous(cls) -> "Caller":
        return cls()

    @property
    def actor(self) -> str | None:
        """Value recorded in archived_by / resolved_by / dismissed_by."""
        if self.is_service:
            return f"service:{self.service_name or 'service'}"
        return self.user_id


def can_review_duplicates(
    session: Session,
    caller: Caller,
    config: DuplicateSettings | None = None,
) -> bool:
    """True for the trusted service identity or a user with a reviewer role."""
    config = config or app_settings.duplicates

    if caller.is_service:
        return True
    if not caller.user_id:
        return False

    role = session.scalar(
        select(UserProfile.role).where(UserProfile.user_id == caller.user_id)
    )
    return role in config.reviewer_roles_set


def require_reviewer(
    session: Session,
    caller: Caller,
    config: DuplicateSettings | None = None,
) -> None:
    """Raise PermissionDenied unless the caller may review duplicates."""
    config = config or app_settings.duplicates
    if not can_review_duplicates(session, caller, config):
        roles = ", ".join(sorted(config.reviewer_roles_set))
        raise PermissionDenied(
            f"Permission denied: requires one of these roles: {roles}",
            hint="Ask a super_admin to grant your profile a reviewer role.",
        )
