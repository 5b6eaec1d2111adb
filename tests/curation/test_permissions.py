# SPDX-License-Identifier: MIT
"""Tests for the reviewer permission gate."""

import pytest

from curation.database import UserProfile
from curation.duplicates import (
    Caller,
    ErrorCategory,
    PermissionDenied,
    archive_duplicate_lesson,
    can_review_duplicates,
    dismiss_group,
    merge_metadata,
    require_reviewer,
    resolve_duplicate_group,
    restore_archived_lesson,
    undismiss_group,
)


class TestCanReviewDuplicates:
    """Test role checks."""

    @pytest.mark.parametrize("user_id", ["admin-user", "reviewer-user", "super-user"])
    def test_reviewer_roles_allowed(self, db_session, reviewers, user_id):
        assert can_review_duplicates(db_session, Caller.user(user_id))

    def test_other_roles_refused(self, db_session, reviewers, teacher):
        assert not can_review_duplicates(db_session, teacher)

    def test_unknown_user_refused(self, db_session, reviewers):
        assert not can_review_duplicates(db_session, Caller.user("nobody"))

    def test_anonymous_refused(self, db_session, reviewers):
        assert not can_review_duplicates(db_session, Caller.anonymous())

    def test_service_allowed(self, db_session, service):
        assert can_review_duplicates(db_session, service)

    def test_role_change_applies_immediately(self, db_session, reviewers, reviewer):
        assert can_review_duplicates(db_session, reviewer)

        db_session.get(UserProfile, "reviewer-user").role = "teacher"
        db_session.commit()

        assert not can_review_duplicates(db_session, reviewer)


class TestRequireReviewer:
    """Test the raising form."""

    def test_raises_permission_denied(self, db_session, reviewers, teacher):
        with pytest.raises(PermissionDenied) as exc_info:
            require_reviewer(db_session, teacher)
        assert "requires one of these roles" in exc_info.value.message

    def test_refused_caller_changes_nothing(self, db_session, lessons, teacher):
        from curation.database import Lesson, LessonArchive

        result = archive_duplicate_lesson(db_session, teacher, "garden-b", "garden-a")

        assert not result.success
        assert result.error == ErrorCategory.PERMISSION_DENIED
        assert db_session.get(Lesson, "garden-b") is not None
        assert db_session.query(LessonArchive).count() == 0

    @pytest.mark.parametrize("operation", [
        lambda s, c: archive_duplicate_lesson(s, c, "garden-a", "garden-a"),
        lambda s, c: archive_duplicate_lesson(s, c, "", "garden-a"),
        lambda s, c: resolve_duplicate_group(s, c, "garden-a", []),
        lambda s, c: resolve_duplicate_group(s, c, "garden-a", ["garden-a"], title_updates={"worms": ""}),
        lambda s, c: merge_metadata(s, c, "garden-a", ["garden-a"]),
        lambda s, c: dismiss_group(s, c, ["soup-a"], "no_such_method"),
        lambda s, c: undismiss_group(s, c, []),
        lambda s, c: restore_archived_lesson(s, c, "  "),
    ])
    def test_refused_before_argument_checks(self, db_session, lessons, teacher, operation):
        result = operation(db_session, teacher)
        assert result.error == ErrorCategory.PERMISSION_DENIED

    def test_anonymous_refused_before_argument_checks(self, db_session, lessons):
        result = dismiss_group(db_session, Caller.anonymous(), [], "")
        assert result.error == ErrorCategory.PERMISSION_DENIED


class TestCallerActor:
    """Test the identity recorded on audit rows."""

    def test_user_actor(self):
        assert Caller.user("u1").actor == "u1"

    def test_service_actor(self):
        assert Caller.service("cli").actor == "service:cli"

    def test_anonymous_actor(self):
        assert Caller.anonymous().actor is None
