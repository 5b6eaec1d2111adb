# SPDX-License-Identifier: MIT
"""Tests for archiving duplicate lessons."""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from curation.database import Lesson, LessonArchive, lesson_to_dict
from curation.duplicates import (
    ErrorCategory,
    archive_duplicate_lesson,
    check_group_state,
    find_duplicate_pairs,
    resolve_canonical_id,
    restore_archived_lesson,
)


def archive_count(session) -> int:
    return session.query(LessonArchive).count()


class TestArchiveDuplicateLesson:
    """Test the archive operation."""

    def test_archives_duplicate(self, db_session, lessons, reviewer):
        result = archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")

        assert result.success
        assert result.data["archived_id"] == "garden-b"
        assert result.data["canonical_id"] == "garden-a"
        assert db_session.get(Lesson, "garden-b") is None
        assert db_session.get(Lesson, "garden-a") is not None

        record = db_session.scalars(select(LessonArchive)).one()
        assert str(record.id) == result.data["archive_record_id"]
        assert record.lesson_id == "garden-b"
        assert record.canonical_id == "garden-a"
        assert record.archived_by == "reviewer-user"
        assert record.archive_reason == "duplicate_resolution: duplicate of garden-a"

    def test_snapshot_keeps_every_field(self, db_session, lessons, reviewer):
        before = lesson_to_dict(db_session.get(Lesson, "garden-b"))

        archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")

        record = db_session.scalars(select(LessonArchive)).one()
        for key, value in before.items():
            if key in ("lesson_id", "canonical_id"):
                continue
            assert getattr(record, key) == value, key

    def test_snapshot_collections_never_null(self, db_session, lessons, reviewer):
        archive_duplicate_lesson(db_session, reviewer, "soup-b", "soup-a")

        record = db_session.scalars(select(LessonArchive)).one()
        assert record.grade_levels == []
        assert record.cooking_methods == ["stovetop"]
        assert record.lesson_metadata == {}

    def test_self_reference_rejected(self, db_session, lessons, reviewer):
        result = archive_duplicate_lesson(db_session, reviewer, "garden-a", "garden-a")

        assert result.error == ErrorCategory.INVALID_ARGUMENT
        assert result.hint
        assert db_session.get(Lesson, "garden-a") is not None
        assert archive_count(db_session) == 0

    @pytest.mark.parametrize("duplicate_id,canonical_id", [
        ("missing", "garden-a"),
        ("garden-b", "missing"),
    ])
    def test_missing_lessons(self, db_session, lessons, reviewer, duplicate_id, canonical_id):
        result = archive_duplicate_lesson(db_session, reviewer, duplicate_id, canonical_id)

        assert result.error == ErrorCategory.NOT_FOUND
        assert archive_count(db_session) == 0

    def test_blank_id_rejected(self, db_session, lessons, reviewer):
        result = archive_duplicate_lesson(db_session, reviewer, "  ", "garden-a")
        assert result.error == ErrorCategory.INVALID_ARGUMENT

    def test_second_archive_of_same_lesson_not_found(self, db_session, lessons, reviewer):
        assert archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a").success

        result = archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")

        assert result.error == ErrorCategory.NOT_FOUND
        assert "already archived" in result.message
        assert result.hint == "Use garden-a instead."
        assert archive_count(db_session) == 1

    def test_reimported_lesson_conflicts(self, db_session, lessons, make_lesson, reviewer):
        assert archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a").success
        make_lesson("garden-b", "Garden Basics 101 (reimported)")

        result = archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")

        assert result.error == ErrorCategory.CONFLICT
        assert "Restore" in result.hint
        assert db_session.get(Lesson, "garden-b") is not None
        assert archive_count(db_session) == 1

    def test_storage_failure_rolls_back(self, db_session, lessons, reviewer, mocker):
        before = lesson_to_dict(db_session.get(Lesson, "garden-b"))
        mocker.patch(
            "curation.duplicates.archive.repoint_canonical_references",
            side_effect=SQLAlchemyError("connection reset by peer"),
        )

        result = archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")

        assert not result.success
        assert result.error == ErrorCategory.STORAGE_FAILURE
        assert "connection reset" not in result.message
        assert result.hint
        db_session.expire_all()
        assert lesson_to_dict(db_session.get(Lesson, "garden-b")) == before
        assert archive_count(db_session) == 0

        mocker.stopall()
        retry = archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")

        assert retry.success
        assert archive_count(db_session) == 1

    def test_unexpected_error_rolls_back_and_raises(self, db_session, lessons, reviewer, mocker):
        mocker.patch(
            "curation.duplicates.archive.repoint_canonical_references",
            side_effect=RuntimeError("bug"),
        )

        with pytest.raises(RuntimeError):
            archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")

        assert db_session.get(Lesson, "garden-b") is not None
        assert archive_count(db_session) == 0

    def test_archived_lesson_leaves_pairs(self, db_session, lessons, reviewer):
        archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")

        ids = {i for p in find_duplicate_pairs(db_session) for i in (p.id1, p.id2)}
        assert "garden-b" not in ids
        assert "garden-a" not in ids

    def test_group_reports_archived(self, db_session, lessons, reviewer):
        archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")

        state = check_group_state(db_session, ["garden-a", "garden-b"])
        assert state.state == "archived"
        assert state.resolved_at is not None


class TestVersionLinks:
    """Test re-pointing of live canonical_id links."""

    def test_links_to_duplicate_move_to_canonical(self, db_session, lessons, make_lesson, reviewer):
        make_lesson("garden-b-v2", "Garden Basics 101 (Updated)", canonical_id="garden-b")

        result = archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")

        assert result.success
        db_session.expire_all()
        assert db_session.get(Lesson, "garden-b-v2").canonical_id == "garden-a"

    def test_canonical_link_to_duplicate_cleared(self, db_session, lessons, reviewer):
        db_session.get(Lesson, "garden-a").canonical_id = "garden-b"
        db_session.commit()

        result = archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")

        assert result.success
        db_session.expire_all()
        assert db_session.get(Lesson, "garden-a").canonical_id is None

    def test_snapshot_keeps_own_link(self, db_session, lessons, reviewer):
        db_session.get(Lesson, "garden-b").canonical_id = "worms"
        db_session.commit()

        archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")

        record = db_session.scalars(select(LessonArchive)).one()
        assert record.lesson_canonical_id == "worms"


class TestResolveCanonicalId:
    """Test following archive pointers to a live lesson."""

    def test_live_lesson_is_its_own_canonical(self, db_session, lessons):
        assert resolve_canonical_id(db_session, "garden-a") == "garden-a"

    def test_chain_of_archives(self, db_session, lessons, service):
        archive_duplicate_lesson(db_session, service, "garden-b", "garden-a")
        archive_duplicate_lesson(db_session, service, "garden-a", "worms")

        assert resolve_canonical_id(db_session, "garden-b") == "worms"

    def test_unknown_id(self, db_session, lessons):
        assert resolve_canonical_id(db_session, "missing") is None


class TestRestoreArchivedLesson:
    """Test undoing an archive."""

    def test_restores_lesson(self, db_session, lessons, reviewer):
        before = lesson_to_dict(db_session.get(Lesson, "garden-b"))
        archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")

        result = restore_archived_lesson(db_session, reviewer, "garden-b")

        assert result.success
        assert result.data == {"restored_id": "garden-b", "canonical_id": "garden-a"}
        assert archive_count(db_session) == 0
        restored = lesson_to_dict(db_session.get(Lesson, "garden-b"))
        assert restored == before

    def test_nothing_to_restore(self, db_session, lessons, reviewer):
        result = restore_archived_lesson(db_session, reviewer, "garden-b")
        assert result.error == ErrorCategory.NOT_FOUND

    def test_live_lesson_with_same_id_conflicts(self, db_session, lessons, make_lesson, reviewer):
        archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")
        make_lesson("garden-b", "Garden Basics Reimported")

        result = restore_archived_lesson(db_session, reviewer, "garden-b")

        assert result.error == ErrorCategory.CONFLICT
        assert archive_count(db_session) == 1

    def test_dangling_version_link_dropped(self, db_session, lessons, service):
        db_session.get(Lesson, "garden-b").canonical_id = "worms"
        db_session.commit()
        archive_duplicate_lesson(db_session, service, "garden-b", "garden-a")
        archive_duplicate_lesson(db_session, service, "worms", "garden-a")

        restore_archived_lesson(db_session, service, "garden-b")

        assert db_session.get(Lesson, "garden-b").canonical_id is None

    def test_requires_reviewer(self, db_session, lessons, reviewer, teacher):
        archive_duplicate_lesson(db_session, reviewer, "garden-b", "garden-a")

        result = restore_archived_lesson(db_session, teacher, "garden-b")

        assert result.error == ErrorCategory.PERMISSION_DENIED
        assert archive_count(db_session) == 1


class TestEndToEnd:
    """Detect, archive and re-check a case/whitespace title variant."""

    def test_garden_basics_variants(self, db_session, make_lesson, reviewers, reviewer):
        make_lesson("lesson-1", "Garden Basics 101")
        make_lesson("lesson-2", "garden basics 101 ")

        pairs = find_duplicate_pairs(db_session)
        assert [(p.id1, p.id2, p.detection_method) for p in pairs] == [
            ("lesson-1", "lesson-2", "same_title"),
        ]

        result = archive_duplicate_lesson(db_session, reviewer, "lesson-2", "lesson-1")

        assert result.success
        assert db_session.get(Lesson, "lesson-2") is None
        record = db_session.scalars(select(LessonArchive)).one()
        assert record.canonical_id == "lesson-1"
        assert check_group_state(db_session, ["lesson-1", "lesson-2"]).state == "archived"
        assert find_duplicate_pairs(db_session) == []
