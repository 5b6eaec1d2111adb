"""
Database models for the lesson library curation tools.

Uses SQLAlchemy 2.0. Production runs on PostgreSQL; the test suite runs the
same models on SQLite, so column types stay portable (JSON arrays instead of
native text[] / vector columns).
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    create_engine,
    event,
    inspect,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Engine
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    sessionmaker,
)
from sqlalchemy.pool import StaticPool

from curation.config import CLASSIFICATION_FIELDS, settings

# JSON everywhere, JSONB on Postgres
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Database Engine and Session
# =============================================================================

def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine with pool settings suited to the backend."""
    if url.startswith("sqlite"):
        # One shared connection so in-memory databases survive across sessions
        return create_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,        # Connection timeout to prevent hanging
        pool_recycle=1800,      # Recycle connections every 30 minutes
        connect_args={
            "connect_timeout": 10,  # Connection timeout in seconds
            "options": "-c statement_timeout=30000"  # 30s query timeout
        }
    )


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores foreign keys unless asked; Postgres always enforces them."""
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = build_engine(
    settings.database.url,
    echo=settings.logging.log_level == "DEBUG",
)

SessionLocal = sessionmaker(autoflush=False, bind=engine)


def get_db():
    """Dependency for FastAPI to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# =============================================================================
# Base Model
# =============================================================================

class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class LessonColumnsMixin:
    """
    Columns shared by live lessons and their archive snapshots.

    Keeping them in one place guarantees the archive is a field-for-field
    copy of the live row.
    """

    title: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    file_link: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Content
    content_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content_embedding: Mapped[Optional[list[float]]] = mapped_column(JSONType, nullable=True)
    content_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Import metadata ("metadata" is reserved on declarative classes)
    lesson_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    confidence: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    # Classification (set-valued)
    grade_levels: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    thematic_categories: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    cultural_heritage: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    observances_holidays: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    location_requirements: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    season_timing: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    academic_integration: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    social_emotional_learning: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    cooking_methods: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    main_ingredients: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    cultural_responsiveness_features: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    garden_skills: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    cooking_skills: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    core_competencies: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    tags: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    activity_type: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)

    # Classification (single-valued)
    lesson_format: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Review bookkeeping
    processing_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    flagged_for_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Timestamps
    last_modified: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, default=utcnow)


# =============================================================================
# Lesson Models
# =============================================================================

class Lesson(LessonColumnsMixin, Base):
    """
    A live lesson in the library.

    Created by the import pipeline; the duplicate workflow only merges
    classification metadata into it or moves it to the archive.
    """
    __tablename__ = "lessons"

    lesson_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    # Version link to another live lesson. The only foreign key into
    # lessons.lesson_id, so archival must re-point it before deleting.
    canonical_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        ForeignKey("lessons.lesson_id"),
        nullable=True,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Lesson {self.lesson_id}: {self.title}>"


class LessonArchive(LessonColumnsMixin, Base):
    """
    Immutable snapshot of a lesson removed by duplicate resolution.

    Exactly one row per archived lesson. canonical_id is plain text: it may
    point at a lesson that was itself archived later, and readers resolve it
    transitively (see duplicates.archive.resolve_canonical_id).
    """
    __tablename__ = "lesson_archive"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lesson_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    # Copied from the live row's version link
    lesson_canonical_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Archive metadata
    archived_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    archived_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    archive_reason: Mapped[str] = mapped_column(Text, nullable=False)
    canonical_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<LessonArchive {self.lesson_id} -> {self.canonical_id}>"


# =============================================================================
# Duplicate Review Models
# =============================================================================

class DuplicateResolution(Base):
    """Append-only audit entry for one resolved duplicate group."""
    __tablename__ = "duplicate_resolutions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    canonical_lesson_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    archived_lesson_ids: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    lessons_in_group: Mapped[int] = mapped_column(Integer, nullable=False)
    action_taken: Mapped[str] = mapped_column(String(50), nullable=False)  # archive_only, merge_and_archive
    metadata_merged: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    title_updates: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSONType, nullable=True)
    detection_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    resolved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<DuplicateResolution {self.canonical_lesson_id} ({self.action_taken})>"


class DuplicateGroupDismissal(Base):
    """
    A "keep all" decision over an exact set of lesson ids.

    group_key is the sorted ids joined with commas; matching is on the whole
    key, never on subsets.
    """
    __tablename__ = "duplicate_group_dismissals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lesson_ids: Mapped[list[str]] = mapped_column(JSONType, nullable=False)
    group_key: Mapped[str] = mapped_column(Text, nullable=False)
    dismissed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    dismissed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    detection_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_duplicate_group_dismissals_key", "group_key"),
    )

    def __repr__(self) -> str:
        return f"<DuplicateGroupDismissal {self.group_key}>"


class UserProfile(Base):
    """Role projection maintained by the auth provider. Read-only here."""
    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="teacher")

    def __repr__(self) -> str:
        return f"<UserProfile {self.user_id} ({self.role})>"


# =============================================================================
# Row Helpers
# =============================================================================

def lesson_column_keys() -> list[str]:
    """Attribute names of every Lesson column, in table order."""
    return [attr.key for attr in inspect(Lesson).column_attrs]


def lesson_to_dict(lesson: Lesson) -> dict[str, Any]:
    """Plain dict of a lesson's column values."""
    return {key: getattr(lesson, key) for key in lesson_column_keys()}


def empty_value(key: str) -> Any:
    """Default for a lesson field that must never be NULL in an archive."""
    if key in CLASSIFICATION_FIELDS:
        return []
    if key in ("lesson_metadata", "confidence"):
        return {}
    if key in ("summary", "file_link"):
        return ""
    return None
