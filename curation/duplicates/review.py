"""
Read-side helpers for the duplicate review screen.

Lesson detail cards plus an advisory canonical recommendation. The score
only covers objective signals (recency, metadata completeness, grade
coverage) and tops out at 0.30. The reviewer makes the final choice.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from curation.config import (
    COMPLETENESS_FIELDS,
    MAX_GRADE_LEVELS,
    DuplicateSettings,
    settings as app_settings,
)
from curation.database import Lesson
from curation.utils.text import content_preview, copy_title_markers, has_text

RECENCY_WEIGHT = 0.10
COMPLETENESS_WEIGHT = 0.15
GRADE_COVERAGE_WEIGHT = 0.05
RECENCY_HORIZON_YEARS = 10


@dataclass
class ScoreBreakdown:
    lesson_id: str
    recency: float = 0.0
    completeness: float = 0.0
    grade_coverage: float = 0.0
    total: float = 0.0
    quality_notes: list[str] = field(default_factory=list)


def lesson_details(lesson: Lesson, config: DuplicateSettings | None = None) -> dict:
    """Card data for one lesson."""
    config = config or app_settings.duplicates
    text = lesson.content_text
    return {
        "id": lesson.lesson_id,
        "title": lesson.title,
        "summary": lesson.summary,
        "content_length": len(text) if text else 0,
        "grade_levels": list(lesson.grade_levels or []),
        # Lessons imported from tables carry a literal marker in their text
        "has_table_format_artifact": bool(text and config.table_marker in text),
        "has_summary": has_text(lesson.summary),
        "link": lesson.file_link or None,
        "content_preview": content_preview(text, config.preview_length),
    }


def get_lesson_details_for_review(
    session: Session,
    lesson_ids: Iterable[str],
    config: DuplicateSettings | None = None,
) -> list[dict]:
    """
    Details for the given live lessons, in the order requested.

    Unknown or archived ids are skipped; an empty request gives an empty list.
    """
    ids = list(dict.fromkeys(i for i in lesson_ids if i))
    if not ids:
        return []

    lessons = {
        lesson.lesson_id: lesson
        for lesson in session.scalars(select(Lesson).where(Lesson.lesson_id.in_(ids)))
    }
    return [lesson_details(lessons[i], config) for i in ids if i in lessons]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def canonical_score(lesson: Lesson, now: datetime | None = None) -> ScoreBreakdown:
    """Score how good a candidate a lesson is for the canonical copy."""
    now = now or datetime.now(timezone.utc)
    breakdown = ScoreBreakdown(lesson_id=lesson.lesson_id)

    # Recency: linear decay over ten years
    stamp = lesson.last_modified or lesson.created_at
    if stamp:
        age_years = (now - _as_utc(stamp)).total_seconds() / (365 * 24 * 3600)
        breakdown.recency = max(0.0, min(1.0, 1 - age_years / RECENCY_HORIZON_YEARS))

    filled = sum(1 for key in COMPLETENESS_FIELDS if getattr(lesson, key))
    breakdown.completeness = filled / len(COMPLETENESS_FIELDS)

    breakdown.grade_coverage = min(1.0, len(lesson.grade_levels or []) / MAX_GRADE_LEVELS)

    breakdown.total = (
        RECENCY_WEIGHT * breakdown.recency
        + COMPLETENESS_WEIGHT * breakdown.completeness
        + GRADE_COVERAGE_WEIGHT * breakdown.grade_coverage
    )

    if "duplicate" in (lesson.processing_notes or "").lower():
        breakdown.quality_notes.append("Already flagged as duplicate")
    if copy_title_markers(lesson.title or ""):
        breakdown.quality_notes.append("Title suggests it's a copy")

    return breakdown


def recommend_canonical(lessons: Sequence[Lesson], now: datetime | None = None) -> str | None:
    """Highest scoring lesson id; lessons whose title looks like a copy lose ties."""
    if not lessons:
        return None

    def rank(lesson: Lesson):
        score = canonical_score(lesson, now)
        return (-round(score.total, 6), len(score.quality_notes), lesson.lesson_id)

    return min(lessons, key=rank).lesson_id
