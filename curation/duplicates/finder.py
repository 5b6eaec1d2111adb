"""
Duplicate pair detection over the live lesson set.

Two lessons are a candidate pair when their normalized titles match, or when
both have content embeddings with cosine similarity at or above the
configured threshold. Titles are bucketed so the title leg is linear; the
embedding leg is a single normalized matrix product over every embedded
lesson.
"""

from collections import defaultdict
from dataclasses import asdict, dataclass
from itertools import combinations

import numpy as np
from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from curation.config import DuplicateSettings, settings as app_settings
from curation.database import Lesson
from curation.utils.text import is_placeholder_title, normalize_title

SAME_TITLE = "same_title"
EMBEDDING = "embedding"
BOTH = "both"

DETECTION_METHODS = (BOTH, SAME_TITLE, EMBEDDING)

# Lower sorts first
METHOD_PRIORITY = {BOTH: 1, SAME_TITLE: 2, EMBEDDING: 3}


@dataclass(frozen=True)
class DuplicatePair:
    """A candidate duplicate pair; id1 is always the lexicographically smaller id."""
    id1: str
    id2: str
    title1: str
    title2: str
    detection_method: str
    similarity: float | None

    def to_dict(self) -> dict:
        return asdict(self)


def cosine_similarity(vec1, vec2) -> float:
    """Cosine similarity between two vectors; 0.0 for empty or mismatched input."""
    if vec1 is None or vec2 is None or len(vec1) != len(vec2) or len(vec1) == 0:
        return 0.0

    a = np.asarray(vec1, dtype=np.float64)
    b = np.asarray(vec2, dtype=np.float64)
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.clip(np.dot(a, b) / norm, -1.0, 1.0))


def _pair_sort_key(pair: DuplicatePair):
    has_similarity = pair.similarity is not None
    return (
        METHOD_PRIORITY[pair.detection_method],
        0 if has_similarity else 1,          # NULLS LAST
        -(pair.similarity or 0.0),
        pair.id1,
        pair.id2,
    )


def _similarity_matrix(ids: list[str], embeddings: dict[str, list[float]]) -> tuple[dict[str, int], np.ndarray]:
    """Row index per id and the full cosine similarity matrix for those ids."""
    index = {lesson_id: i for i, lesson_id in enumerate(ids)}
    if not ids:
        return index, np.zeros((0, 0))

    matrix = np.asarray([embeddings[lesson_id] for lesson_id in ids], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    normalized = matrix / norms
    return index, np.clip(normalized @ normalized.T, -1.0, 1.0)


def find_duplicate_pairs(
    session: Session,
    config: DuplicateSettings | None = None,
) -> list[DuplicatePair]:
    """
    Find every candidate duplicate pair among live lessons.

    Pure read. Running it twice without intervening writes returns the
    same pairs in the same order.

    Args:
        session: Database session
        config: Detection policy (threshold, embedding size, placeholder title)

    Returns:
        Pairs ordered by detection method (both, same_title, embedding),
        then similarity descending with missing similarities last
    """
    config = config or app_settings.duplicates

    rows = session.execute(
        select(Lesson.lesson_id, Lesson.title, Lesson.content_embedding)
    ).all()

    titles: dict[str, str] = {}
    embeddings: dict[str, list[float]] = {}
    buckets: dict[str, list[str]] = defaultdict(list)
    skipped_embeddings = 0

    for row in rows:
        if is_placeholder_title(row.title, config.unknown_title):
            continue

        titles[row.lesson_id] = row.title
        normalized = normalize_title(row.title)
        if normalized:
            buckets[normalized].append(row.lesson_id)

        embedding = row.content_embedding
        if embedding:
            if len(embedding) != config.embedding_dimensions or not any(embedding):
                skipped_embeddings += 1
            else:
                embeddings[row.lesson_id] = embedding

    if skipped_embeddings:
        logger.warning(
            f"Ignored {skipped_embeddings} embeddings with wrong dimension or zero norm "
            f"(expected {config.embedding_dimensions})"
        )

    embedded_ids = sorted(embeddings)
    index, sims = _similarity_matrix(embedded_ids, embeddings)

    def similarity(a: str, b: str) -> float | None:
        if a in index and b in index:
            return float(sims[index[a], index[b]])
        return None

    found: dict[tuple[str, str], DuplicatePair] = {}

    def add(a: str, b: str, same_title: bool) -> None:
        id1, id2 = (a, b) if a < b else (b, a)
        if (id1, id2) in found:
            return
        score = similarity(id1, id2)
        close = score is not None and score >= config.similarity_threshold
        if same_title and close:
            method = BOTH
        elif same_title:
            method = SAME_TITLE
        elif close:
            method = EMBEDDING
        else:
            return
        found[(id1, id2)] = DuplicatePair(
            id1=id1,
            id2=id2,
            title1=titles[id1],
            title2=titles[id2],
            detection_method=method,
            similarity=score,
        )

    # Title leg
    for members in buckets.values():
        for a, b in combinations(sorted(members), 2):
            add(a, b, same_title=True)

    # Embedding leg
    if len(embedded_ids) > 1:
        rows_idx, cols_idx = np.nonzero(np.triu(sims >= config.similarity_threshold, k=1))
        for i, j in zip(rows_idx.tolist(), cols_idx.tolist()):
            add(embedded_ids[i], embedded_ids[j], same_title=False)

    pairs = sorted(found.values(), key=_pair_sort_key)
    logger.info(
        f"Duplicate scan: {len(titles)} lessons, {len(embedded_ids)} with embeddings, "
        f"{len(pairs)} candidate pairs"
    )
    return pairs
