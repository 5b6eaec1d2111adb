"""
Duplicate groups derived from candidate pairs.

A group is the connected component of the pair graph: A~B and B~C make
{A, B, C}. Groups are computed on every request and never stored.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from curation.duplicates.finder import BOTH, EMBEDDING, SAME_TITLE, DuplicatePair

MIXED = "mixed"

CONFIDENCE_ORDER = {"high": 0, "medium": 1, "low": 2}


class UnionFind:
    """Disjoint sets over lesson ids with path compression."""

    def __init__(self):
        self._parent: dict[str, str] = {}
        self._rank: dict[str, int] = {}

    def find(self, item: str) -> str:
        if item not in self._parent:
            self._parent[item] = item
            self._rank[item] = 0
            return item

        root = item
        while self._parent[root] != root:
            root = self._parent[root]

        # Path compression
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]

        return root

    def union(self, a: str, b: str) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return
        if self._rank[root_a] < self._rank[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        if self._rank[root_a] == self._rank[root_b]:
            self._rank[root_a] += 1

    def connected(self, a: str, b: str) -> bool:
        return self.find(a) == self.find(b)


def group_key(lesson_ids: Iterable[str]) -> str:
    """Stable key for a set of lesson ids: sorted, deduplicated, comma-joined."""
    return ",".join(sorted(set(lesson_ids)))


@dataclass
class DuplicateGroup:
    """A connected component of candidate pairs."""
    lesson_ids: list[str]
    pairs: list[DuplicatePair] = field(default_factory=list)
    detection_method: str = SAME_TITLE
    confidence: str = "medium"
    avg_similarity: float | None = None

    @property
    def key(self) -> str:
        return group_key(self.lesson_ids)

    @property
    def pair_count(self) -> int:
        return len(self.pairs)


def analyze_group(pairs: list[DuplicatePair]) -> tuple[str, str, float | None]:
    """
    Summarize a group's pairs.

    Returns:
        (detection_method, confidence, avg_similarity). The method is the
        single method shared by every pair, "both" if any pair matched on
        both signals, otherwise "mixed". Confidence is high when both
        signals back the group, medium when only one does.
    """
    methods = {p.detection_method for p in pairs}

    if len(methods) == 1:
        detection_method = next(iter(methods))
    elif BOTH in methods:
        detection_method = BOTH
    else:
        detection_method = MIXED

    if BOTH in methods or (SAME_TITLE in methods and EMBEDDING in methods):
        confidence = "high"
    elif methods & {SAME_TITLE, EMBEDDING}:
        confidence = "medium"
    else:
        confidence = "low"

    similarities = [p.similarity for p in pairs if p.similarity is not None]
    avg_similarity = sum(similarities) / len(similarities) if similarities else None

    return detection_method, confidence, avg_similarity


def group_pairs(pairs: Iterable[DuplicatePair]) -> list[DuplicateGroup]:
    """
    Collapse pairs into connected components.

    Groups come back ordered by confidence, then size (largest first), then
    key, so the output is deterministic for a given pair list.
    """
    pairs = list(pairs)
    uf = UnionFind()
    for pair in pairs:
        uf.union(pair.id1, pair.id2)

    members: dict[str, set[str]] = {}
    edges: dict[str, list[DuplicatePair]] = {}
    for pair in pairs:
        root = uf.find(pair.id1)
        members.setdefault(root, set()).update((pair.id1, pair.id2))
        edges.setdefault(root, []).append(pair)

    groups = []
    for root, ids in members.items():
        group_edges = edges[root]
        detection_method, confidence, avg_similarity = analyze_group(group_edges)
        groups.append(DuplicateGroup(
            lesson_ids=sorted(ids),
            pairs=group_edges,
            detection_method=detection_method,
            confidence=confidence,
            avg_similarity=avg_similarity,
        ))

    groups.sort(key=lambda g: (CONFIDENCE_ORDER[g.confidence], -len(g.lesson_ids), g.key))
    return groups
