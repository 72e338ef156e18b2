"""
Overlap Graph: time-overlap connectivity over closed-trade ledger rows.

Each ledger row already carries its own entry and exit timestamp.  Rows whose
[open, close] intervals intersect are edges of an undirected graph; every
connected component is one round turn, so a scale-in/scale-out sequence of
partial fills clusters without assuming FIFO or LIFO pairing.

Touching endpoints (a.close == b.open) are not an overlap.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Sequence, Set

from src.models.round_turn import ExecutionRecord
from src.pipeline.detectors import RoundTurnDetector
from src.pipeline.partitioner import key_instrument_direction

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Union-Find (Disjoint Set)
# ---------------------------------------------------------------------------

class UnionFind:
    """Standard union-find with path compression and union by rank."""

    def __init__(self) -> None:
        self._parent: Dict[int, int] = {}
        self._rank: Dict[int, int] = {}

    def add(self, x: int) -> None:
        if x not in self._parent:
            self._parent[x] = x
            self._rank[x] = 0

    def find(self, x: int) -> int:
        if self._parent[x] != x:
            self._parent[x] = self.find(self._parent[x])
        return self._parent[x]

    def union(self, x: int, y: int) -> None:
        rx, ry = self.find(x), self.find(y)
        if rx == ry:
            return
        if self._rank[rx] < self._rank[ry]:
            rx, ry = ry, rx
        self._parent[ry] = rx
        if self._rank[rx] == self._rank[ry]:
            self._rank[rx] += 1

    def components(self) -> Dict[int, Set[int]]:
        """Return {root: set_of_members}."""
        groups: Dict[int, Set[int]] = defaultdict(set)
        for x in self._parent:
            groups[self.find(x)].add(x)
        return dict(groups)


# ---------------------------------------------------------------------------
# Pure overlap detection
# ---------------------------------------------------------------------------

def intervals_overlap(a: ExecutionRecord, b: ExecutionRecord) -> bool:
    """Strict interval intersection; shared endpoints do not count."""
    return a.open_timestamp < b.end_timestamp and b.open_timestamp < a.end_timestamp


def find_overlap_groups(records: Sequence[ExecutionRecord]) -> List[List[ExecutionRecord]]:
    """Pure function: time-ordered records -> connected components.

    Pairwise comparison is quadratic per group, which is fine at
    per-instrument daily volumes.  Members keep their input order and
    components are ordered by their earliest member.
    """
    n = len(records)
    if n == 0:
        return []
    if n == 1:
        return [[records[0]]]

    uf = UnionFind()
    for i in range(n):
        uf.add(i)

    for i in range(n):
        for j in range(i + 1, n):
            if intervals_overlap(records[i], records[j]):
                uf.union(i, j)
                logger.debug(
                    "Overlap: %s (%s-%s) with %s (%s-%s)",
                    records[i].id, records[i].open_timestamp, records[i].end_timestamp,
                    records[j].id, records[j].open_timestamp, records[j].end_timestamp,
                )

    components = sorted(uf.components().values(), key=min)
    return [[records[i] for i in sorted(members)] for members in components]


class TimeOverlapDetector(RoundTurnDetector):
    """Groups ledger rows of one (instrument, direction) by transitive overlap."""

    key_fn = staticmethod(key_instrument_direction)

    def detect_groups(self, records: Sequence[ExecutionRecord]) -> List[List[ExecutionRecord]]:
        return find_overlap_groups(records)
