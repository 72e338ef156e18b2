"""
Round-turn detectors.

A detector takes the records of one partition, already ordered by
(open_timestamp, id), and splits them into the disjoint groups that each
become one round turn.  Two implementations exist because the two sources
have different shapes:

- TimeOverlapDetector (overlap_graph.py) for closed-trade ledger rows that
  carry their own entry and exit timestamps.
- FlatPositionDetector (flat_tracker.py) for raw open/close fills where only
  the running position tells where one round turn ends.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Sequence

from src.models.round_turn import ExecutionRecord
from src.pipeline.partitioner import KeyFn


class RoundTurnDetector(ABC):
    """Strategy interface: records of one partition -> round-turn groups."""

    #: Partition key the detector expects its input grouped by.
    key_fn: KeyFn

    def __init__(self) -> None:
        self.skipped_records = 0
        self.open_positions = 0

    def reset_stats(self) -> None:
        self.skipped_records = 0
        self.open_positions = 0

    @abstractmethod
    def detect_groups(self, records: Sequence[ExecutionRecord]) -> List[List[ExecutionRecord]]:
        """Return disjoint groups, each in time order, groups ordered by first record."""
