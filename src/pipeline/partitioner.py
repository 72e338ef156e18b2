"""
Partitioner: split an execution stream into independent consolidation groups.

Round turns never span instruments, and for closed-trade ledger rows they
never span direction either.  Every non-voided record lands in exactly one
group; within a group records are ordered by open timestamp, ties broken
by record id so the downstream composite ids are stable.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Hashable, Iterable, List, Tuple

from src.models.round_turn import ExecutionRecord

logger = logging.getLogger(__name__)

KeyFn = Callable[[ExecutionRecord], Tuple[Hashable, ...]]


def key_instrument_direction(record: ExecutionRecord) -> Tuple[Hashable, ...]:
    """Ledger rows: direction is known per record."""
    return (record.instrument_id, record.direction)


def key_instrument(record: ExecutionRecord) -> Tuple[Hashable, ...]:
    """Raw fills: direction only emerges from the running position."""
    return (record.instrument_id,)


def id_sort_key(record_id: str):
    """Numeric ids (broker fills) compare as numbers, so "9" sorts before "10"."""
    if record_id.isdigit():
        return (0, int(record_id), record_id)
    return (1, 0, record_id)


def record_sort_key(record: ExecutionRecord):
    return (record.open_timestamp, id_sort_key(record.id))


def partition_records(
    records: Iterable[ExecutionRecord],
    key_fn: KeyFn,
) -> Dict[Tuple[Hashable, ...], List[ExecutionRecord]]:
    """Group records by ``key_fn`` after dropping voided ones.

    Groups come back in first-seen order of the time-sorted stream, each
    sorted by (open_timestamp, id).
    """
    ordered = sorted(
        (r for r in records if not r.voided),
        key=record_sort_key,
    )

    groups: Dict[Tuple[Hashable, ...], List[ExecutionRecord]] = {}
    for record in ordered:
        groups.setdefault(key_fn(record), []).append(record)

    logger.debug("Partitioned %d records into %d groups", len(ordered), len(groups))
    return groups
