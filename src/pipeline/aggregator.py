"""
Aggregator: reduce one detected group of records to a RoundTurnRecord.

Sizes and fees are straight sums, prices are volume weighted per side and
P&L is the sum of what the source reported (never recomputed from prices).
The id is the constituent ids joined with '-' in time order, so the same
group always reduces to the same id and re-running the pipeline upserts
instead of duplicating.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence, Tuple

from src.models.round_turn import Direction, ExecutionRecord, RoundTurnRecord
from src.pipeline.partitioner import record_sort_key

logger = logging.getLogger(__name__)

__all__ = [
    "AggregationError",
    "aggregate_flat_group",
    "aggregate_overlap_group",
    "composite_id",
    "volume_weighted_price",
]


class AggregationError(ValueError):
    """A group violates a round-turn invariant and cannot be consolidated."""


def composite_id(records: Iterable[ExecutionRecord]) -> str:
    """Constituent ids in (open_timestamp, id) order, joined with '-'."""
    return "-".join(r.id for r in sorted(records, key=record_sort_key))


def volume_weighted_price(fills: Iterable[Tuple[float, int]]) -> float:
    """Σ(price × size) / Σ(size) over (price, size) pairs."""
    total_size = 0
    notional = 0.0
    for price, size in fills:
        total_size += size
        notional += price * size
    if total_size <= 0:
        raise AggregationError(f"cannot weight prices over total size {total_size}")
    return notional / total_size


def _check_group(records: Sequence[ExecutionRecord]) -> List[ExecutionRecord]:
    if not records:
        raise AggregationError("empty group")
    instruments = {r.instrument_id for r in records}
    if len(instruments) > 1:
        raise AggregationError(f"group spans instruments {sorted(instruments)}")
    return sorted(records, key=record_sort_key)


def aggregate_overlap_group(records: Sequence[ExecutionRecord], source: str = "csv") -> RoundTurnRecord:
    """Consolidate pre-paired ledger rows that overlap in time.

    Each row weights its own entry and exit price by its own size.
    """
    ordered = _check_group(records)

    size = sum(r.quantity for r in ordered)
    if size <= 0:
        raise AggregationError(f"group {composite_id(ordered)} has total size {size}")

    entry_price = volume_weighted_price((r.price, r.quantity) for r in ordered)
    exit_price = volume_weighted_price(
        (r.exit_price if r.exit_price is not None else r.price, r.quantity) for r in ordered
    )

    entry_time = min(r.open_timestamp for r in ordered)
    exit_time = max(r.end_timestamp for r in ordered)

    first = ordered[0]
    # Ledger rows with an unrecognised Type are booked as Short
    direction = Direction.LONG if first.direction == Direction.LONG else Direction.SHORT

    return RoundTurnRecord(
        id=composite_id(ordered),
        source=source,
        symbol=first.instrument_id,
        direction=direction.value,
        size=size,
        entry_time=entry_time,
        exit_time=exit_time,
        entry_price=entry_price,
        exit_price=exit_price,
        pnl=sum(r.realized_pnl or 0.0 for r in ordered),
        fees=sum(r.fee for r in ordered),
        leg_count=len(ordered),
    )


def aggregate_flat_group(records: Sequence[ExecutionRecord], source: str = "api") -> RoundTurnRecord:
    """Consolidate a flat-to-flat sequence of raw fills.

    Size is the opened quantity; entry price weights the opening legs and
    exit price the closing legs.  High/low are just the extremes of those
    two prices, the intra-trade price path is not tracked.
    """
    ordered = _check_group(records)

    opens = [r for r in ordered if not r.is_closing_leg]
    closes = [r for r in ordered if r.is_closing_leg]
    if not opens or not closes:
        raise AggregationError(
            f"group {composite_id(ordered)} needs opening and closing legs "
            f"({len(opens)} open, {len(closes)} close)"
        )

    size = sum(r.quantity for r in opens)
    if size <= 0:
        raise AggregationError(f"group {composite_id(ordered)} has total size {size}")

    direction = Direction.from_side(opens[0].side)
    if direction is None:
        raise AggregationError(
            f"group {composite_id(ordered)}: unknown side {opens[0].side!r} on opening leg"
        )

    entry_price = volume_weighted_price((r.price, r.quantity) for r in opens)
    exit_price = volume_weighted_price((r.price, r.quantity) for r in closes)

    return RoundTurnRecord(
        id=composite_id(ordered),
        source=source,
        symbol=ordered[0].instrument_id,
        direction=direction.value,
        size=size,
        entry_time=ordered[0].open_timestamp,
        exit_time=max(r.end_timestamp for r in ordered),
        entry_price=entry_price,
        exit_price=exit_price,
        high_price=max(entry_price, exit_price),
        low_price=min(entry_price, exit_price),
        pnl=sum(r.realized_pnl for r in closes),
        fees=sum(r.fee for r in ordered),
        leg_count=len(ordered),
    )
