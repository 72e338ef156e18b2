"""
Pipeline Orchestrator: source records to persisted round turns.

Stages:
  1. Validate and partition records (partitioner)
  2. Detect round-turn groups per partition (overlap_graph / flat_tracker)
  3. Aggregate each group (aggregator)
  4. Persist by composite id (RoundTurnManager)

``consolidate()`` is pure (stages 1-3); ``rebuild_round_turns()`` wires it
to the database for one source, as a full rebuild or an incremental upsert.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence

from src.models.round_turn import ExecutionRecord, RoundTurnRecord
from src.models.round_turn_manager import RoundTurnManager
from src.pipeline.aggregator import (
    AggregationError,
    aggregate_flat_group,
    aggregate_overlap_group,
)
from src.pipeline.detectors import RoundTurnDetector
from src.pipeline.flat_tracker import FlatPositionDetector
from src.pipeline.overlap_graph import TimeOverlapDetector
from src.pipeline.partitioner import partition_records

if TYPE_CHECKING:
    from src.database.db_manager import DatabaseManager

logger = logging.getLogger(__name__)

SOURCE_CSV = "csv"
SOURCE_API = "api"
SOURCES = (SOURCE_CSV, SOURCE_API)

Aggregate = Callable[[Sequence[ExecutionRecord], str], RoundTurnRecord]


@dataclass
class PipelineResult:
    """Result of a consolidation run."""
    source: str
    records_loaded: int = 0
    records_skipped: int = 0
    groups_detected: int = 0
    groups_rejected: int = 0
    round_turns_created: int = 0
    persist_errors: int = 0
    round_turns_removed: int = 0
    open_positions: int = 0
    round_turns: List[RoundTurnRecord] = field(default_factory=list)

    @property
    def errors(self) -> int:
        return self.groups_rejected + self.persist_errors

    def summary(self) -> Dict[str, int]:
        return {
            "records_loaded": self.records_loaded,
            "records_skipped": self.records_skipped,
            "groups_detected": self.groups_detected,
            "round_turns_created": self.round_turns_created,
            "round_turns_removed": self.round_turns_removed,
            "open_positions": self.open_positions,
            "errors": self.errors,
        }


def _record_problem(record: ExecutionRecord, require_close: bool) -> Optional[str]:
    if not record.id:
        return "missing id"
    if not record.instrument_id:
        return "missing instrument"
    if record.open_timestamp is None:
        return "missing open timestamp"
    if require_close:
        if record.close_timestamp is None:
            return "missing close timestamp"
        if record.close_timestamp < record.open_timestamp:
            return "closes before it opens"
        if record.quantity <= 0:
            return f"non-positive size {record.quantity}"
    return None


def _validate(
    records: Sequence[ExecutionRecord],
    require_close: bool,
    result: PipelineResult,
) -> List[ExecutionRecord]:
    valid = []
    for record in records:
        problem = _record_problem(record, require_close)
        if problem:
            result.records_skipped += 1
            logger.warning("Skipping record %s: %s", record.id or "<no id>", problem)
            continue
        valid.append(record)
    return valid


def consolidate(
    records: Sequence[ExecutionRecord],
    detector: RoundTurnDetector,
    aggregate: Aggregate,
    source: str,
) -> PipelineResult:
    """Pure stages 1-3: records -> RoundTurnRecords (nothing persisted).

    Malformed records are skipped and counted; a group that fails
    aggregation is logged, counted and left out.
    """
    result = PipelineResult(source=source, records_loaded=len(records))
    detector.reset_stats()

    valid = _validate(records, require_close=isinstance(detector, TimeOverlapDetector), result=result)
    partitions = partition_records(valid, detector.key_fn)
    logger.info(
        "Stage 1: %d records (%d skipped) in %d partitions",
        len(valid), result.records_skipped, len(partitions),
    )

    for key, members in partitions.items():
        groups = detector.detect_groups(members)
        result.groups_detected += len(groups)
        logger.debug("Stage 2: %s -> %d groups from %d records", key, len(groups), len(members))

        for group in groups:
            try:
                result.round_turns.append(aggregate(group, source))
            except AggregationError as e:
                result.groups_rejected += 1
                logger.error("Stage 3: rejected group in %s: %s", key, e)

    result.records_skipped += detector.skipped_records
    result.open_positions = detector.open_positions
    logger.info(
        "Stage 2-3: %d groups, %d round turns, %d rejected, %d open positions",
        result.groups_detected, len(result.round_turns),
        result.groups_rejected, result.open_positions,
    )
    return result


def rebuild_round_turns(
    db_manager: "DatabaseManager",
    source: str = SOURCE_CSV,
    incremental: bool = False,
) -> PipelineResult:
    """Consolidate one source's stored records and persist the round turns.

    csv: ledger rows, time-overlap detection, aggregates refreshed on upsert.
    api: broker fills, flat-position detection, first write wins.

    A full rebuild deletes the source's round turns first (notes and tags
    on them go too).  Incremental upserts, then removes the source's round
    turns whose composite id this run no longer produces, so a record that
    joins two earlier groups leaves only the merged round turn behind.
    Either way a crashed run can simply be re-run.

    Parameters:
        db_manager: Database manager instance
        source: "csv" or "api"
        incremental: Upsert over existing round turns instead of clearing them

    Returns:
        PipelineResult with counts for each stage
    """
    if source == SOURCE_CSV:
        records = db_manager.get_csv_trade_records()
        detector: RoundTurnDetector = TimeOverlapDetector()
        aggregate: Aggregate = aggregate_overlap_group
        overwrite = True
    elif source == SOURCE_API:
        records = db_manager.get_execution_records()
        detector = FlatPositionDetector(db_manager.get_orders_by_id())
        aggregate = aggregate_flat_group
        overwrite = False
    else:
        raise ValueError(f"Unknown source {source!r}, expected one of {SOURCES}")

    manager = RoundTurnManager(db_manager)

    # ── Step 0: Clear existing state ──────────────────────────────────
    if not incremental:
        manager.clear(source=source)

    result = consolidate(records, detector, aggregate, source)

    # ── Step 4: Persist ───────────────────────────────────────────────
    for record in result.round_turns:
        try:
            if manager.upsert(record, overwrite=overwrite):
                result.round_turns_created += 1
        except Exception as e:
            result.persist_errors += 1
            logger.error("Stage 4: failed to persist round turn %s: %s", record.id, e)

    if incremental:
        result.round_turns_removed = len(
            manager.prune(source, (record.id for record in result.round_turns))
        )

    logger.info(
        "Stage 4: persisted %d of %d round turns, removed %d stale (%d errors)",
        result.round_turns_created, len(result.round_turns),
        result.round_turns_removed, result.persist_errors,
    )
    return result
