"""Unit tests for the pure consolidation stages (no database)."""

from datetime import timedelta

import pytest

from src.models.round_turn import Direction
from src.pipeline.aggregator import aggregate_flat_group, aggregate_overlap_group
from src.pipeline.flat_tracker import FlatPositionDetector
from src.pipeline.orchestrator import PipelineResult, consolidate
from src.pipeline.overlap_graph import TimeOverlapDetector
from tests.conftest import at, make_closed_trade, make_fill


def _ledger(records):
    return consolidate(records, TimeOverlapDetector(), aggregate_overlap_group, "csv")


def _fills(records, orders_by_id=None):
    return consolidate(records, FlatPositionDetector(orders_by_id), aggregate_flat_group, "api")


class TestConsolidateLedger:
    def test_overlapping_rows_become_one_round_turn(self):
        result = _ledger([
            make_closed_trade(id="A", opened=0, closed=10),
            make_closed_trade(id="B", opened=5, closed=15),
            make_closed_trade(id="C", opened=30, closed=40),
        ])
        assert [rt.id for rt in result.round_turns] == ["A-B", "C"]
        assert result.groups_detected == 2
        assert result.records_loaded == 3

    def test_directions_never_mix(self):
        result = _ledger([
            make_closed_trade(id="L", direction=Direction.LONG, opened=0, closed=10),
            make_closed_trade(id="S", direction=Direction.SHORT, opened=2, closed=8),
        ])
        assert sorted(rt.id for rt in result.round_turns) == ["L", "S"]

    def test_instruments_never_mix(self):
        result = _ledger([
            make_closed_trade(id="NQ", instrument_id="MNQM5", opened=0, closed=10),
            make_closed_trade(id="ES", instrument_id="MESM5", opened=2, closed=8),
        ])
        assert len(result.round_turns) == 2

    def test_malformed_rows_are_skipped_and_counted(self):
        backwards = make_closed_trade(id="X", opened=10, closed=5)
        empty = make_closed_trade(id="Z", quantity=0)
        good = make_closed_trade(id="G", opened=20, closed=25)

        result = _ledger([backwards, empty, good])

        assert [rt.id for rt in result.round_turns] == ["G"]
        assert result.records_skipped == 2

    def test_voided_rows_are_dropped(self):
        result = _ledger([
            make_closed_trade(id="A", voided=True),
            make_closed_trade(id="B", opened=20, closed=25),
        ])
        assert [rt.id for rt in result.round_turns] == ["B"]

    def test_every_row_lands_in_exactly_one_round_turn(self):
        rows = [
            make_closed_trade(id=f"T{i:02d}", opened=i * 3, closed=i * 3 + (4 if i % 3 else 1))
            for i in range(20)
        ]
        result = _ledger(rows)
        members = [part for rt in result.round_turns for part in rt.id.split("-")]
        assert sorted(members) == sorted(r.id for r in rows)
        assert sum(rt.size for rt in result.round_turns) == sum(r.quantity for r in rows)
        assert sum(rt.pnl for rt in result.round_turns) == pytest.approx(sum(r.realized_pnl for r in rows))

    def test_empty_input(self):
        result = _ledger([])
        assert result.round_turns == []
        assert result.summary()["errors"] == 0


class TestConsolidateFills:
    def test_round_turn_per_flat_cycle(self):
        result = _fills([
            make_fill(id="1", minute=0),
            make_fill(id="2", side="SELL", minute=1, pnl=4.0),
            make_fill(id="3", side="SELL", minute=2),
            make_fill(id="4", side="BUY", minute=3, pnl=-1.0),
            make_fill(id="5", minute=4),
        ])
        assert [(rt.id, rt.direction) for rt in result.round_turns] == [
            ("1-2", "Long"), ("3-4", "Short"),
        ]
        assert result.open_positions == 1

    def test_instruments_tracked_separately(self):
        result = _fills([
            make_fill(id="a1", instrument_id="NQ", minute=0),
            make_fill(id="b1", instrument_id="ES", minute=1),
            make_fill(id="a2", instrument_id="NQ", side="SELL", minute=2, pnl=1.0),
            make_fill(id="b2", instrument_id="ES", side="SELL", minute=3, pnl=2.0),
        ])
        assert sorted(rt.id for rt in result.round_turns) == ["a1-a2", "b1-b2"]

    def test_detector_skips_are_reported(self):
        result = _fills([
            make_fill(id="orphan", side="SELL", minute=0, pnl=3.0),
            make_fill(id="1", minute=1),
            make_fill(id="2", side="SELL", minute=2, pnl=1.0),
        ])
        assert result.records_skipped == 1
        assert result.summary()["records_skipped"] == 1

    def test_same_timestamp_fills_follow_numeric_id_order(self):
        result = _fills([
            make_fill(id="10", side="SELL", minute=0, pnl=4.0),
            make_fill(id="9", side="BUY", minute=0),
        ])
        assert [rt.id for rt in result.round_turns] == ["9-10"]
        assert result.records_skipped == 0

    def test_unknown_side_group_is_rejected(self):
        result = _fills([
            make_fill(id="1", side=None, minute=0),
            make_fill(id="2", side="SELL", minute=1, pnl=1.0),
        ])
        assert result.round_turns == []
        assert result.groups_rejected == 1
        assert result.errors == 1

    def test_entry_before_exit(self):
        result = _fills([
            make_fill(id="1", minute=0),
            make_fill(id="2", minute=7),
            make_fill(id="3", side="SELL", quantity=2, minute=9, pnl=1.0),
        ])
        rt = result.round_turns[0]
        assert rt.exit_time - rt.entry_time == timedelta(minutes=9)
        assert rt.entry_time == at(0)


def test_pipeline_result_summary_keys():
    result = PipelineResult(source="csv", persist_errors=2, groups_rejected=1)
    assert result.summary() == {
        "records_loaded": 0,
        "records_skipped": 0,
        "groups_detected": 0,
        "round_turns_created": 0,
        "round_turns_removed": 0,
        "open_positions": 0,
        "errors": 3,
    }
