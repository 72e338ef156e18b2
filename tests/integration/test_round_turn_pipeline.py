"""
End-to-end consolidation against SQLite: stored records in, round turns out.
"""

import pytest

from src.models.round_turn_manager import RoundTurnManager
from src.pipeline.orchestrator import rebuild_round_turns
from tests.conftest import make_csv_trade_dict, make_order_dict, make_trade_dict


def _load_ledger(db):
    for row in (
        make_csv_trade_dict(id="T1", opened=0, closed=10, size=1, entry_price=100.0, profit_and_loss=10.0),
        make_csv_trade_dict(id="T2", opened=5, closed=12, size=3, entry_price=104.0, profit_and_loss=6.0),
        make_csv_trade_dict(id="T3", opened=30, closed=35, profit_and_loss=-4.0),
        make_csv_trade_dict(id="T4", type="Short", opened=2, closed=6, profit_and_loss=1.0),
    ):
        db.save_csv_trade(row)


def _load_fills(db):
    trades = [
        make_trade_dict(id=1001, side="BUY", minute=0),
        make_trade_dict(id=1002, side="BUY", minute=1),
        make_trade_dict(id=1003, side="SELL", size=2, minute=4, profit_and_loss=12.0),
        make_trade_dict(id=1004, side="SELL", minute=6),
        make_trade_dict(id=1005, side="BUY", minute=9, profit_and_loss=-3.0),
    ]
    db.save_executions(trades)
    db.save_orders([make_order_dict(id=t["order_id"]) for t in trades])


# =====================================================================
# Ledger rows (time overlap)
# =====================================================================

class TestLedgerRebuild:
    def test_overlapping_rows_consolidated(self, db):
        _load_ledger(db)
        result = rebuild_round_turns(db, source="csv")

        manager = RoundTurnManager(db)
        by_id = {rt["id"]: rt for rt in manager.list_round_turns()}
        assert sorted(by_id) == ["T1-T2", "T3", "T4"]
        assert result.round_turns_created == 3
        assert by_id["T1-T2"]["size"] == 4
        assert by_id["T1-T2"]["entry_price"] == pytest.approx(103.0)
        assert by_id["T1-T2"]["pnl"] == pytest.approx(16.0)
        assert by_id["T4"]["direction"] == "Short"

    def test_rebuild_is_idempotent(self, db):
        _load_ledger(db)
        rebuild_round_turns(db, source="csv")
        first = RoundTurnManager(db).list_round_turns()
        rebuild_round_turns(db, source="csv")
        second = RoundTurnManager(db).list_round_turns()

        strip = lambda rows: [{k: v for k, v in r.items() if k != "imported_at"} for r in rows]
        assert strip(first) == strip(second)

    def test_incremental_keeps_notes_and_refreshes_aggregates(self, db):
        _load_ledger(db)
        rebuild_round_turns(db, source="csv")
        manager = RoundTurnManager(db)
        manager.set_notes("T3", "stopped out")

        db.save_csv_trade(make_csv_trade_dict(id="T3", opened=30, closed=35, profit_and_loss=-8.0))
        rebuild_round_turns(db, source="csv", incremental=True)

        rt = manager.get("T3")
        assert rt["notes"] == "stopped out"
        assert rt["pnl"] == pytest.approx(-8.0)

    def test_incremental_merge_replaces_bridged_round_turns(self, db):
        db.save_csv_trade(make_csv_trade_dict(id="T1", opened=0, closed=10, profit_and_loss=10.0))
        db.save_csv_trade(make_csv_trade_dict(id="T2", opened=20, closed=30, profit_and_loss=6.0))
        rebuild_round_turns(db, source="csv")

        # T3 overlaps both, joining them into one component
        db.save_csv_trade(make_csv_trade_dict(id="T3", opened=8, closed=22, profit_and_loss=0.0))
        result = rebuild_round_turns(db, source="csv", incremental=True)

        rows = RoundTurnManager(db).list_round_turns(source="csv")
        assert [rt["id"] for rt in rows] == ["T1-T3-T2"]
        assert sum(rt["pnl"] for rt in rows) == pytest.approx(16.0)
        assert result.round_turns_removed == 2

    def test_incremental_leaves_other_source_alone(self, db):
        _load_fills(db)
        rebuild_round_turns(db, source="api")
        _load_ledger(db)
        rebuild_round_turns(db, source="csv", incremental=True)
        assert RoundTurnManager(db).count(source="api") == 2

    def test_full_rebuild_drops_notes(self, db):
        _load_ledger(db)
        rebuild_round_turns(db, source="csv")
        manager = RoundTurnManager(db)
        manager.set_notes("T3", "stopped out")

        rebuild_round_turns(db, source="csv")
        assert manager.get("T3")["notes"] is None


# =====================================================================
# Broker fills (flat position)
# =====================================================================

class TestFillRebuild:
    def test_flat_to_flat_round_turns(self, db):
        _load_fills(db)
        result = rebuild_round_turns(db, source="api")

        manager = RoundTurnManager(db)
        ids = [rt["id"] for rt in manager.list_round_turns(source="api")]
        assert ids == ["1004-1005", "1001-1002-1003"]

        long_rt = manager.get("1001-1002-1003")
        assert long_rt["direction"] == "Long"
        assert long_rt["size"] == 2
        assert long_rt["pnl"] == pytest.approx(12.0)
        assert manager.get("1004-1005")["direction"] == "Short"
        assert result.open_positions == 0

    def test_fill_with_unknown_order_is_skipped(self, db):
        _load_fills(db)
        db.save_executions([make_trade_dict(id=1010, side="SELL", minute=2, profit_and_loss=50.0, order_id=424242)])

        result = rebuild_round_turns(db, source="api")

        assert result.records_skipped == 1
        assert RoundTurnManager(db).count(source="api") == 2

    def test_first_write_wins(self, db):
        _load_fills(db)
        rebuild_round_turns(db, source="api")

        db.save_executions([make_trade_dict(id=1005, side="BUY", minute=9, profit_and_loss=-30.0)])
        result = rebuild_round_turns(db, source="api", incremental=True)

        assert result.round_turns_created == 0
        assert RoundTurnManager(db).get("1004-1005")["pnl"] == pytest.approx(-3.0)

    def test_sources_are_independent(self, db):
        _load_ledger(db)
        _load_fills(db)
        rebuild_round_turns(db, source="api")
        rebuild_round_turns(db, source="csv")

        manager = RoundTurnManager(db)
        assert manager.count(source="api") == 2
        assert manager.count(source="csv") == 3


# =====================================================================
# Failure handling
# =====================================================================

class TestRebuildErrors:
    def test_unknown_source(self, db):
        with pytest.raises(ValueError):
            rebuild_round_turns(db, source="fix")

    def test_persist_error_is_counted_and_run_continues(self, db, monkeypatch):
        _load_ledger(db)
        original = RoundTurnManager.upsert

        def flaky_upsert(self, record, overwrite=True):
            if record.id == "T3":
                raise RuntimeError("disk full")
            return original(self, record, overwrite=overwrite)

        monkeypatch.setattr(RoundTurnManager, "upsert", flaky_upsert)
        result = rebuild_round_turns(db, source="csv")

        assert result.persist_errors == 1
        assert result.round_turns_created == 2
        assert result.summary()["errors"] == 1

    def test_empty_database(self, db):
        result = rebuild_round_turns(db, source="csv")
        assert result.round_turns_created == 0
        assert result.records_loaded == 0
