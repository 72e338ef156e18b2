"""
Shared pytest fixtures and record factory helpers for FuturesLedger tests.

Each test gets a fresh temporary SQLite database (auto-cleaned by pytest).
"""

import pytest
from datetime import datetime, timedelta

from src.database.db_manager import DatabaseManager
from src.models.round_turn import Direction, ExecutionRecord
from src.models.round_turn_manager import RoundTurnManager


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def db(tmp_path):
    """Temporary SQLite database, fully initialized and auto-cleaned."""
    db_manager = DatabaseManager(db_url=f"sqlite:///{tmp_path / 'test.db'}")
    db_manager.initialize_database()
    return db_manager


@pytest.fixture
def round_turn_manager(db):
    return RoundTurnManager(db)


# ---------------------------------------------------------------------------
# Record factory helpers
# ---------------------------------------------------------------------------

BASE_TIME = datetime(2025, 3, 3, 14, 30)


def at(minutes: float) -> datetime:
    """BASE_TIME plus a number of minutes."""
    return BASE_TIME + timedelta(minutes=minutes)


def make_closed_trade(
    *,
    id="T1",
    instrument_id="MNQM5",
    direction=Direction.LONG,
    quantity=1,
    entry_price=20000.0,
    exit_price=20010.0,
    opened=0,
    closed=5,
    fee=0.74,
    pnl=20.0,
    voided=False,
):
    """Closed-trade ledger row as an ExecutionRecord; opened/closed are minutes after BASE_TIME."""
    return ExecutionRecord(
        id=id,
        instrument_id=instrument_id,
        quantity=quantity,
        price=entry_price,
        open_timestamp=at(opened),
        close_timestamp=at(closed),
        exit_price=exit_price,
        fee=fee,
        direction=direction,
        realized_pnl=pnl,
        voided=voided,
    )


def make_fill(
    *,
    id="F1",
    instrument_id="CON.F.US.MNQ.M25",
    side="BUY",
    quantity=1,
    price=20000.0,
    minute=0,
    fee=0.37,
    pnl=None,
    order_id=None,
    voided=False,
):
    """Raw broker fill; pnl=None makes it an opening leg."""
    return ExecutionRecord(
        id=id,
        instrument_id=instrument_id,
        quantity=quantity,
        price=price,
        open_timestamp=at(minute),
        fee=fee,
        side=side,
        realized_pnl=pnl,
        source_order_id=order_id if order_id is not None else f"O-{id}",
        voided=voided,
    )


def make_trade_dict(
    *,
    id=1001,
    contract_id="CON.F.US.MNQ.M25",
    side="BUY",
    size=1,
    price=20000.0,
    minute=0,
    fees=0.37,
    profit_and_loss=None,
    order_id=None,
    voided=False,
):
    """Broker fill as TopstepXClient.fetch_trades() returns it."""
    return {
        "id": id,
        "account_id": 42,
        "contract_id": contract_id,
        "creation_timestamp": at(minute),
        "side": side,
        "price": price,
        "profit_and_loss": profit_and_loss,
        "fees": fees,
        "size": size,
        "voided": voided,
        "order_id": order_id if order_id is not None else id + 5000,
    }


def make_order_dict(*, id=6001, contract_id="CON.F.US.MNQ.M25", side="BUY", size=1,
                    status=2, minute=0, limit_price=None, stop_price=None):
    """Broker order as TopstepXClient.fetch_orders() returns it."""
    return {
        "id": id,
        "account_id": 42,
        "contract_id": contract_id,
        "creation_timestamp": at(minute),
        "update_timestamp": at(minute),
        "status": status,
        "type": 2,
        "side": side,
        "size": size,
        "limit_price": limit_price,
        "stop_price": stop_price,
    }


def make_csv_trade_dict(
    *,
    id="T1",
    contract_name="MNQM5",
    type="Long",
    size=1,
    entry_price=20000.0,
    exit_price=20010.0,
    opened=0,
    closed=5,
    fees=0.74,
    profit_and_loss=20.0,
):
    """Parsed ledger row as DatabaseManager.save_csv_trade() takes it."""
    return {
        "id": id,
        "contract_name": contract_name,
        "entered_at": at(opened),
        "exited_at": at(closed),
        "entry_price": entry_price,
        "exit_price": exit_price,
        "fees": fees,
        "profit_and_loss": profit_and_loss,
        "size": size,
        "type": type,
        "trade_day": BASE_TIME.replace(hour=0, minute=0),
        "trade_duration": "00:05:00",
    }
