"""
Database Manager for FuturesLedger
Owns the raw-record tables (executions, broker_orders, csv_trades) and
sync metadata.  Round turns are handled by RoundTurnManager.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select

from src.database.engine import dialect_insert, get_session, init_engine
from src.database.models import BrokerOrder, CsvTrade, Execution, SyncMetadata
from src.models.round_turn import Direction, ExecutionRecord

logger = logging.getLogger(__name__)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class DatabaseManager:
    def __init__(self, db_url: Optional[str] = None):
        self.db_url = db_url
        self._initialized = False
        # Note: initialize_database() is called explicitly by FastAPI startup event

    def ensure_initialized(self):
        """Ensure database is initialized (for standalone scripts)"""
        if not self._initialized:
            self.initialize_database()

    def initialize_database(self, create_tables: bool = True):
        """Bind the module-level engine to this manager's URL."""
        init_engine(self.db_url, create_tables=create_tables)
        self._initialized = True

    @contextmanager
    def get_session(self):
        """Session scope; commits on success, rolls back on error."""
        self.ensure_initialized()
        with get_session() as session:
            yield session

    # ------------------------------------------------------------------
    # Broker fills and orders
    # ------------------------------------------------------------------

    def save_executions(self, trades: Iterable[Dict[str, Any]]) -> int:
        """Upsert broker fills by id.

        An existing fill only has its price and realized P&L refreshed; the
        broker corrects those after the fact, nothing else.
        """
        saved_count = 0
        with self.get_session() as session:
            for trade in trades:
                values = {
                    "id": str(trade["id"]),
                    "account_id": trade.get("account_id"),
                    "contract_id": trade["contract_id"],
                    "creation_timestamp": to_naive_utc(trade["creation_timestamp"]),
                    "price": trade["price"],
                    "profit_and_loss": trade.get("profit_and_loss"),
                    "fees": trade.get("fees") or 0.0,
                    "side": trade.get("side"),
                    "size": trade["size"],
                    "voided": bool(trade.get("voided", False)),
                    "order_id": str(trade["order_id"]) if trade.get("order_id") is not None else None,
                }
                stmt = dialect_insert(Execution).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["id"],
                    set_={
                        "price": stmt.excluded.price,
                        "profit_and_loss": stmt.excluded.profit_and_loss,
                    },
                )
                session.execute(stmt)
                saved_count += 1

        logger.info(f"Saved {saved_count} executions to database")
        return saved_count

    def save_orders(self, orders: Iterable[Dict[str, Any]]) -> int:
        """Upsert broker orders by id, refreshing status and working prices."""
        saved_count = 0
        with self.get_session() as session:
            for order in orders:
                values = {
                    "id": str(order["id"]),
                    "account_id": order.get("account_id"),
                    "contract_id": order.get("contract_id"),
                    "creation_timestamp": to_naive_utc(order.get("creation_timestamp")),
                    "update_timestamp": to_naive_utc(order.get("update_timestamp")),
                    "status": order.get("status"),
                    "type": order.get("type"),
                    "side": order.get("side"),
                    "size": order.get("size"),
                    "limit_price": order.get("limit_price"),
                    "stop_price": order.get("stop_price"),
                }
                stmt = dialect_insert(BrokerOrder).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["id"],
                    set_={
                        "status": stmt.excluded.status,
                        "update_timestamp": stmt.excluded.update_timestamp,
                        "limit_price": stmt.excluded.limit_price,
                        "stop_price": stmt.excluded.stop_price,
                    },
                )
                session.execute(stmt)
                saved_count += 1

        logger.info(f"Saved {saved_count} broker orders to database")
        return saved_count

    def get_execution_records(self, contract_id: Optional[str] = None) -> List[ExecutionRecord]:
        """All stored fills as ExecutionRecords, voided ones included."""
        with self.get_session() as session:
            query = select(Execution)
            if contract_id:
                query = query.where(Execution.contract_id == contract_id)
            query = query.order_by(Execution.creation_timestamp, Execution.id)
            rows = session.execute(query).scalars().all()
            return [
                ExecutionRecord(
                    id=row.id,
                    instrument_id=row.contract_id,
                    quantity=row.size,
                    price=row.price,
                    open_timestamp=row.creation_timestamp,
                    fee=row.fees or 0.0,
                    side=row.side,
                    realized_pnl=row.profit_and_loss,
                    source_order_id=row.order_id,
                    voided=bool(row.voided),
                )
                for row in rows
            ]

    def get_orders_by_id(self) -> Dict[str, Dict[str, Any]]:
        """Broker orders keyed by id, for resolving a fill's parent order."""
        with self.get_session() as session:
            rows = session.execute(select(BrokerOrder)).scalars().all()
            return {row.id: row.to_dict() for row in rows}

    def count_executions(self) -> int:
        with self.get_session() as session:
            return session.query(Execution).count()

    def count_orders(self) -> int:
        with self.get_session() as session:
            return session.query(BrokerOrder).count()

    # ------------------------------------------------------------------
    # Closed-trade ledger rows
    # ------------------------------------------------------------------

    def save_csv_trade(self, trade: Dict[str, Any]) -> None:
        """Upsert one parsed ledger row by id; a re-import overwrites it."""
        values = {
            "id": str(trade["id"]),
            "contract_name": trade["contract_name"],
            "entered_at": to_naive_utc(trade["entered_at"]),
            "exited_at": to_naive_utc(trade["exited_at"]),
            "entry_price": trade.get("entry_price", 0.0),
            "exit_price": trade.get("exit_price", 0.0),
            "fees": trade.get("fees", 0.0),
            "profit_and_loss": trade.get("profit_and_loss", 0.0),
            "size": trade.get("size", 0),
            "type": trade.get("type") or "Unknown",
            "trade_day": to_naive_utc(trade.get("trade_day")),
            "trade_duration": trade.get("trade_duration") or "00:00:00",
        }
        update_cols = {k: v for k, v in values.items() if k != "id"}
        with self.get_session() as session:
            stmt = dialect_insert(CsvTrade).values(**values)
            stmt = stmt.on_conflict_do_update(index_elements=["id"], set_=update_cols)
            session.execute(stmt)

    def get_csv_trade_records(self) -> List[ExecutionRecord]:
        """Stored ledger rows as pre-paired ExecutionRecords."""
        with self.get_session() as session:
            rows = session.execute(
                select(CsvTrade).order_by(CsvTrade.entered_at, CsvTrade.id)
            ).scalars().all()
            return [
                ExecutionRecord(
                    id=row.id,
                    instrument_id=row.contract_name,
                    quantity=row.size or 0,
                    price=row.entry_price or 0.0,
                    open_timestamp=row.entered_at,
                    fee=row.fees or 0.0,
                    direction=Direction.from_label(row.type),
                    close_timestamp=row.exited_at,
                    exit_price=row.exit_price or 0.0,
                    realized_pnl=row.profit_and_loss or 0.0,
                )
                for row in rows
            ]

    def count_csv_trades(self) -> int:
        with self.get_session() as session:
            return session.query(CsvTrade).count()

    # ------------------------------------------------------------------
    # Sync metadata
    # ------------------------------------------------------------------

    def get_sync_metadata(self, key: str) -> Optional[str]:
        """Get a sync metadata value by key"""
        with self.get_session() as session:
            row = session.get(SyncMetadata, key)
            return row.value if row else None

    def set_sync_metadata(self, key: str, value: str) -> None:
        """Set a sync metadata value"""
        with self.get_session() as session:
            stmt = dialect_insert(SyncMetadata).values(
                key=key, value=value, updated_at=datetime.now(timezone.utc).replace(tzinfo=None),
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["key"],
                set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
            )
            session.execute(stmt)

    def get_backfill_cursor(self) -> Optional[datetime]:
        """End of the last completed backfill window, if any."""
        timestamp_str = self.get_sync_metadata("backfill_cursor")
        if timestamp_str:
            try:
                return datetime.fromisoformat(timestamp_str)
            except ValueError:
                logger.warning(f"Invalid timestamp format: {timestamp_str}")
        return None

    def set_backfill_cursor(self, timestamp: datetime) -> None:
        self.set_sync_metadata("backfill_cursor", to_naive_utc(timestamp).isoformat())
