"""Backfill service: pull broker fills and orders window by window."""

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from loguru import logger

from src.api.topstepx_client import TopstepXClient
from src.database.db_manager import DatabaseManager, to_naive_utc

DEFAULT_BACKFILL_START = "2023-01-01T00:00:00Z"
DEFAULT_WINDOW_DAYS = 30


@dataclass
class BackfillResult:
    windows: int = 0
    trades_fetched: int = 0
    trades_saved: int = 0
    trades_skipped: int = 0
    orders_fetched: int = 0
    orders_saved: int = 0
    orders_skipped: int = 0
    dry_run: bool = False
    last_window_end: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "windows": self.windows,
            "trades_fetched": self.trades_fetched,
            "trades_saved": self.trades_saved,
            "trades_skipped": self.trades_skipped,
            "orders_fetched": self.orders_fetched,
            "orders_saved": self.orders_saved,
            "orders_skipped": self.orders_skipped,
            "dry_run": self.dry_run,
            "last_window_end": self.last_window_end.isoformat() if self.last_window_end else None,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def backfill_start_from_env() -> datetime:
    value = os.getenv("BACKFILL_START", DEFAULT_BACKFILL_START)
    return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def window_days_from_env() -> int:
    return int(os.getenv("BACKFILL_WINDOW_DAYS", DEFAULT_WINDOW_DAYS))


def iter_windows(start: datetime, now: datetime, window_days: int) -> Iterator[Tuple[datetime, datetime]]:
    """Successive [start, end] slices up to now.

    Each window is at most window_days long, the next one starts a second
    after the previous end, and the last one ends exactly at now.
    """
    if window_days <= 0:
        raise ValueError(f"window_days must be positive, got {window_days}")

    window_start = start
    while window_start <= now:
        window_end = min(window_start + timedelta(days=window_days), now)
        yield window_start, window_end
        if window_end == now:
            break
        window_start = window_end + timedelta(seconds=1)


def _valid_trades(trades: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        t for t in trades
        if t.get("id") is not None
        and t.get("order_id") is not None
        and t.get("creation_timestamp") is not None
        and t.get("contract_id")
    ]


def run_backfill(
    client: TopstepXClient,
    db: DatabaseManager,
    start: Optional[datetime] = None,
    window_days: Optional[int] = None,
    dry_run: bool = False,
    resume: bool = False,
    now: Optional[datetime] = None,
) -> BackfillResult:
    """Fetch and upsert trades and orders over every window from start to now.

    Re-running a window is harmless (upserts by id).  With resume=True the
    run continues after the last completed window recorded in
    sync_metadata.  Broker errors propagate and stop the run; windows
    already written stay written.
    """
    now = to_naive_utc(now) if now else _utcnow()
    start = to_naive_utc(start) if start else backfill_start_from_env()
    window_days = window_days or window_days_from_env()

    if resume:
        cursor = db.get_backfill_cursor()
        if cursor is not None:
            start = cursor + timedelta(seconds=1)
            logger.info(f"Resuming backfill after {cursor.isoformat()}")

    result = BackfillResult(dry_run=dry_run)

    for window_start, window_end in iter_windows(start, now, window_days):
        logger.info(f"Fetching {window_start.isoformat()} -> {window_end.isoformat()}")
        result.windows += 1

        trades = client.fetch_trades(window_start, window_end)
        valid_trades = _valid_trades(trades)
        result.trades_fetched += len(trades)
        if len(valid_trades) != len(trades):
            result.trades_skipped += len(trades) - len(valid_trades)
            logger.warning(f"Skipped {len(trades) - len(valid_trades)} invalid trades")

        orders = client.fetch_orders(window_start, window_end)
        valid_orders = [o for o in orders if o.get("id") is not None]
        result.orders_fetched += len(orders)
        if len(valid_orders) != len(orders):
            result.orders_skipped += len(orders) - len(valid_orders)
            logger.warning(f"Skipped {len(orders) - len(valid_orders)} invalid orders")

        if not dry_run:
            result.trades_saved += db.save_executions(valid_trades)
            result.orders_saved += db.save_orders(valid_orders)
            db.set_backfill_cursor(window_end)

        result.last_window_end = window_end

    if dry_run:
        logger.info(
            f"[dry-run] complete: {result.trades_fetched - result.trades_skipped} trades, "
            f"{result.orders_fetched - result.orders_skipped} orders over {result.windows} windows"
        )
    else:
        logger.info(
            f"Backfill complete: {result.trades_saved} trades, "
            f"{result.orders_saved} orders over {result.windows} windows"
        )
    return result
