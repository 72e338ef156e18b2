"""
Round-turn domain types.

ExecutionRecord is the normalized shape every ingestion adapter produces
(TopstepX fills, closed-trade CSV rows).  RoundTurnRecord is what the
aggregator computes from a group of them, before it is persisted.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class Direction(str, Enum):
    LONG = "Long"
    SHORT = "Short"

    @classmethod
    def from_label(cls, label: Optional[str]) -> Optional["Direction"]:
        """Map a ledger 'Type' column (Long/Short, any case) to a Direction."""
        if not label:
            return None
        value = label.strip().lower()
        if value == "long":
            return cls.LONG
        if value == "short":
            return cls.SHORT
        return None

    @classmethod
    def from_side(cls, side: Optional[str]) -> Optional["Direction"]:
        """Direction implied by the side of an opening fill."""
        if side == "BUY":
            return cls.LONG
        if side == "SELL":
            return cls.SHORT
        return None


@dataclass(frozen=True)
class ExecutionRecord:
    """One fill, or one pre-paired entry/exit ledger row."""
    id: str
    instrument_id: str
    quantity: int
    price: float
    open_timestamp: datetime
    fee: float = 0.0
    direction: Optional[Direction] = None
    side: Optional[str] = None          # BUY / SELL for raw fills
    close_timestamp: Optional[datetime] = None
    exit_price: Optional[float] = None
    realized_pnl: Optional[float] = None
    source_order_id: Optional[str] = None
    voided: bool = False

    @property
    def is_closing_leg(self) -> bool:
        """Fills carrying realized P&L reduce or close a position."""
        return self.realized_pnl is not None

    @property
    def end_timestamp(self) -> datetime:
        return self.close_timestamp or self.open_timestamp


@dataclass(frozen=True)
class RoundTurnRecord:
    """A consolidated round turn, ready to be upserted by id."""
    id: str
    source: str                         # "csv" or "api"
    symbol: str
    direction: str
    size: int
    entry_time: datetime
    exit_time: datetime
    entry_price: float
    exit_price: float
    pnl: float
    fees: float
    high_price: Optional[float] = None
    low_price: Optional[float] = None
    leg_count: int = 1

    def to_row(self) -> Dict[str, Any]:
        """Column values for the round_turns table (no notes, no imported_at)."""
        return {
            "id": self.id,
            "source": self.source,
            "symbol": self.symbol,
            "direction": self.direction,
            "size": self.size,
            "entry_time": self.entry_time,
            "exit_time": self.exit_time,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "high_price": self.high_price,
            "low_price": self.low_price,
            "pnl": self.pnl,
            "fees": self.fees,
            "leg_count": self.leg_count,
        }
