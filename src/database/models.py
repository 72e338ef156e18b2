"""
SQLAlchemy 2.0 declarative models for all FuturesLedger tables.

Raw broker/ledger records (executions, broker_orders, csv_trades) are
written by the ingestion side and never mutated by consolidation.  The
round_turns table is derived from them and keyed by the composite id the
aggregator produces.  All DateTime columns hold naive UTC.
"""

from datetime import datetime, date as date_type
from typing import Any, Dict

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, relationship


# ---------------------------------------------------------------------------
# Base class with to_dict() for JSON serialization
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    """Shared declarative base with a generic to_dict() helper."""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize all columns to a plain dict with ISO timestamps."""
        result = {}
        for col in self.__table__.columns:
            value = getattr(self, col.key)
            if isinstance(value, (datetime, date_type)):
                value = value.isoformat()
            result[col.key] = value
        return result


# ---------------------------------------------------------------------------
# Broker fills and orders (TopstepX backfill)
# ---------------------------------------------------------------------------

class Execution(Base):
    __tablename__ = "executions"

    id = Column(String, primary_key=True)
    account_id = Column(Integer)
    contract_id = Column(String, nullable=False)
    creation_timestamp = Column(DateTime, nullable=False)
    price = Column(Float, nullable=False)
    profit_and_loss = Column(Float)             # NULL on opening fills
    fees = Column(Float, default=0.0)
    side = Column(String(4))                    # BUY / SELL
    size = Column(Integer, nullable=False)
    voided = Column(Boolean, default=False)
    order_id = Column(String)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_executions_contract_time", "contract_id", "creation_timestamp"),
        Index("idx_executions_order", "order_id"),
    )


class BrokerOrder(Base):
    __tablename__ = "broker_orders"

    id = Column(String, primary_key=True)
    account_id = Column(Integer)
    contract_id = Column(String)
    creation_timestamp = Column(DateTime)
    update_timestamp = Column(DateTime)
    status = Column(Integer)
    type = Column(Integer)
    side = Column(String(4))
    size = Column(Integer)
    limit_price = Column(Float)
    stop_price = Column(Float)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_broker_orders_contract", "contract_id"),
    )


# ---------------------------------------------------------------------------
# Closed-trade ledger rows (CSV export)
# ---------------------------------------------------------------------------

class CsvTrade(Base):
    __tablename__ = "csv_trades"

    id = Column(String, primary_key=True)
    contract_name = Column(String, nullable=False)
    entered_at = Column(DateTime, nullable=False)
    exited_at = Column(DateTime, nullable=False)
    entry_price = Column(Float, default=0.0)
    exit_price = Column(Float, default=0.0)
    fees = Column(Float, default=0.0)
    profit_and_loss = Column(Float, default=0.0)
    size = Column(Integer, default=0)
    type = Column(String, default="Unknown")    # Long / Short
    trade_day = Column(DateTime)
    trade_duration = Column(String, default="00:00:00")
    imported_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_csv_trades_contract_entered", "contract_name", "entered_at"),
    )


# ---------------------------------------------------------------------------
# Round turns
# ---------------------------------------------------------------------------

class RoundTurn(Base):
    __tablename__ = "round_turns"

    id = Column(String, primary_key=True)       # constituent ids joined by '-'
    source = Column(String(8), nullable=False)  # csv / api
    symbol = Column(String, nullable=False)
    direction = Column(String(8), nullable=False)
    size = Column(Integer, nullable=False)
    entry_time = Column(DateTime, nullable=False)
    exit_time = Column(DateTime, nullable=False)
    entry_price = Column(Float, nullable=False)
    exit_price = Column(Float, nullable=False)
    high_price = Column(Float)
    low_price = Column(Float)
    pnl = Column(Float, nullable=False)
    fees = Column(Float, nullable=False, default=0.0)
    leg_count = Column(Integer, default=1)
    notes = Column(Text)
    imported_at = Column(DateTime, server_default=func.now())

    tags = relationship(
        "RoundTurnTag", back_populates="round_turn", cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_round_turns_entry", "entry_time"),
        Index("idx_round_turns_exit", "exit_time"),
        Index("idx_round_turns_source", "source"),
    )


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

class TagGroup(Base):
    __tablename__ = "tag_groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(String)
    color = Column(String)
    created_at = Column(DateTime, server_default=func.now())

    tags = relationship("Tag", back_populates="tag_group", cascade="all, delete-orphan")


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    color = Column(String)
    tag_group_id = Column(Integer, ForeignKey("tag_groups.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    tag_group = relationship("TagGroup", back_populates="tags")
    round_turn_tags = relationship(
        "RoundTurnTag", back_populates="tag", cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("name", "tag_group_id", name="uq_tags_name_group"),
    )


class RoundTurnTag(Base):
    __tablename__ = "round_turn_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_turn_id = Column(String, ForeignKey("round_turns.id", ondelete="CASCADE"), nullable=False)
    tag_id = Column(Integer, ForeignKey("tags.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    round_turn = relationship("RoundTurn", back_populates="tags")
    tag = relationship("Tag", back_populates="round_turn_tags")

    __table_args__ = (
        UniqueConstraint("round_turn_id", "tag_id", name="uq_round_turn_tags_pair"),
        Index("idx_round_turn_tags_tag", "tag_id"),
    )


# ---------------------------------------------------------------------------
# Trading rules (single free-text document)
# ---------------------------------------------------------------------------

class Rules(Base):
    __tablename__ = "rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    content = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


# ---------------------------------------------------------------------------
# Sync metadata (backfill cursor etc.)
# ---------------------------------------------------------------------------

class SyncMetadata(Base):
    __tablename__ = "sync_metadata"

    key = Column(String, primary_key=True)
    value = Column(String)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
