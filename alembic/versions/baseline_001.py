"""Baseline schema: raw broker/ledger records, round turns, tags, rules.

Revision ID: baseline_001
Revises:
Create Date: 2026-10-19

Databases created by DatabaseManager.initialize_database() (create_all)
already have these tables; the _table_exists() checks make this revision a
no-op for them, so `alembic upgrade head` is safe either way.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "baseline_001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(conn, table_name: str) -> bool:
    dialect = conn.dialect.name
    if dialect == "sqlite":
        result = conn.execute(sa.text(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=:t"
        ), {"t": table_name})
        return result.fetchone() is not None
    else:
        result = conn.execute(sa.text(
            "SELECT to_regclass(:t)"
        ), {"t": f"public.{table_name}"})
        return result.scalar() is not None


def upgrade() -> None:
    conn = op.get_bind()

    if not _table_exists(conn, "executions"):
        op.create_table(
            "executions",
            sa.Column("id", sa.String, primary_key=True),
            sa.Column("account_id", sa.Integer),
            sa.Column("contract_id", sa.String, nullable=False),
            sa.Column("creation_timestamp", sa.DateTime, nullable=False),
            sa.Column("price", sa.Float, nullable=False),
            sa.Column("profit_and_loss", sa.Float),
            sa.Column("fees", sa.Float),
            sa.Column("side", sa.String(4)),
            sa.Column("size", sa.Integer, nullable=False),
            sa.Column("voided", sa.Boolean),
            sa.Column("order_id", sa.String),
            sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
            sa.Index("idx_executions_contract_time", "contract_id", "creation_timestamp"),
            sa.Index("idx_executions_order", "order_id"),
        )

    if not _table_exists(conn, "broker_orders"):
        op.create_table(
            "broker_orders",
            sa.Column("id", sa.String, primary_key=True),
            sa.Column("account_id", sa.Integer),
            sa.Column("contract_id", sa.String),
            sa.Column("creation_timestamp", sa.DateTime),
            sa.Column("update_timestamp", sa.DateTime),
            sa.Column("status", sa.Integer),
            sa.Column("type", sa.Integer),
            sa.Column("side", sa.String(4)),
            sa.Column("size", sa.Integer),
            sa.Column("limit_price", sa.Float),
            sa.Column("stop_price", sa.Float),
            sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
            sa.Index("idx_broker_orders_contract", "contract_id"),
        )

    if not _table_exists(conn, "csv_trades"):
        op.create_table(
            "csv_trades",
            sa.Column("id", sa.String, primary_key=True),
            sa.Column("contract_name", sa.String, nullable=False),
            sa.Column("entered_at", sa.DateTime, nullable=False),
            sa.Column("exited_at", sa.DateTime, nullable=False),
            sa.Column("entry_price", sa.Float),
            sa.Column("exit_price", sa.Float),
            sa.Column("fees", sa.Float),
            sa.Column("profit_and_loss", sa.Float),
            sa.Column("size", sa.Integer),
            sa.Column("type", sa.String),
            sa.Column("trade_day", sa.DateTime),
            sa.Column("trade_duration", sa.String),
            sa.Column("imported_at", sa.DateTime, server_default=sa.func.now()),
            sa.Index("idx_csv_trades_contract_entered", "contract_name", "entered_at"),
        )

    if not _table_exists(conn, "round_turns"):
        op.create_table(
            "round_turns",
            sa.Column("id", sa.String, primary_key=True),
            sa.Column("source", sa.String(8), nullable=False),
            sa.Column("symbol", sa.String, nullable=False),
            sa.Column("direction", sa.String(8), nullable=False),
            sa.Column("size", sa.Integer, nullable=False),
            sa.Column("entry_time", sa.DateTime, nullable=False),
            sa.Column("exit_time", sa.DateTime, nullable=False),
            sa.Column("entry_price", sa.Float, nullable=False),
            sa.Column("exit_price", sa.Float, nullable=False),
            sa.Column("high_price", sa.Float),
            sa.Column("low_price", sa.Float),
            sa.Column("pnl", sa.Float, nullable=False),
            sa.Column("fees", sa.Float, nullable=False),
            sa.Column("leg_count", sa.Integer),
            sa.Column("notes", sa.Text),
            sa.Column("imported_at", sa.DateTime, server_default=sa.func.now()),
            sa.Index("idx_round_turns_entry", "entry_time"),
            sa.Index("idx_round_turns_exit", "exit_time"),
            sa.Index("idx_round_turns_source", "source"),
        )

    if not _table_exists(conn, "tag_groups"):
        op.create_table(
            "tag_groups",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("name", sa.String, nullable=False, unique=True),
            sa.Column("description", sa.String),
            sa.Column("color", sa.String),
            sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        )

    if not _table_exists(conn, "tags"):
        op.create_table(
            "tags",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("name", sa.String, nullable=False),
            sa.Column("color", sa.String),
            sa.Column("tag_group_id", sa.Integer,
                      sa.ForeignKey("tag_groups.id", ondelete="CASCADE"), nullable=False),
            sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
            sa.UniqueConstraint("name", "tag_group_id", name="uq_tags_name_group"),
        )

    if not _table_exists(conn, "round_turn_tags"):
        op.create_table(
            "round_turn_tags",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("round_turn_id", sa.String,
                      sa.ForeignKey("round_turns.id", ondelete="CASCADE"), nullable=False),
            sa.Column("tag_id", sa.Integer,
                      sa.ForeignKey("tags.id", ondelete="CASCADE"), nullable=False),
            sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
            sa.UniqueConstraint("round_turn_id", "tag_id", name="uq_round_turn_tags_pair"),
            sa.Index("idx_round_turn_tags_tag", "tag_id"),
        )

    if not _table_exists(conn, "rules"):
        op.create_table(
            "rules",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("content", sa.Text, nullable=False),
            sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        )

    if not _table_exists(conn, "sync_metadata"):
        op.create_table(
            "sync_metadata",
            sa.Column("key", sa.String, primary_key=True),
            sa.Column("value", sa.String),
            sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        )


def downgrade() -> None:
    op.drop_table("sync_metadata")
    op.drop_table("rules")
    op.drop_table("round_turn_tags")
    op.drop_table("tags")
    op.drop_table("tag_groups")
    op.drop_table("round_turns")
    op.drop_table("csv_trades")
    op.drop_table("broker_orders")
    op.drop_table("executions")
