"""
Alembic environment for FuturesLedger.

- DATABASE_URL wins, then sqlalchemy.url from alembic.ini, then the
  engine module's SQLite default
- SQLite runs in batch mode so ALTER TABLE migrations work
- Base.metadata from src.database.models backs autogenerate
"""

import os
from logging.config import fileConfig

from sqlalchemy import create_engine, pool
from sqlalchemy.types import Boolean, DateTime, Float, Integer, String

from alembic import context

from src.database.engine import DEFAULT_DATABASE_URL
from src.database.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

_db_url = (
    os.environ.get("DATABASE_URL")
    or config.get_main_option("sqlalchemy.url")
    or DEFAULT_DATABASE_URL
)
_is_sqlite = _db_url.startswith("sqlite")

# Reflected SQLite affinities that match the declared model types.
_SQLITE_AFFINITIES = (
    ("TEXT", String),
    ("VARCHAR", String),
    ("REAL", Float),
    ("FLOAT", Float),
    ("DATETIME", DateTime),
    ("TIMESTAMP", DateTime),
    ("BOOLEAN", Boolean),
    ("INTEGER", Integer),
)


def _compare_type(context, inspected_column, metadata_column, inspected_type, metadata_type):
    """False when only the SQLite spelling of a type differs; None defers to Alembic."""
    reflected = type(inspected_type).__name__.upper()
    for affinity, sa_type in _SQLITE_AFFINITIES:
        if reflected == affinity and isinstance(metadata_type, sa_type):
            return False
    return None


def _configure_kwargs() -> dict:
    return {
        "target_metadata": target_metadata,
        "render_as_batch": _is_sqlite,
        "compare_type": _compare_type if _is_sqlite else True,
    }


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of connecting."""
    context.configure(
        url=_db_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connect_args = {"check_same_thread": False} if _is_sqlite else {}
    connectable = create_engine(_db_url, poolclass=pool.NullPool, connect_args=connect_args)

    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs())
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
