"""
Engine and session plumbing for the FuturesLedger store.

One engine per process, bound by init_engine() and replaced wholesale when
it is called again (each DatabaseManager does so on initialization).  The
backend follows the URL: anything starting with "postgres" gets a pooled
PostgreSQL engine, everything else is treated as a SQLite file.
"""

import logging
import os
from contextlib import contextmanager
from typing import Callable, Optional, Tuple

from sqlalchemy import create_engine, event
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src.database.models import Base

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///futures_ledger.db"

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None
_dialect: Optional[str] = None
_insert_func: Optional[Callable] = None


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    # round_turn_tags relies on ON DELETE CASCADE
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _sqlite_engine(db_url: str) -> Tuple[Engine, Callable]:
    engine = create_engine(db_url, echo=False, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine, sqlite.insert


def _postgres_engine(db_url: str) -> Tuple[Engine, Callable]:
    engine = create_engine(db_url, echo=False, pool_size=5, max_overflow=10, pool_pre_ping=True)
    return engine, postgresql.insert


def _redact(db_url: str) -> str:
    return db_url.split("@")[-1] if "@" in db_url else db_url


def init_engine(db_url: Optional[str] = None, create_tables: bool = True) -> Engine:
    """Bind the process-wide engine, disposing of any previous one.

    Args:
        db_url: SQLAlchemy URL.  None means DATABASE_URL, then the local
                SQLite default.
        create_tables: create_all() on the bound engine.  Deployments that
                       run alembic pass False.
    """
    global _engine, _SessionFactory, _dialect, _insert_func

    db_url = db_url or os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL

    if _engine is not None:
        _engine.dispose()

    if db_url.startswith("postgres"):
        _dialect = "postgresql"
        _engine, _insert_func = _postgres_engine(db_url)
    else:
        _dialect = "sqlite"
        _engine, _insert_func = _sqlite_engine(db_url)

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    if create_tables:
        Base.metadata.create_all(_engine)

    logger.info("Database engine bound (%s): %s", _dialect, _redact(db_url))
    return _engine


def _require(value, name: str):
    if value is None:
        raise RuntimeError(f"{name} unavailable: init_engine() has not been called")
    return value


def get_dialect() -> str:
    """'sqlite' or 'postgresql'."""
    return _require(_dialect, "Dialect")


def dialect_insert(model):
    """insert() for the bound backend.

    Both the SQLite and PostgreSQL variants offer on_conflict_do_update()
    and on_conflict_do_nothing() with the same keywords.
    """
    return _require(_insert_func, "Insert construct")(model)


@contextmanager
def get_session():
    """Yield a Session; commit on clean exit, roll back and re-raise otherwise."""
    session: Session = _require(_SessionFactory, "Session factory")()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
