"""
Engine, sessions and single-writer sections for the ledger.

One engine per process. Services open a unit of work with ``get_session``;
anything that allocates fiscal numbers or enforces the single open drawer
goes through ``exclusive_session`` instead.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, MetaData, create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from pos_core.config import AppConfig

logger = logging.getLogger(__name__)

SLOW_QUERY_SECONDS = 1.0

_engine: Engine | None = None
_sessions: scoped_session | None = None

# Named single-writer sections. Each one wraps a full read-write-commit cycle
# for a contended resource (the fiscal counter, the "one open drawer" check).
_EXCLUSIVE_SECTIONS: dict[str, threading.RLock] = {
    "fiscal_ledger": threading.RLock(),
    "cash_drawer": threading.RLock(),
}


def _engine_options(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # In-memory databases only exist on one connection; share it across threads.
        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20, "pool_recycle": 3600}


def _watch_slow_queries(engine: Engine) -> None:
    @event.listens_for(engine, "before_cursor_execute")
    def _start(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("ledger_query_started", []).append(time.perf_counter())

    @event.listens_for(engine, "after_cursor_execute")
    def _finish(conn, cursor, statement, parameters, context, executemany):
        elapsed = time.perf_counter() - conn.info["ledger_query_started"].pop()
        if elapsed > SLOW_QUERY_SECONDS:
            logger.warning("Slow ledger query (%.2fs): %s", elapsed, statement[:200])


def init_engine(config: AppConfig) -> Engine:
    """
    Create the process-wide engine on first call; later calls return it.

    ``DATABASE_URL`` wins over the individual POSTGRES_* settings.
    """
    global _engine, _sessions

    if _engine is None:
        url = os.getenv("DATABASE_URL") or config.sqlalchemy_uri
        _engine = create_engine(url, **_engine_options(url))
        _watch_slow_queries(_engine)
        _sessions = scoped_session(
            sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
        )

    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Ledger database not initialized; call init_engine() first")
    return _engine


def init_db(metadata: MetaData) -> None:
    """Create any missing ledger tables."""
    try:
        metadata.create_all(get_engine())
    except OperationalError as exc:
        logger.warning("Ledger schema not fully created: %s", exc)
    else:
        logger.info("Ledger schema ready")


@contextmanager
def get_session() -> Iterator[Session]:
    """
    Unit of work: commit on normal exit, roll back on any exception.

    The thread's session is discarded afterwards, so nothing leaks from one
    operation into the next.
    """
    if _sessions is None:
        raise RuntimeError("Ledger database not initialized; call init_engine() first")

    session: Session = _sessions()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        _sessions.remove()


@contextmanager
def exclusive(section: str) -> Iterator[None]:
    """
    Serialize callers of a named section within this process.

    Cross-process exclusion comes from row locks and unique constraints
    taken inside the transaction; this lock keeps threads of one worker
    from interleaving their read-compute-write cycles.
    """
    try:
        lock = _EXCLUSIVE_SECTIONS[section]
    except KeyError:
        raise ValueError(f"Unknown exclusive section '{section}'") from None

    with lock:
        yield


@contextmanager
def exclusive_session(section: str) -> Iterator[Session]:
    """Transactional scope that commits before the named section is released."""
    with exclusive(section):
        with get_session() as session:
            yield session
