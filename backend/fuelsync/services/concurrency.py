# Overview: Row locking and transaction helpers shared by the ledger services.

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import ConcurrentUpdateError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    takes the database write lock there instead.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Take the write lock up front on SQLite so two writers cannot both read
    the same meter value before either commits.

    No-op on other dialects (they honor FOR UPDATE) or when the session
    already has a transaction in progress.
    """
    if db.engine.dialect.name != "sqlite":
        return
    # scoped_session does not proxy in_transaction(); ask the session itself
    if db.session().in_transaction():
        return
    db.session.execute(text("BEGIN IMMEDIATE"))


def run_in_transaction(func):
    """
    Run one write operation as a single transaction, with no retry.

    Any exception rolls the session back. Lock timeouts and version conflicts
    surface as ConcurrentUpdateError (409); the caller retries the whole
    request.
    """
    try:
        return func()
    except (OperationalError, StaleDataError) as exc:
        db.session.rollback()
        raise ConcurrentUpdateError(
            "Concurrent update in progress; retry the request",
            details={"cause": exc.__class__.__name__},
        ) from exc
    except Exception:
        db.session.rollback()
        raise

