# Overview: Service-layer operations for concurrency; units of work, timeouts and retry.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import LedgerError, TransactionFailure, UnitOfWorkTimeout
from ..extensions import db


class UnitOfWork:
    """Handle for one atomic group of store operations."""

    def __init__(self, session, timeout: float | None):
        self.session = session
        self.timeout = timeout
        self.deadline = time.monotonic() + timeout if timeout else None

    def checkpoint(self) -> None:
        """Abort (and so roll back) once the deadline has passed."""
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise UnitOfWorkTimeout(
                "Unit of work timed out",
                details={"timeout_seconds": self.timeout},
            )


def _default_timeout() -> float | None:
    value = current_app.config.get("UNIT_OF_WORK_TIMEOUT", 0)
    return float(value) if value else None


def _begin(session, *, timeout: float | None, read_only: bool) -> None:
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        # Writers take the write lock up front so they queue on the busy
        # timeout instead of failing on lock upgrade; readers get a snapshot.
        session.execute(text("BEGIN" if read_only else "BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        if read_only:
            session.execute(text("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ READ ONLY"))
        if timeout:
            session.execute(text(f"SET LOCAL statement_timeout = {int(timeout * 1000)}"))


@contextmanager
def unit_of_work(*, timeout: float | None = None, read_only: bool = False):
    """
    Run a block as one atomic unit of work on the scoped session.

    Commits when the block exits normally. Any exception rolls back every
    write made inside the block and is re-raised; database errors are
    re-raised as TransactionFailure.
    """
    # The Session behind the scoped proxy; the proxy lacks in_transaction()
    session = db.session()
    if session.new or session.dirty or session.deleted:
        raise TransactionFailure("Unit of work started with pending changes")
    if session.in_transaction():
        # Only reads are open here; end them so the unit starts clean
        session.rollback()

    if timeout is None:
        timeout = _default_timeout()
    uow = UnitOfWork(session, timeout)

    try:
        _begin(session, timeout=timeout, read_only=read_only)
        yield uow
        uow.checkpoint()
        session.commit()
    except LedgerError:
        session.rollback()
        raise
    except (OperationalError, StaleDataError):
        # Left as-is so run_with_retry can rerun the whole unit
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        raise TransactionFailure(
            "Transaction rolled back",
            details={"reason": exc.__class__.__name__},
        ) from exc
    except BaseException:
        session.rollback()
        raise


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks, statement timeouts) and
    StaleDataError. func must open its own unit of work so each attempt
    starts from a clean transaction. The final failure is raised as
    TransactionFailure.
    """
    if attempts is None:
        attempts = max(1, int(current_app.config.get("UNIT_OF_WORK_RETRIES", 3)))
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise TransactionFailure(
                    "Transaction rolled back after retries",
                    details={"reason": exc.__class__.__name__, "attempts": attempts},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
