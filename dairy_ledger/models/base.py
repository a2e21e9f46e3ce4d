"""
Database engine, session management, and base model.

This module is the foundation for all database operations.
Every model inherits from Base. Every request gets a session
from get_db() and a UnitOfWork that owns its transaction.
"""

import logging
import time
from contextlib import contextmanager

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session
from sqlalchemy.orm.exc import StaleDataError

from dairy_ledger.config import get_settings
from dairy_ledger.exceptions import ConcurrencyError

logger = logging.getLogger(__name__)

settings = get_settings()

# SQLSTATEs PostgreSQL reports when a transaction lost a race:
# serialization failure, deadlock, lock not available
CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}

# SQLite reports lock contention only through the message
SQLITE_LOCK_MESSAGES = ("database is locked", "database table is locked")


def is_conflict(error: Exception) -> bool:
    """
    True when a database error means "someone else won the race".

    Only these are worth retrying. Constraint violations, missing
    tables and lost connections are real failures.
    """
    if isinstance(error, StaleDataError):
        return True
    if not isinstance(error, DBAPIError):
        return False

    orig = error.orig
    if getattr(orig, "pgcode", None) in CONFLICT_SQLSTATES:
        return True
    message = str(orig).lower()
    return any(text in message for text in SQLITE_LOCK_MESSAGES)


def serialize_sqlite_writers(engine) -> None:
    """
    Make every SQLite transaction take the write lock up front.

    pysqlite starts transactions lazily, so two sessions that both
    read and then write can deadlock on the lock upgrade. With
    BEGIN IMMEDIATE the second writer waits on the busy timeout.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_engine(url: str):
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.SQLITE_BUSY_TIMEOUT,
            },
        )
        serialize_sqlite_writers(engine)
        return engine

    # pool_pre_ping=True tests connections before using them,
    # which handles cases where the database restarted or a
    # connection went stale.
    return create_engine(url, pool_pre_ping=True)


# --- Engine ---
engine = make_engine(settings.DATABASE_URL)

# --- Session Factory ---
# autocommit=False means we explicitly control when changes
# are saved. All-or-nothing behavior is the whole point of
# a voucher posting.
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


# --- Base Model Class ---
class Base(DeclarativeBase):
    pass


# --- Dependency for FastAPI ---
def get_db():
    """
    Provide a database session for a single request.

    The try/finally pattern ensures the session is always
    closed, preventing connection leaks.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class UnitOfWork:
    """
    Transaction boundary around one Session.

    Services receive the unit of work instead of committing
    themselves. ``atomic()`` blocks nest: only the outermost
    one commits, so a bank-transfer apply, the voucher it
    creates and the ledger posting underneath all land in a
    single commit or a single rollback.
    """

    def __init__(
        self,
        session: Session,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
    ):
        self.session = session
        self.max_attempts = max_attempts or settings.MAX_TRANSACTION_RETRIES
        self.backoff_seconds = (
            settings.RETRY_BACKOFF_SECONDS
            if backoff_seconds is None else backoff_seconds
        )
        self._depth = 0

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def atomic(self):
        """
        Run the block inside the current transaction, or open one.

        The outermost block commits on success. Any exception rolls
        back everything done since it was entered. Write conflicts
        reported by the database come out as ConcurrencyError.
        """
        if self._depth:
            self._depth += 1
            try:
                yield self.session
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield self.session
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            if is_conflict(e):
                raise ConcurrencyError(
                    f"Concurrent update conflict: {type(e).__name__}"
                ) from e
            raise
        except BaseException:
            self.session.rollback()
            raise
        finally:
            self._depth = 0

    def run(self, operation, *args, **kwargs):
        """
        Call operation atomically, retrying on ConcurrencyError.

        Each retry starts from a rolled-back session, so the
        operation re-reads everything it depends on.
        """
        if self._depth:
            # Already inside a transaction owned by the caller
            return operation(*args, **kwargs)

        for attempt in range(1, self.max_attempts + 1):
            try:
                with self.atomic():
                    return operation(*args, **kwargs)
            except ConcurrencyError:
                if attempt >= self.max_attempts:
                    raise
                logger.warning(
                    "Retrying after concurrency conflict",
                    extra={
                        "operation": getattr(
                            operation, "__qualname__", repr(operation)
                        ),
                        "attempt": attempt,
                    },
                )
                time.sleep(self.backoff_seconds * attempt)


def get_uow(db: Session = Depends(get_db)) -> UnitOfWork:
    """Provide the request's UnitOfWork, bound to its session."""
    return UnitOfWork(db)
