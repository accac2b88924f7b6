"""SQLite storage for URL mappings.

All request-scoped calls take a :class:`Deadline`. The connection handed to
a call is armed with it: waiting for a free connection is capped by what is
left of the budget, a progress handler interrupts running statements once
the deadline passes and the busy timeout never exceeds the remaining time,
so a slow, saturated or locked database fails the request instead of
stalling it.
"""

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    Table,
    Text,
    create_engine,
    exists,
    func,
    insert,
    select,
)
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import QueuePool

from shortener.errors import DeadlineExceeded, DuplicateCodeError, StorageError

logger = logging.getLogger(__name__)

# SQLite VM instructions between two deadline checks.
PROGRESS_INTERVAL = 1000

metadata = MetaData()

urls = Table(
    "urls",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("short_code", Text, unique=True, nullable=False),
    Column("long_url", Text, nullable=False),
    sqlite_autoincrement=True,
)


class Deadline:
    """Time budget shared by every storage call of one request."""

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self.clock = clock
        self.expires_at = clock() + timeout

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self.expires_at - self.clock())

    def expired(self) -> bool:
        """True once the budget is spent."""
        return self.clock() >= self.expires_at

    def check(self) -> None:
        """Raise DeadlineExceeded if the budget is spent."""
        if self.expired():
            raise DeadlineExceeded(f"deadline of {self.timeout}s exceeded")


def _is_unique_violation(exc: IntegrityError) -> bool:
    return "UNIQUE constraint failed" in str(exc.orig)


class UrlStore:
    """Bounded pool of SQLite connections plus the queries the service needs.

    Callers queue for one of max_connections slots; a request waits at most
    until its deadline, other callers at most pool_timeout seconds.

    Args:
        db_path: SQLite file location
        max_connections: Pool size; there is no overflow
        pool_timeout: Seconds a caller without a deadline may wait for a slot
    """

    def __init__(self, db_path: str, max_connections: int = 10, pool_timeout: float = 5.0):
        self.db_path = db_path
        self.pool_timeout = pool_timeout
        self.slots = threading.BoundedSemaphore(max_connections)
        self.engine = create_engine(
            f"sqlite:///{db_path}",
            poolclass=QueuePool,
            pool_size=max_connections,
            max_overflow=0,
            pool_timeout=pool_timeout,
            connect_args={"check_same_thread": False},
        )

    def create_schema(self) -> None:
        """Create the urls table if it is missing."""
        try:
            metadata.create_all(self.engine, checkfirst=True)
        except SQLAlchemyError as exc:
            raise StorageError(f"cannot create schema in {self.db_path}: {exc}") from exc

    @contextmanager
    def connection(self, deadline: Deadline, transaction: bool = False) -> Iterator[Connection]:
        """Check out a connection armed with deadline.

        With transaction set, the block commits on exit unless it raised or
        the deadline passed meanwhile.
        """
        deadline.check()
        if not self.slots.acquire(timeout=deadline.remaining()):
            raise DeadlineExceeded(
                f"deadline of {deadline.timeout}s exceeded waiting for a connection"
            )
        try:
            with (self.engine.begin() if transaction else self.engine.connect()) as conn:
                raw = conn.connection.dbapi_connection
                try:
                    raw.set_progress_handler(deadline.expired, PROGRESS_INTERVAL)
                    raw.execute(f"PRAGMA busy_timeout = {max(1, int(deadline.remaining() * 1000))}")
                    yield conn
                    if transaction:
                        # Leaving the block commits; an expired deadline must roll back.
                        deadline.check()
                finally:
                    raw.set_progress_handler(None, 0)
        except IntegrityError as exc:
            if _is_unique_violation(exc):
                raise DuplicateCodeError(str(exc.orig)) from exc
            raise StorageError(str(exc)) from exc
        except (SQLAlchemyError, sqlite3.Error) as exc:
            if deadline.expired():
                raise DeadlineExceeded(f"deadline of {deadline.timeout}s exceeded: {exc}") from exc
            raise StorageError(str(exc)) from exc
        finally:
            self.slots.release()

    def code_exists(self, code: str, deadline: Deadline) -> bool:
        """Check whether a short code is already stored."""
        with self.connection(deadline) as conn:
            query = select(exists().where(urls.c.short_code == code))
            return bool(conn.execute(query).scalar())

    def insert(self, code: str, long_url: str, deadline: Deadline) -> int:
        """Store a new mapping and return its row id.

        Raises:
            DuplicateCodeError: the code was stored concurrently
            DeadlineExceeded: the budget ran out; nothing was committed
            StorageError: any other database failure
        """
        with self.connection(deadline, transaction=True) as conn:
            result = conn.execute(insert(urls).values(short_code=code, long_url=long_url))
            row_id = result.inserted_primary_key[0]
        logger.debug(f"Stored {code} as row {row_id}")
        return row_id

    def count(self) -> int:
        """Number of stored mappings."""
        with self.connection(Deadline(self.pool_timeout)) as conn:
            return conn.execute(select(func.count()).select_from(urls)).scalar_one()

    def dispose(self) -> None:
        """Close every pooled connection."""
        self.engine.dispose()
