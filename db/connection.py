"""
db/connection.py
----------------
Process-wide PostgreSQL pool and the scoped unit of work.

Repositories never hold a connection between calls: each operation borrows
one through `transaction()`, which commits, rolls back and returns it to the
pool on every exit path. The pool is a psycopg2 ThreadedConnectionPool so
calls dispatched with asyncio.to_thread can share it.

ThreadedConnectionPool.getconn fails outright once max_conn connections are
out, so borrowers first take a slot from a semaphore of the same size and
queue there until a connection comes back or their wait runs out.
"""

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg2
from psycopg2 import pool
from config import DATABASE_URL, DB_POOL_MAX, DB_POOL_MIN
from utils.logger import get_logger

logger = get_logger(__name__)

_pool: pool.ThreadedConnectionPool | None = None
_slots: threading.BoundedSemaphore | None = None


class PoolTimeoutError(pool.PoolError):
    """No pooled connection became free before the caller's wait ran out."""


def init_pool(min_conn: int = DB_POOL_MIN, max_conn: int = DB_POOL_MAX,
              dsn: str = DATABASE_URL) -> None:
    """
    Open the student database pool. A second call is a no-op.

    Args:
        min_conn: Connections opened up front.
        max_conn: Upper bound on concurrent borrowers.
        dsn: libpq connection string, DATABASE_URL unless overridden.

    Raises:
        psycopg2.OperationalError: The server refused or could not be reached.
    """
    global _pool, _slots
    if _pool is not None:
        return
    try:
        _pool = pool.ThreadedConnectionPool(min_conn, max_conn, dsn)
        _slots = threading.BoundedSemaphore(max_conn)
    except psycopg2.OperationalError as e:
        # the driver message can echo the DSN
        logger.error(f"Student database unreachable ({type(e).__name__})")
        raise
    logger.info(f"Student database pool ready ({min_conn}-{max_conn} connections)")


def get_connection(wait: Optional[float] = None):
    """
    Borrow a connection, queueing while all of them are checked out.

    Args:
        wait: Seconds to queue for a free connection. None or <= 0 waits
            until one is returned.

    Raises:
        RuntimeError: Before init_pool().
        PoolTimeoutError: If `wait` elapses with every connection still in use.
    """
    if _pool is None:
        raise RuntimeError("Student database pool is not open; call init_pool() first.")
    slots = _slots
    if slots is not None:
        acquired = slots.acquire(timeout=wait) if wait and wait > 0 else slots.acquire()
        if not acquired:
            logger.warning(f"No pooled connection freed up within {wait}s")
            raise PoolTimeoutError("Timed out waiting for a free database connection")
    try:
        return _pool.getconn()
    except BaseException:
        if slots is not None:
            slots.release()
        raise


def release_connection(conn) -> None:
    """Hand `conn` back and free its slot; ignored once the pool has been closed."""
    if _pool is None:
        return
    try:
        _pool.putconn(conn)
    finally:
        if _slots is not None:
            _slots.release()


def close_pool() -> None:
    global _pool, _slots
    if _pool is None:
        return
    _pool.closeall()
    _pool = None
    _slots = None
    logger.info("Student database pool closed")


def timeout_to_ms(timeout: Optional[float]) -> Optional[int]:
    """Seconds to a statement_timeout in milliseconds; None or <= 0 means no limit."""
    if timeout is None or timeout <= 0:
        return None
    return max(1, int(timeout * 1000))


@contextmanager
def transaction(timeout: Optional[float] = None,
                wait: Optional[float] = None) -> Iterator:
    """
    Run a block inside a single database transaction.

    Commits when the block exits normally. Any exception, including
    KeyboardInterrupt and asyncio.CancelledError, rolls the transaction back
    before it propagates. The connection always goes back to the pool.

    Args:
        timeout: Deadline in seconds applied as ``SET LOCAL statement_timeout``.
            None or 0 leaves the server default in place. Also bounds the
            queue for a free connection unless `wait` is given.
        wait: Seconds to queue for a free connection (see get_connection).

    Yields:
        The psycopg2 connection bound to the transaction.
    """
    conn = get_connection(timeout if wait is None else wait)
    try:
        timeout_ms = timeout_to_ms(timeout)
        if timeout_ms is not None:
            with conn.cursor() as cur:
                cur.execute("SET LOCAL statement_timeout = %s;", (timeout_ms,))
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        release_connection(conn)
