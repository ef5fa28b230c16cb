"""
Tests for the pool helpers and the scoped transaction in db.connection.
"""

import asyncio
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import psycopg2
import psycopg2.errors
import pytest
from psycopg2.pool import PoolError

from db import connection
from db.connection import PoolTimeoutError, get_connection, timeout_to_ms, transaction
from db.init_db import SCHEMA_SQL, create_tables


def test_get_connection_requires_pool(monkeypatch):
    monkeypatch.setattr(connection, "_pool", None)
    with pytest.raises(RuntimeError):
        get_connection()


def test_release_without_pool_is_noop(monkeypatch, conn):
    monkeypatch.setattr(connection, "_pool", None)
    connection.release_connection(conn)


def test_close_pool_resets_state(pool):
    connection.close_pool()
    pool.closeall.assert_called_once()
    assert connection._pool is None


@pytest.mark.parametrize("timeout,expected", [
    (None, None), (0, None), (-1, None), (0.0001, 1), (1.5, 1500), (30, 30000),
])
def test_timeout_to_ms(timeout, expected):
    assert timeout_to_ms(timeout) == expected


def test_transaction_commits_and_releases(pool, conn, cursor):
    with transaction() as tx:
        assert tx is conn
    conn.commit.assert_called_once()
    conn.rollback.assert_not_called()
    pool.putconn.assert_called_once_with(conn)
    cursor.execute.assert_not_called()


def test_transaction_sets_local_statement_timeout(pool, cursor):
    with transaction(timeout=3):
        pass
    cursor.execute.assert_called_once_with("SET LOCAL statement_timeout = %s;", (3000,))


def test_transaction_rolls_back_on_error(pool, conn):
    with pytest.raises(ValueError):
        with transaction():
            raise ValueError("boom")
    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()
    pool.putconn.assert_called_once_with(conn)


@pytest.mark.parametrize("exc", [KeyboardInterrupt, asyncio.CancelledError])
def test_transaction_rolls_back_on_cancellation(pool, conn, exc):
    with pytest.raises(exc):
        with transaction():
            raise exc()
    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()
    pool.putconn.assert_called_once_with(conn)


def test_transaction_releases_when_commit_fails(pool, conn):
    conn.commit.side_effect = RuntimeError("commit failed")
    with pytest.raises(RuntimeError):
        with transaction():
            pass
    pool.putconn.assert_called_once_with(conn)


def test_init_pool_opens_once(monkeypatch):
    factory = MagicMock()
    monkeypatch.setattr(connection, "_pool", None)
    monkeypatch.setattr(connection, "_slots", None)
    monkeypatch.setattr(connection.pool, "ThreadedConnectionPool", factory)

    connection.init_pool(1, 3, "postgresql://example/db")
    connection.init_pool(1, 3, "postgresql://example/db")

    factory.assert_called_once_with(1, 3, "postgresql://example/db")
    assert connection._pool is factory.return_value


def test_init_pool_propagates_unreachable_server(monkeypatch):
    factory = MagicMock(side_effect=psycopg2.OperationalError("no route to host"))
    monkeypatch.setattr(connection, "_pool", None)
    monkeypatch.setattr(connection, "_slots", None)
    monkeypatch.setattr(connection.pool, "ThreadedConnectionPool", factory)

    with pytest.raises(psycopg2.OperationalError):
        connection.init_pool()
    assert connection._pool is None


def test_create_tables_runs_schema_in_transaction(pool, conn, cursor):
    create_tables()
    cursor.execute.assert_any_call(SCHEMA_SQL)
    conn.commit.assert_called_once()
    pool.putconn.assert_called_once_with(conn)


def test_create_tables_rolls_back_on_failure(pool, conn, cursor):
    cursor.execute.side_effect = psycopg2.errors.InsufficientPrivilege("permission denied")
    with pytest.raises(psycopg2.errors.InsufficientPrivilege):
        create_tables()
    conn.rollback.assert_called_once()
    pool.putconn.assert_called_once_with(conn)


class CappedPool:
    """Stand-in for ThreadedConnectionPool: getconn fails once `size` are out."""

    def __init__(self, size):
        self.size = size
        self.out = 0
        self.peak = 0
        self.lock = threading.Lock()

    def getconn(self):
        with self.lock:
            if self.out >= self.size:
                raise PoolError("connection pool exhausted")
            self.out += 1
            self.peak = max(self.peak, self.out)
        return MagicMock()

    def putconn(self, conn):
        with self.lock:
            self.out -= 1


def test_more_callers_than_connections_queue_for_a_slot(monkeypatch):
    capped = CappedPool(2)
    monkeypatch.setattr(connection, "_pool", capped)
    monkeypatch.setattr(connection, "_slots", threading.BoundedSemaphore(2))

    def work(n):
        with transaction(timeout=5):
            time.sleep(0.05)
        return n

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(executor.map(work, range(8)))

    assert results == list(range(8))
    assert capped.peak == 2
    assert capped.out == 0


def test_get_connection_gives_up_after_wait(monkeypatch, pool):
    slots = threading.BoundedSemaphore(1)
    slots.acquire()
    monkeypatch.setattr(connection, "_slots", slots)

    with pytest.raises(PoolTimeoutError):
        get_connection(wait=0.05)
    pool.getconn.assert_not_called()


def test_failed_getconn_frees_its_slot(monkeypatch, pool):
    slots = threading.BoundedSemaphore(1)
    monkeypatch.setattr(connection, "_slots", slots)
    pool.getconn.side_effect = psycopg2.OperationalError("server closed the connection")

    with pytest.raises(psycopg2.OperationalError):
        get_connection(wait=0.05)
    assert slots.acquire(timeout=0.05)
