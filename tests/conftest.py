"""
Shared fixtures: a mocked psycopg2 pool/connection/cursor, so repository
code runs end to end without a database.
"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from db import connection
from models.student import Student
from repositories.student_repo import StudentRepository
from utils.logger import configure_logging

CREATED = datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def quiet_logging():
    # handlers bound to a captured stream outlive the test that created them
    configure_logging(enabled=False)
    yield
    configure_logging(enabled=False)


@pytest.fixture
def cursor():
    cur = MagicMock()
    cur.rowcount = 0
    cur.fetchone.return_value = None
    cur.fetchall.return_value = []
    return cur


@pytest.fixture
def conn(cursor):
    c = MagicMock()
    c.cursor.return_value.__enter__.return_value = cursor
    return c


@pytest.fixture
def pool(monkeypatch, conn):
    """Installs a fake pool in db.connection; getconn hands out `conn`."""
    p = MagicMock()
    p.getconn.return_value = conn
    monkeypatch.setattr(connection, "_pool", p)
    monkeypatch.setattr(connection, "_slots", None)
    return p


@pytest.fixture
def repo(pool):
    """Repository with no statement timeout, so only the query hits the cursor."""
    return StudentRepository(default_timeout=None)


def make_student(name="Ann Lee", age=20, department="CS", **kwargs) -> Student:
    kwargs.setdefault("email", f"{name.split()[0].lower()}@example.com")
    kwargs.setdefault("gpa", Decimal("3.80"))
    return Student(name=name, age=age, department=department, **kwargs)


def make_row(id=1, name="Ann Lee", age=20, department="CS", email="ann@example.com",
             phone_number=None, gpa=Decimal("3.80"), is_active=True) -> tuple:
    """A students row in STUDENT_COLUMNS order."""
    return (id, name, age, department, email, phone_number, CREATED,
            gpa, is_active, CREATED, CREATED)
