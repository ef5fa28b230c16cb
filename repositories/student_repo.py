"""
repositories/student_repo.py
-----------------------------
Data access layer for student records.
All SQL queries related to the `students` table live here.

Every query is parameterized. Every operation checks a connection out of
the pool and returns it before the method returns; no state is kept on the
repository between calls.
"""

import time
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

import psycopg2
from psycopg2 import errors as pg_errors

from config import DEFAULT_PAGE_SIZE, STATEMENT_TIMEOUT_SECONDS
from db.connection import (
    PoolTimeoutError,
    get_connection,
    release_connection,
    timeout_to_ms,
    transaction,
)
from models.statistics import DepartmentStatistics, StudentStatistics
from models.student import Student, utcnow
from repositories.exceptions import (
    ConflictError,
    InvalidArgumentError,
    RepositoryError,
    StorageError,
    StorageTimeoutError,
)
from utils.logger import get_logger

logger = get_logger(__name__)

# Column order used by every SELECT; _row_to_student reads rows in this order.
STUDENT_COLUMNS = (
    "id",
    "name",
    "age",
    "department",
    "email",
    "phone_number",
    "enrollment_date",
    "gpa",
    "is_active",
    "created_date",
    "modified_date",
)
_SELECT_LIST = ", ".join(STUDENT_COLUMNS)

_INSERT_SQL = """
    INSERT INTO students
        (name, age, department, email, phone_number, enrollment_date,
         gpa, is_active, created_date, modified_date)
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
    RETURNING id;
"""


def _translate(exc: BaseException, action: str,
               succeeded: Optional[int] = None) -> RepositoryError:
    """Map a driver/pool exception to the repository's error taxonomy."""
    if isinstance(exc, pg_errors.UniqueViolation):
        logger.warning(f"Duplicate email rejected while trying to {action}")
        return ConflictError(
            "A student with this email already exists", cause=exc, succeeded=succeeded
        )
    if isinstance(exc, (pg_errors.QueryCanceled, PoolTimeoutError)):
        logger.error(f"Timed out trying to {action}")
        return StorageTimeoutError(
            f"Timed out trying to {action}", cause=exc, succeeded=succeeded
        )
    logger.error(f"Failed to {action}: {type(exc).__name__}")
    return StorageError(f"Failed to {action}", cause=exc, succeeded=succeeded)


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    """Re-raise psycopg2 and pool failures as StorageError subclasses."""
    try:
        yield
    except RepositoryError:
        raise
    except (psycopg2.Error, RuntimeError) as e:
        raise _translate(e, action) from e


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _require_positive_id(student_id) -> None:
    if not _is_positive_int(student_id):
        raise InvalidArgumentError("Student ID must be positive")


def _validate(student: Optional[Student]) -> None:
    if student is None:
        raise InvalidArgumentError("Student is required")
    problems = student.validate()
    if problems:
        raise InvalidArgumentError(problems)


def _escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class StudentRepository:
    """Repository for CRUD, search and aggregate queries on the students table."""

    def __init__(self, default_timeout: Optional[float] = STATEMENT_TIMEOUT_SECONDS):
        self.default_timeout = default_timeout

    def _timeout(self, timeout: Optional[float]) -> Optional[float]:
        return self.default_timeout if timeout is None else timeout

    # ── CONNECTIVITY ──────────────────────────────────────

    def check_connection(self) -> bool:
        """
        Open and immediately release a pooled connection.

        Returns:
            True if the database answered, False on any failure. Never raises.
        """
        try:
            conn = get_connection(self.default_timeout)
        except Exception as e:
            logger.error(f"Database connection test failed: {type(e).__name__}")
            return False
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
            conn.rollback()
            logger.info("Database connection test successful")
            return True
        except Exception as e:
            logger.error(f"Database connection test failed: {type(e).__name__}")
            return False
        finally:
            release_connection(conn)

    # ── CREATE ────────────────────────────────────────────

    def add(self, student: Student, *, timeout: Optional[float] = None) -> int:
        """
        Insert a new student.

        created_date and modified_date are set to the operation time,
        whatever the caller put in them.

        Args:
            student: The Student to persist; its id and timestamps are populated on success.
            timeout: Deadline in seconds (defaults to STATEMENT_TIMEOUT_SECONDS).

        Returns:
            The new student ID.

        Raises:
            InvalidArgumentError: If any field rule is violated.
            ConflictError: If another student already has this email.
            StorageError: On any other database failure.
        """
        _validate(student)
        now = utcnow()
        with _storage_errors("add student"):
            with transaction(self._timeout(timeout)) as conn:
                with conn.cursor() as cur:
                    cur.execute(_INSERT_SQL, self._insert_params(student, now))
                    new_id = cur.fetchone()[0]

        student.id = new_id
        student.created_date = now
        student.modified_date = now
        logger.info(f"Added student #{new_id}: {student.name}")
        return new_id

    def bulk_insert(self, students: Iterable[Student], *,
                    timeout: Optional[float] = None) -> int:
        """
        Insert many students in one all-or-nothing transaction.

        Every record is validated before the transaction opens. If any record
        is invalid, or any insert fails, nothing is committed and the raised
        error's ``succeeded`` attribute holds how many records came before the
        failing one. The timeout is a deadline for the whole batch.

        Args:
            students: Records to insert. Populated with ids on success.
            timeout: Deadline in seconds for the whole batch.

        Returns:
            Number of inserted records (0 for an empty batch).

        Raises:
            InvalidArgumentError: If a record fails validation.
            StorageError: If an insert fails (ConflictError for duplicate
                emails, StorageTimeoutError when the deadline expires).
        """
        if students is None:
            raise InvalidArgumentError("Students are required")
        batch = list(students)
        if not batch:
            return 0

        for index, student in enumerate(batch):
            if student is None:
                problems = ["Student is required"]
            else:
                problems = student.validate()
            if problems:
                logger.error(f"Bulk insert rejected: record {index + 1} of {len(batch)} is invalid")
                raise InvalidArgumentError(
                    [f"Record {index + 1}: {p}" for p in problems], succeeded=index
                )

        timeout = self._timeout(timeout)
        deadline = time.monotonic() + timeout if timeout else None
        now = utcnow()
        new_ids: list[int] = []
        try:
            with transaction(wait=timeout) as conn:
                with conn.cursor() as cur:
                    for student in batch:
                        self._apply_deadline(cur, deadline)
                        cur.execute(_INSERT_SQL, self._insert_params(student, now))
                        new_ids.append(cur.fetchone()[0])
        except RepositoryError as e:
            e.succeeded = len(new_ids)
            logger.error(
                f"Bulk insert rolled back after {len(new_ids)} of {len(batch)} inserts"
            )
            raise
        except (psycopg2.Error, RuntimeError) as e:
            logger.error(
                f"Bulk insert rolled back after {len(new_ids)} of {len(batch)} inserts"
            )
            raise _translate(e, "bulk insert students", succeeded=len(new_ids)) from e

        for student, new_id in zip(batch, new_ids):
            student.id = new_id
            student.created_date = now
            student.modified_date = now
        logger.info(f"Bulk inserted {len(new_ids)} students")
        return len(new_ids)

    # ── READ ──────────────────────────────────────────────

    def get_all(self, include_inactive: bool = True, page: int = 1,
                page_size: int = DEFAULT_PAGE_SIZE,
                *, timeout: Optional[float] = None) -> list[Student]:
        """
        Fetch one page of students ordered by name.

        Rows are numbered over the filtered set and the window
        [(page-1)*page_size + 1, page*page_size] is returned.

        Args:
            include_inactive: If False, soft-deleted students are left out.
            page: 1-based page number.
            page_size: Records per page.
            timeout: Deadline in seconds.

        Raises:
            InvalidArgumentError: If page or page_size is not a positive integer.
        """
        problems = []
        if not _is_positive_int(page):
            problems.append("Page number must be positive")
        if not _is_positive_int(page_size):
            problems.append("Page size must be positive")
        if problems:
            raise InvalidArgumentError(problems)

        start_row = (page - 1) * page_size + 1
        end_row = page * page_size
        sql = f"""
            WITH student_pages AS (
                SELECT {_SELECT_LIST},
                       ROW_NUMBER() OVER (ORDER BY name, id) AS row_num
                FROM students
                WHERE (%s OR is_active = TRUE)
            )
            SELECT {_SELECT_LIST} FROM student_pages
            WHERE row_num BETWEEN %s AND %s
            ORDER BY row_num;
        """
        with _storage_errors("retrieve students"):
            with transaction(self._timeout(timeout)) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, (bool(include_inactive), start_row, end_row))
                    students = [self._row_to_student(r) for r in cur.fetchall()]

        logger.info(f"Retrieved {len(students)} students (page {page})")
        return students

    def count(self, include_inactive: bool = True, *,
              timeout: Optional[float] = None) -> int:
        """Number of students a listing with the same filter would page through."""
        sql = "SELECT COUNT(*) FROM students WHERE (%s OR is_active = TRUE);"
        with _storage_errors("count students"):
            with transaction(self._timeout(timeout)) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, (bool(include_inactive),))
                    return int(cur.fetchone()[0])

    def get_by_id(self, student_id: int, *,
                  timeout: Optional[float] = None) -> Optional[Student]:
        """
        Fetch a single student by ID, active or not.

        Returns:
            A Student, or None if no row has that ID.

        Raises:
            InvalidArgumentError: If student_id is not positive.
        """
        _require_positive_id(student_id)
        sql = f"SELECT {_SELECT_LIST} FROM students WHERE id = %s;"
        with _storage_errors(f"retrieve student #{student_id}"):
            with transaction(self._timeout(timeout)) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, (student_id,))
                    row = cur.fetchone()

        if row is None:
            logger.warning(f"Student #{student_id} not found")
            return None
        return self._row_to_student(row)

    def search(
        self,
        term: Optional[str] = None,
        department: Optional[str] = None,
        min_age: Optional[int] = None,
        max_age: Optional[int] = None,
        min_gpa=None,
        *,
        timeout: Optional[float] = None,
    ) -> list[Student]:
        """
        Search active students. Filters are combined with AND; omitted ones are ignored.

        Soft-deleted students are never returned, unlike get_all().

        Args:
            term: Case-insensitive substring of the name or the department.
            department: Exact department name.
            min_age: Minimum age (inclusive).
            max_age: Maximum age (inclusive).
            min_gpa: Minimum GPA (inclusive).

        Returns:
            Matching students ordered by name.
        """
        sql = f"SELECT {_SELECT_LIST} FROM students WHERE is_active = TRUE"
        params: list = []
        if term is not None and term.strip():
            pattern = f"%{_escape_like(term.strip())}%"
            sql += " AND (name ILIKE %s OR department ILIKE %s)"
            params.extend([pattern, pattern])
        if department:
            sql += " AND department = %s"
            params.append(department)
        if min_age is not None:
            sql += " AND age >= %s"
            params.append(min_age)
        if max_age is not None:
            sql += " AND age <= %s"
            params.append(max_age)
        if min_gpa is not None:
            sql += " AND gpa >= %s"
            params.append(min_gpa)
        sql += " ORDER BY name, id;"

        with _storage_errors("search students"):
            with transaction(self._timeout(timeout)) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    students = [self._row_to_student(r) for r in cur.fetchall()]

        logger.info(f"Search returned {len(students)} students")
        return students

    def statistics(self, *, timeout: Optional[float] = None) -> StudentStatistics:
        """
        Aggregate totals over ALL students, active and inactive.

        Returns:
            StudentStatistics; numeric fields are zero when the table is empty.
        """
        sql = """
            SELECT
                COUNT(*),
                COUNT(*) FILTER (WHERE is_active),
                COALESCE(AVG(age)::float8, 0),
                COALESCE(AVG(gpa)::float8, 0),
                COALESCE(MAX(gpa), 0),
                COALESCE(MIN(gpa), 0),
                COUNT(DISTINCT department)
            FROM students;
        """
        with _storage_errors("retrieve student statistics"):
            with transaction(self._timeout(timeout)) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql)
                    row = cur.fetchone()

        stats = StudentStatistics(
            total_students=int(row[0]),
            active_students=int(row[1]),
            average_age=float(row[2]),
            average_gpa=float(row[3]),
            highest_gpa=float(row[4]),
            lowest_gpa=float(row[5]),
            total_departments=int(row[6]),
        )
        logger.info("Retrieved student statistics")
        return stats

    def department_statistics(self, *,
                              timeout: Optional[float] = None) -> list[DepartmentStatistics]:
        """
        Per-department aggregates over ACTIVE students only.

        Returns:
            One entry per department, largest first.
        """
        sql = """
            SELECT
                department,
                COUNT(*) AS student_count,
                AVG(age)::float8,
                AVG(gpa)::float8,
                MAX(gpa),
                MIN(gpa)
            FROM students
            WHERE is_active = TRUE
            GROUP BY department
            ORDER BY student_count DESC, department;
        """
        with _storage_errors("retrieve department statistics"):
            with transaction(self._timeout(timeout)) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql)
                    rows = cur.fetchall()

        result = [
            DepartmentStatistics(
                department=r[0],
                student_count=int(r[1]),
                average_age=float(r[2]),
                average_gpa=float(r[3]),
                highest_gpa=float(r[4]),
                lowest_gpa=float(r[5]),
            )
            for r in rows
        ]
        logger.info(f"Retrieved statistics for {len(result)} departments")
        return result

    # ── UPDATE ────────────────────────────────────────────

    def update(self, student: Student, *, timeout: Optional[float] = None) -> bool:
        """
        Replace every mutable field of an existing student.

        is_active is written like any other field. created_date is never
        touched; modified_date is refreshed even if nothing changed.

        Returns:
            True if a row was updated, False if no student has that ID.

        Raises:
            InvalidArgumentError: If the ID is not positive or a field rule is violated.
            ConflictError: If the new email belongs to another student.
            StorageError: On any other database failure.
        """
        if student is None:
            raise InvalidArgumentError("Student is required")
        problems = [] if _is_positive_int(student.id) else ["Student ID must be positive"]
        problems.extend(student.validate())
        if problems:
            raise InvalidArgumentError(problems)

        sql = """
            UPDATE students
            SET name = %s, age = %s, department = %s, email = %s, phone_number = %s,
                enrollment_date = %s, gpa = %s, is_active = %s,
                modified_date = GREATEST(%s, created_date)
            WHERE id = %s
            RETURNING modified_date;
        """
        with _storage_errors(f"update student #{student.id}"):
            with transaction(self._timeout(timeout)) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, (
                        student.name.strip(), student.age, student.department.strip(),
                        student.email or None, student.phone_number or None,
                        student.enrollment_date, student.gpa, student.is_active,
                        utcnow(), student.id,
                    ))
                    row = cur.fetchone()

        if row is None:
            logger.warning(f"No student found with ID {student.id} for update")
            return False
        student.modified_date = row[0]
        logger.info(f"Updated student #{student.id}: {student.name}")
        return True

    # ── DELETE ────────────────────────────────────────────

    def soft_delete(self, student_id: int, *, timeout: Optional[float] = None) -> bool:
        """
        Mark an active student inactive.

        Returns:
            True if an active row was flipped; False if the ID does not exist
            or the student is already inactive.
        """
        _require_positive_id(student_id)
        sql = """
            UPDATE students
            SET is_active = FALSE, modified_date = GREATEST(%s, created_date)
            WHERE id = %s AND is_active = TRUE;
        """
        with _storage_errors(f"soft delete student #{student_id}"):
            with transaction(self._timeout(timeout)) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, (utcnow(), student_id))
                    flipped = cur.rowcount > 0

        if flipped:
            logger.info(f"Soft deleted student #{student_id}")
        else:
            logger.warning(f"No active student found with ID {student_id} for deletion")
        return flipped

    def delete(self, student_id: int, *, timeout: Optional[float] = None) -> bool:
        """
        Permanently remove a student, active or not.

        Returns:
            True if a row was deleted, False otherwise.
        """
        _require_positive_id(student_id)
        sql = "DELETE FROM students WHERE id = %s;"
        with _storage_errors(f"delete student #{student_id}"):
            with transaction(self._timeout(timeout)) as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, (student_id,))
                    deleted = cur.rowcount > 0

        if deleted:
            logger.info(f"Deleted student #{student_id}")
        else:
            logger.warning(f"No student found with ID {student_id} for deletion")
        return deleted

    # ── HELPERS ───────────────────────────────────────────

    @staticmethod
    def _apply_deadline(cur, deadline: Optional[float]) -> None:
        """Bound the next statement by what is left of the batch deadline."""
        if deadline is None:
            return
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise StorageTimeoutError("Timed out trying to bulk insert students")
        cur.execute("SET LOCAL statement_timeout = %s;", (timeout_to_ms(remaining),))

    @staticmethod
    def _insert_params(student: Student, now) -> tuple:
        """Insert parameters in _INSERT_SQL order. Empty email/phone are stored as NULL."""
        return (
            student.name.strip(),
            student.age,
            student.department.strip(),
            student.email or None,
            student.phone_number or None,
            student.enrollment_date,
            student.gpa,
            student.is_active,
            now,
            now,
        )

    @staticmethod
    def _row_to_student(row: tuple) -> Student:
        """Convert a row selected with STUDENT_COLUMNS into a Student."""
        return Student(
            id=row[0],
            name=row[1],
            age=row[2],
            department=row[3],
            email=row[4],
            phone_number=row[5],
            enrollment_date=row[6],
            gpa=row[7],
            is_active=row[8],
            created_date=row[9],
            modified_date=row[10],
        )
