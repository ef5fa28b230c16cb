"""
db/init_db.py
-------------
DDL for the students table and its indexes.

Age and GPA ranges repeat the bounds in Student.validate(). The
table-level check keeps created_date at or before modified_date.
Idempotent: `python -m db.init_db` (or the CLI's ``init-db`` command)
can run against an existing database.
"""

from db.connection import transaction
from utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
-- Students table: one row per student record, soft-deleted rows keep is_active = FALSE
CREATE TABLE IF NOT EXISTS students (
    id              SERIAL PRIMARY KEY,
    name            VARCHAR(100) NOT NULL,
    age             INT NOT NULL CHECK (age BETWEEN 16 AND 100),
    department      VARCHAR(50) NOT NULL,
    email           VARCHAR(150) UNIQUE,
    phone_number    VARCHAR(15),
    enrollment_date TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    gpa             NUMERIC(3,2) NOT NULL DEFAULT 0.00 CHECK (gpa BETWEEN 0.00 AND 4.00),
    is_active       BOOLEAN NOT NULL DEFAULT TRUE,
    created_date    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    modified_date   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (created_date <= modified_date)
);

-- Indexes for listing, search and statistics
CREATE INDEX IF NOT EXISTS idx_students_name ON students(name);
CREATE INDEX IF NOT EXISTS idx_students_department ON students(department);
CREATE INDEX IF NOT EXISTS idx_students_is_active ON students(is_active);
CREATE INDEX IF NOT EXISTS idx_students_enrollment_date ON students(enrollment_date);
"""


def create_tables() -> None:
    """Create the students table and indexes if they are missing."""
    try:
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
    except Exception as e:
        logger.error(f"Could not create the students schema ({type(e).__name__})")
        raise
    logger.info("Students schema is in place")


if __name__ == "__main__":
    from db.connection import close_pool, init_pool

    init_pool()
    try:
        create_tables()
    finally:
        close_pool()
    print("Database schema created successfully.")
