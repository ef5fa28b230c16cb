"""
main.py
-------
Command-line entry point for the student records manager.

Responsibilities:
    - Initialize the database connection pool (and schema on demand).
    - Dispatch one command against the student repository.
    - Close the pool on exit.

Examples:
    python main.py init-db
    python main.py list --page 2 --active-only
    python main.py search --term math --min-gpa 3.0
    python main.py add "Ann Lee" 20 CS --email ann@example.com --gpa 3.8
    python main.py update 7 "Ann Lee" 21 Math --inactive
    python main.py export students.xlsx
"""

import argparse
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

from config import DEFAULT_PAGE_SIZE
from db.connection import close_pool, init_pool
from db.init_db import create_tables
from models.page import PageRequest
from models.student import Student
from repositories.exceptions import InvalidArgumentError, RepositoryError
from repositories.student_repo import StudentRepository
from services.chart_service import ChartService
from services.export_service import ExportService
from services.student_service import StudentService
from utils.logger import get_logger

logger = get_logger(__name__)


def _print_students(students) -> None:
    if not students:
        print("No students found.")
        return
    for s in students:
        status = "" if s.is_active else " [inactive]"
        print(f"#{s.id:<6} {s.name:<30} {s.age:>3}  {s.department:<20} {s.gpa}{status}")


def _gpa(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"'{value}' is not a number") from None


def _add_record_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument("name")
    p.add_argument("age", type=int)
    p.add_argument("department")
    p.add_argument("--email", help="Pass an empty string to clear it")
    p.add_argument("--phone", dest="phone_number")
    p.add_argument("--gpa", type=_gpa)


def _print_validation_errors(errors: list[str]) -> None:
    print("Please correct the following errors:", file=sys.stderr)
    for error in errors:
        print(f"  - {error}", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="student-records", description="Student records manager")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the students table if missing")
    sub.add_parser("check", help="Test the database connection")

    p = sub.add_parser("list", help="List one page of students ordered by name")
    p.add_argument("--page", type=int, default=1)
    p.add_argument("--page-size", type=int, default=DEFAULT_PAGE_SIZE)
    p.add_argument("--active-only", action="store_true")

    p = sub.add_parser("search", help="Search active students")
    p.add_argument("--term")
    p.add_argument("--department")
    p.add_argument("--min-age", type=int)
    p.add_argument("--max-age", type=int)
    p.add_argument("--min-gpa", type=_gpa)

    p = sub.add_parser("add", help="Add one student")
    _add_record_arguments(p)

    p = sub.add_parser("update", help="Replace one student's details")
    p.add_argument("id", type=int)
    _add_record_arguments(p)
    status = p.add_mutually_exclusive_group()
    status.add_argument("--active", dest="is_active", action="store_const", const=True)
    status.add_argument("--inactive", dest="is_active", action="store_const", const=False)

    p = sub.add_parser("show", help="Show one student")
    p.add_argument("id", type=int)

    sub.add_parser("stats", help="Overall and per-department statistics")

    p = sub.add_parser("soft-delete", help="Mark a student inactive")
    p.add_argument("id", type=int)

    p = sub.add_parser("delete", help="Permanently delete a student")
    p.add_argument("id", type=int)

    p = sub.add_parser("export", help="Export students to .csv or .xlsx")
    p.add_argument("path", type=Path)
    p.add_argument("--active-only", action="store_true")

    p = sub.add_parser("import", help="Import students from .csv or .xlsx (all or nothing)")
    p.add_argument("path", type=Path)

    p = sub.add_parser("chart", help="Render a statistics chart as PNG")
    p.add_argument("kind", choices=["age", "grade"])
    p.add_argument("path", type=Path)

    return parser


def run(args: argparse.Namespace) -> int:
    """Execute one parsed command. Returns the process exit code."""
    repo = StudentRepository()
    service = StudentService(repo)

    if args.command == "init-db":
        create_tables()
        print("Database schema created successfully.")
    elif args.command == "check":
        ok = repo.check_connection()
        print("Connection OK" if ok else "Connection failed")
        return 0 if ok else 1
    elif args.command == "list":
        request = PageRequest(args.page, args.page_size, not args.active_only)
        _print_students(service.list_page(request))
        print(f"Page {request.page}")
    elif args.command == "search":
        _print_students(repo.search(
            args.term, args.department, args.min_age, args.max_age, args.min_gpa
        ))
    elif args.command == "add":
        student = Student(
            name=args.name,
            age=args.age,
            department=args.department,
            email=args.email or None,
            phone_number=args.phone_number or None,
            gpa=args.gpa if args.gpa is not None else Decimal("0.00"),
        )
        new_id = repo.add(student)
        print(f"Student #{new_id} added.")
    elif args.command == "update":
        current = repo.get_by_id(args.id)
        if current is None:
            print(f"Student #{args.id} not found.")
            return 1
        student = current.copy()
        student.name = args.name
        student.age = args.age
        student.department = args.department
        if args.email is not None:
            student.email = args.email or None
        if args.phone_number is not None:
            student.phone_number = args.phone_number or None
        if args.gpa is not None:
            student.gpa = args.gpa
        if args.is_active is not None:
            student.is_active = args.is_active
        if not repo.update(student):
            print(f"Student #{args.id} not found.")
            return 1
        print(f"Student #{args.id} updated.")
    elif args.command == "show":
        print(service.describe(args.id))
    elif args.command == "stats":
        print(service.statistics_report())
    elif args.command == "soft-delete":
        if not repo.soft_delete(args.id):
            print(f"No active student #{args.id}.")
            return 1
        print(f"Student #{args.id} marked inactive.")
    elif args.command == "delete":
        if not repo.delete(args.id):
            print(f"Student #{args.id} not found.")
            return 1
        print(f"Student #{args.id} deleted.")
    elif args.command == "export":
        exporter = ExportService(repo)
        if args.path.suffix.lower() == ".xlsx":
            buffer = exporter.export_excel(include_inactive=not args.active_only)
        else:
            buffer = exporter.export_csv(include_inactive=not args.active_only)
        args.path.write_bytes(buffer.getvalue())
        print(f"Data exported successfully to {args.path}")
    elif args.command == "import":
        importer = ExportService(repo)
        content = args.path.read_bytes()
        if args.path.suffix.lower() == ".xlsx":
            count = importer.import_excel(content)
        else:
            count = importer.import_csv(content)
        print(f"Imported {count} students.")
    elif args.command == "chart":
        charts = ChartService(repo)
        buffer = charts.generate_age_pie() if args.kind == "age" else charts.generate_grade_bar()
        if buffer is None:
            print("No active students to chart.")
            return 1
        args.path.write_bytes(buffer.getvalue())
        print(f"Chart written to {args.path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        init_pool()
    except Exception as e:
        logger.error(f"Cannot start: {type(e).__name__}")
        print("Unable to connect to the database. Please check your connection settings.",
              file=sys.stderr)
        return 2
    try:
        return run(args)
    except InvalidArgumentError as e:
        _print_validation_errors(e.errors)
        return 1
    except RepositoryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        close_pool()


if __name__ == "__main__":
    sys.exit(main())
