"""
services/export_service.py
---------------------------
CSV and Excel export of student records, and import of the same
formats through the repository's all-or-nothing bulk insert.
"""

import io
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

import pandas as pd

from models.student import Student
from repositories.exceptions import InvalidArgumentError
from repositories.student_repo import StudentRepository
from services.student_service import StudentService
from utils.logger import get_logger

logger = get_logger(__name__)

EXPORT_COLUMNS = [
    "Id", "Name", "Age", "Age Group", "Department", "Email", "Phone",
    "Enrollment Date", "GPA", "Grade", "Active", "Created", "Modified",
]

# Accepted import headers (lower-cased) -> Student field
_IMPORT_HEADERS = {
    "name": "name",
    "age": "age",
    "department": "department",
    "email": "email",
    "phone": "phone_number",
    "phone number": "phone_number",
    "enrollment date": "enrollment_date",
    "gpa": "gpa",
    "active": "is_active",
}
_REQUIRED_HEADERS = ("name", "age", "department")
_TRUE_VALUES = {"1", "true", "yes", "y", "active"}


def _fmt_dt(value: Optional[datetime]) -> str:
    return value.isoformat(timespec="seconds") if value else ""


class ExportService:
    """Generates downloadable student reports and loads student files."""

    def __init__(self, repo: Optional[StudentRepository] = None):
        self.repo = repo or StudentRepository()
        self.students = StudentService(self.repo)

    # ── EXPORT ────────────────────────────────────────────

    def _frame(self, include_inactive: bool) -> pd.DataFrame:
        data = [
            {
                "Id": s.id,
                "Name": s.name,
                "Age": s.age,
                "Age Group": s.age_group(),
                "Department": s.department,
                "Email": s.email or "",
                "Phone": s.phone_number or "",
                "Enrollment Date": _fmt_dt(s.enrollment_date),
                "GPA": float(s.gpa),
                "Grade": s.letter_grade(),
                "Active": s.is_active,
                "Created": _fmt_dt(s.created_date),
                "Modified": _fmt_dt(s.modified_date),
            }
            for s in self.students.iter_all(include_inactive=include_inactive)
        ]
        return pd.DataFrame(data, columns=EXPORT_COLUMNS)

    def export_csv(self, include_inactive: bool = True) -> io.BytesIO:
        """
        Export students as a CSV file.

        Args:
            include_inactive: Whether soft-deleted students are exported too.

        Returns:
            A BytesIO buffer containing the CSV data.
        """
        df = self._frame(include_inactive)
        buffer = io.BytesIO()
        df.to_csv(buffer, index=False, encoding="utf-8-sig")
        buffer.seek(0)
        logger.info(f"Exported {len(df)} students as CSV")
        return buffer

    def export_excel(self, include_inactive: bool = True) -> io.BytesIO:
        """
        Export students as an Excel (.xlsx) file with a department summary sheet.

        Returns:
            A BytesIO buffer containing the Excel data.
        """
        df = self._frame(include_inactive)

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name="Students", index=False)

            departments = self.repo.department_statistics()
            if departments:
                summary = pd.DataFrame(
                    [
                        {
                            "Department": d.department,
                            "Students": d.student_count,
                            "Average Age": round(d.average_age, 1),
                            "Average GPA": round(d.average_gpa, 2),
                            "Highest GPA": d.highest_gpa,
                            "Lowest GPA": d.lowest_gpa,
                        }
                        for d in departments
                    ]
                )
                summary.to_excel(writer, sheet_name="Departments", index=False)

        buffer.seek(0)
        logger.info(f"Exported {len(df)} students as Excel")
        return buffer

    # ── IMPORT ────────────────────────────────────────────

    def import_csv(self, content: bytes) -> int:
        """
        Load students from CSV bytes. Either every row is inserted or none is.

        Returns:
            Number of inserted students.

        Raises:
            InvalidArgumentError: If the file is malformed or a row is invalid.
            StorageError: If the bulk insert fails.
        """
        try:
            df = pd.read_csv(
                io.BytesIO(content), dtype=str, keep_default_na=False,
                encoding="utf-8-sig", sep=None, engine="python",
            )
        except (ValueError, pd.errors.ParserError) as e:
            raise InvalidArgumentError(f"Unreadable CSV file: {e}") from e
        return self._import_frame(df)

    def import_excel(self, content: bytes) -> int:
        """Load students from the first sheet of an .xlsx file. All-or-nothing."""
        try:
            df = pd.read_excel(io.BytesIO(content), dtype=str, keep_default_na=False)
        except ValueError as e:
            raise InvalidArgumentError(f"Unreadable Excel file: {e}") from e
        return self._import_frame(df)

    def _import_frame(self, df: pd.DataFrame) -> int:
        columns = {c: str(c).strip().lower() for c in df.columns}
        missing = [h for h in _REQUIRED_HEADERS if h not in columns.values()]
        if missing:
            raise InvalidArgumentError(f"Missing required column(s): {', '.join(missing)}")

        df = df.rename(columns=columns)
        students = []
        problems = []
        for line, row in enumerate(df.to_dict(orient="records"), start=2):
            try:
                students.append(self._row_to_student(row))
            except ValueError as e:
                problems.append(f"Line {line}: {e}")
        if problems:
            raise InvalidArgumentError(problems)

        inserted = self.repo.bulk_insert(students)
        logger.info(f"Imported {inserted} students")
        return inserted

    @staticmethod
    def _row_to_student(row: dict) -> Student:
        """Build a Student from one import row. Raises ValueError on unparsable values."""
        values = {
            field: str(row[header]).strip()
            for header, field in _IMPORT_HEADERS.items()
            if header in row and str(row[header]).strip()
        }
        try:
            age = int(values.get("age", ""))
        except ValueError:
            raise ValueError(f"age '{values.get('age', '')}' is not a whole number") from None
        try:
            gpa = Decimal(values.get("gpa", "0"))
        except InvalidOperation:
            raise ValueError(f"GPA '{values['gpa']}' is not a number") from None

        student = Student(
            name=values.get("name", ""),
            age=age,
            department=values.get("department", ""),
            email=values.get("email"),
            phone_number=values.get("phone_number"),
            gpa=gpa,
        )
        if "enrollment_date" in values:
            student.enrollment_date = pd.Timestamp(values["enrollment_date"]).to_pydatetime()
        if "is_active" in values:
            student.is_active = values["is_active"].lower() in _TRUE_VALUES
        return student
