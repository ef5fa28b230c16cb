"""
models/student.py
-----------------
Domain model for student records, with field validation rules and
derived presentation values (age group, letter grade).
"""

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

NAME_MIN, NAME_MAX = 2, 100
DEPARTMENT_MIN, DEPARTMENT_MAX = 2, 50
AGE_MIN, AGE_MAX = 16, 100
GPA_MIN, GPA_MAX = Decimal("0.00"), Decimal("4.00")
EMAIL_MAX = 150
PHONE_MAX = 15

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s.]+$")
_PHONE_RE = re.compile(r"^[0-9+\-() ]+$")

AGE_GROUPS = ("Minor", "Young Adult", "Adult", "Mature Adult")

# (lower bound, grade), checked top-down
_GRADE_THRESHOLDS = (
    (Decimal("3.7"), "A"),
    (Decimal("3.3"), "A-"),
    (Decimal("3.0"), "B+"),
    (Decimal("2.7"), "B"),
    (Decimal("2.3"), "B-"),
    (Decimal("2.0"), "C+"),
    (Decimal("1.7"), "C"),
    (Decimal("1.3"), "C-"),
    (Decimal("1.0"), "D"),
)
LETTER_GRADES = tuple(g for _, g in _GRADE_THRESHOLDS) + ("F",)


def utcnow() -> datetime:
    """Timezone-aware current time, the clock used for all record timestamps."""
    return datetime.now(timezone.utc)


def to_gpa(value) -> Decimal:
    """Normalize a GPA given as str/int/float/Decimal to a 2-place Decimal."""
    if isinstance(value, Decimal):
        dec = value
    else:
        dec = Decimal(str(value))
    return dec.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


@dataclass(eq=False)
class Student:
    """
    Represents a single student record.

    Attributes:
        name: Full name (2-100 characters).
        age: Age in years (16-100).
        department: Department name (2-50 characters).
        email: Optional email, unique across all records when present.
        phone_number: Optional phone number (max 15 characters).
        enrollment_date: When the student enrolled (defaults to now).
        gpa: Grade point average, 0.00-4.00.
        is_active: False once the record has been soft-deleted.
        id: Database primary key (None for new records).
        created_date: Set by storage on insert, never modified afterwards.
        modified_date: Refreshed by storage on every mutation.

    Two students are equal when id, name, age and department match;
    contact details, GPA and timestamps do not take part in equality.
    """
    name: str
    age: int
    department: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    enrollment_date: datetime = field(default_factory=utcnow)
    gpa: Decimal = Decimal("0.00")
    is_active: bool = True
    id: Optional[int] = None
    created_date: Optional[datetime] = None
    modified_date: Optional[datetime] = None

    def __post_init__(self) -> None:
        try:
            self.gpa = to_gpa(self.gpa)
        except (ArithmeticError, ValueError, TypeError):
            # validate() reports non-numeric values.
            pass

    # ── VALIDATION ────────────────────────────────────────

    def validate(self) -> list[str]:
        """
        Check every field rule.

        Returns:
            Messages for each violated rule, in field order. Empty when valid.
        """
        errors: list[str] = []

        name = (self.name or "").strip()
        if not name:
            errors.append("Name is required")
        elif not NAME_MIN <= len(name) <= NAME_MAX:
            errors.append(f"Name must be between {NAME_MIN} and {NAME_MAX} characters")

        if isinstance(self.age, bool) or not isinstance(self.age, int):
            errors.append("Age must be a whole number")
        elif not AGE_MIN <= self.age <= AGE_MAX:
            errors.append(f"Age must be between {AGE_MIN} and {AGE_MAX}")

        department = (self.department or "").strip()
        if not department:
            errors.append("Department is required")
        elif not DEPARTMENT_MIN <= len(department) <= DEPARTMENT_MAX:
            errors.append(
                f"Department must be between {DEPARTMENT_MIN} and {DEPARTMENT_MAX} characters"
            )

        if self.email:
            if len(self.email) > EMAIL_MAX:
                errors.append(f"Email cannot exceed {EMAIL_MAX} characters")
            elif not is_valid_email(self.email):
                errors.append("Please enter a valid email address")

        if self.phone_number:
            if len(self.phone_number) > PHONE_MAX:
                errors.append(f"Phone number cannot exceed {PHONE_MAX} characters")
            elif not _PHONE_RE.match(self.phone_number):
                errors.append("Please enter a valid phone number")

        if not isinstance(self.enrollment_date, datetime):
            errors.append("Enrollment date is required")

        if not isinstance(self.gpa, Decimal) or not self.gpa.is_finite():
            errors.append("GPA must be a number")
        elif not GPA_MIN <= self.gpa <= GPA_MAX:
            errors.append(f"GPA must be between {GPA_MIN} and {GPA_MAX}")

        return errors

    def is_valid(self) -> bool:
        """Returns True if no validation rule is violated."""
        return not self.validate()

    # ── DERIVED VALUES ────────────────────────────────────

    def age_group(self) -> str:
        """Age bucket: Minor (<18), Young Adult (18-24), Adult (25-34), Mature Adult (35+)."""
        if self.age < 18:
            return "Minor"
        if self.age < 25:
            return "Young Adult"
        if self.age < 35:
            return "Adult"
        return "Mature Adult"

    def letter_grade(self) -> str:
        """Letter grade mapped from the GPA."""
        for threshold, grade in _GRADE_THRESHOLDS:
            if self.gpa >= threshold:
                return grade
        return "F"

    def formatted_name(self) -> str:
        """Trimmed, title-cased name for display."""
        if not self.name or not self.name.strip():
            return "Unknown"
        return self.name.strip().lower().title()

    # ── LIFECYCLE ─────────────────────────────────────────

    def copy(self) -> "Student":
        """Independent copy with identical field contents."""
        return replace(self)

    def touch(self, now: Optional[datetime] = None) -> None:
        """Refresh modified_date."""
        self.modified_date = now or utcnow()

    # ── DUNDER ────────────────────────────────────────────

    def _identity(self) -> tuple:
        return (self.id, self.name, self.age, self.department)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Student):
            return NotImplemented
        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())

    def __str__(self) -> str:
        return (
            f"Student [Id: {self.id}, Name: {self.name}, Age: {self.age}, "
            f"Department: {self.department}, GPA: {self.gpa}]"
        )
