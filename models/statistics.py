"""
models/statistics.py
--------------------
Aggregate results returned by the student statistics queries.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class StudentStatistics:
    """
    Totals over every student record, active and inactive alike.
    Numeric fields are zero when the table is empty.
    """
    total_students: int = 0
    active_students: int = 0
    average_age: float = 0.0
    average_gpa: float = 0.0
    highest_gpa: float = 0.0
    lowest_gpa: float = 0.0
    total_departments: int = 0

    @property
    def inactive_students(self) -> int:
        return self.total_students - self.active_students


@dataclass(frozen=True)
class DepartmentStatistics:
    """Per-department aggregates over active students only."""
    department: str
    student_count: int
    average_age: float
    average_gpa: float
    highest_gpa: float
    lowest_gpa: float
