"""
services/student_service.py
----------------------------
Caller-facing operations on student records.
Wraps StudentRepository with paging helpers, readable summaries and
awaitable variants that keep blocking database calls off the event loop.
"""

import asyncio
from typing import Iterator, Optional

from models.page import PageRequest
from models.statistics import DepartmentStatistics, StudentStatistics
from models.student import Student
from repositories.student_repo import StudentRepository
from utils.logger import get_logger

logger = get_logger(__name__)


class StudentService:
    """
    Orchestrates student operations for a UI or CLI caller.

    The service holds no paging or selection state: callers keep a
    PageRequest and pass it in on every call.
    """

    def __init__(self, repo: Optional[StudentRepository] = None):
        self.repo = repo or StudentRepository()

    # ── PAGING ────────────────────────────────────────────

    def list_page(self, request: PageRequest) -> list[Student]:
        """Fetch the page described by the caller's PageRequest."""
        return self.repo.get_all(
            include_inactive=request.include_inactive,
            page=request.page,
            page_size=request.page_size,
        )

    def iter_all(self, include_inactive: bool = True,
                 page_size: int = 500) -> Iterator[Student]:
        """
        Yield every student in name order, one page at a time.
        Stops after the first short page.
        """
        request = PageRequest(page=1, page_size=page_size, include_inactive=include_inactive)
        while True:
            students = self.list_page(request)
            yield from students
            if len(students) < request.page_size:
                return
            request = request.next()

    # ── ASYNC ─────────────────────────────────────────────

    async def list_page_async(self, request: PageRequest) -> list[Student]:
        return await asyncio.to_thread(self.list_page, request)

    async def get_async(self, student_id: int) -> Optional[Student]:
        return await asyncio.to_thread(self.repo.get_by_id, student_id)

    async def search_async(self, term: Optional[str] = None, **filters) -> list[Student]:
        return await asyncio.to_thread(self.repo.search, term, **filters)

    async def add_async(self, student: Student) -> int:
        return await asyncio.to_thread(self.repo.add, student)

    async def update_async(self, student: Student) -> bool:
        return await asyncio.to_thread(self.repo.update, student)

    async def soft_delete_async(self, student_id: int) -> bool:
        return await asyncio.to_thread(self.repo.soft_delete, student_id)

    async def delete_async(self, student_id: int) -> bool:
        return await asyncio.to_thread(self.repo.delete, student_id)

    async def statistics_async(self) -> tuple[StudentStatistics, list[DepartmentStatistics]]:
        """Overall and per-department statistics, fetched concurrently."""
        stats, departments = await asyncio.gather(
            asyncio.to_thread(self.repo.statistics),
            asyncio.to_thread(self.repo.department_statistics),
        )
        return stats, departments

    # ── SUMMARIES ─────────────────────────────────────────

    def describe(self, student_id: int) -> str:
        """Detail view of one student, or a not-found message."""
        student = self.repo.get_by_id(student_id)
        if student is None:
            return f"Student #{student_id} not found."
        return format_student(student)

    def statistics_report(self) -> str:
        """Plain-text report of overall and per-department statistics."""
        stats = self.repo.statistics()
        departments = self.repo.department_statistics()
        return format_statistics(stats, departments)


def format_student(student: Student) -> str:
    """Multi-line detail view with the derived age group and letter grade."""
    status = "Active" if student.is_active else "Inactive"
    lines = [
        f"#{student.id} {student.formatted_name()} ({status})",
        f"  Age:         {student.age} ({student.age_group()})",
        f"  Department:  {student.department}",
        f"  GPA:         {student.gpa} ({student.letter_grade()})",
        f"  Email:       {student.email or '-'}",
        f"  Phone:       {student.phone_number or '-'}",
        f"  Enrolled:    {student.enrollment_date:%Y-%m-%d}",
    ]
    if student.created_date:
        lines.append(f"  Created:     {student.created_date:%Y-%m-%d %H:%M}")
    if student.modified_date:
        lines.append(f"  Modified:    {student.modified_date:%Y-%m-%d %H:%M}")
    return "\n".join(lines)


def format_statistics(stats: StudentStatistics,
                      departments: list[DepartmentStatistics]) -> str:
    lines = [
        f"Total students:    {stats.total_students}",
        f"Active students:   {stats.active_students}",
        f"Average age:       {stats.average_age:.1f} years",
        f"Average GPA:       {stats.average_gpa:.2f}",
        f"Highest GPA:       {stats.highest_gpa:.2f}",
        f"Lowest GPA:        {stats.lowest_gpa:.2f}",
        f"Departments:       {stats.total_departments}",
    ]
    if departments:
        lines.append("")
        lines.append("Active students by department:")
        for d in departments:
            lines.append(
                f"  {d.department}: {d.student_count} students, "
                f"avg age {d.average_age:.1f}, avg GPA {d.average_gpa:.2f} "
                f"({d.lowest_gpa:.2f}-{d.highest_gpa:.2f})"
            )
    return "\n".join(lines)
