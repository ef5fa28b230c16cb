"""
Tests for the service layer: paging helpers, async wrappers, text
summaries, CSV/Excel export and import, and chart generation.
A MagicMock stands in for the repository.
"""

import asyncio
import io
from decimal import Decimal
from unittest.mock import MagicMock

import pandas as pd
import pytest

from models.page import PageRequest
from models.statistics import DepartmentStatistics, StudentStatistics
from repositories.exceptions import InvalidArgumentError
from repositories.student_repo import StudentRepository
from services.chart_service import ChartService, age_group_distribution, grade_distribution
from services.export_service import EXPORT_COLUMNS, ExportService
from services.student_service import StudentService, format_statistics, format_student

from conftest import CREATED, make_student

STATS = StudentStatistics(
    total_students=2, active_students=2, average_age=18.5, average_gpa=2.95,
    highest_gpa=3.8, lowest_gpa=2.1, total_departments=2,
)
DEPARTMENTS = [
    DepartmentStatistics("CS", 1, 20.0, 3.8, 3.8, 3.8),
    DepartmentStatistics("Math", 1, 17.0, 2.1, 2.1, 2.1),
]


def make_repo(students=None):
    repo = MagicMock(spec=StudentRepository)
    students = students if students is not None else []
    repo.get_all.side_effect = lambda include_inactive=True, page=1, page_size=100: (
        students[(page - 1) * page_size: page * page_size]
    )
    repo.search.return_value = [s for s in students if s.is_active]
    repo.statistics.return_value = STATS
    repo.department_statistics.return_value = DEPARTMENTS
    return repo


def roster():
    return [
        make_student(name="Ann Lee", age=20, department="CS", gpa=Decimal("3.80"), id=1,
                     created_date=CREATED, modified_date=CREATED),
        make_student(name="Bo Kim", age=17, department="Math", gpa=Decimal("2.10"), id=2,
                     created_date=CREATED, modified_date=CREATED),
        make_student(name="Cy Ray", age=40, department="Art", gpa=Decimal("0.50"), id=3,
                     is_active=False),
    ]


# ============================================================
# StudentService
# ============================================================

def test_list_page_passes_caller_state():
    repo = make_repo(roster())
    service = StudentService(repo)

    result = service.list_page(PageRequest(page=2, page_size=1, include_inactive=False))

    repo.get_all.assert_called_once_with(include_inactive=False, page=2, page_size=1)
    assert [s.name for s in result] == ["Bo Kim"]


def test_iter_all_walks_pages_until_short_page():
    repo = make_repo(roster())
    names = [s.name for s in StudentService(repo).iter_all(page_size=2)]
    assert names == ["Ann Lee", "Bo Kim", "Cy Ray"]
    assert repo.get_all.call_count == 2


def test_iter_all_exact_multiple_needs_one_empty_page():
    repo = make_repo(roster()[:2])
    assert len(list(StudentService(repo).iter_all(page_size=2))) == 2
    assert repo.get_all.call_count == 2


def test_async_wrappers_delegate_to_repository():
    repo = make_repo(roster())
    repo.add.return_value = 10
    repo.soft_delete.return_value = True
    service = StudentService(repo)

    async def scenario():
        new_id = await service.add_async(make_student())
        flipped = await service.soft_delete_async(new_id)
        stats, departments = await service.statistics_async()
        found = await service.search_async("ann", min_gpa=3)
        return new_id, flipped, stats, departments, found

    new_id, flipped, stats, departments, found = asyncio.run(scenario())

    assert new_id == 10
    assert flipped is True
    repo.soft_delete.assert_called_once_with(10)
    assert stats is STATS
    assert departments == DEPARTMENTS
    repo.search.assert_called_once_with("ann", min_gpa=3)
    assert len(found) == 2


def test_describe_not_found():
    repo = make_repo()
    repo.get_by_id.return_value = None
    assert StudentService(repo).describe(5) == "Student #5 not found."


def test_format_student_includes_derived_values():
    text = format_student(roster()[1])
    assert "#2 Bo Kim (Active)" in text
    assert "17 (Minor)" in text
    assert "2.10 (C+)" in text


def test_format_statistics():
    text = format_statistics(STATS, DEPARTMENTS)
    assert "Total students:    2" in text
    assert "Average GPA:       2.95" in text
    assert "Highest GPA:       3.80" in text
    assert "Lowest GPA:        2.10" in text
    assert "CS: 1 students" in text


def test_format_statistics_empty():
    text = format_statistics(StudentStatistics(), [])
    assert "Total students:    0" in text
    assert "by department" not in text


# ============================================================
# ExportService
# ============================================================

def test_export_csv_contains_all_students():
    service = ExportService(make_repo(roster()))

    buffer = service.export_csv()

    df = pd.read_csv(buffer, encoding="utf-8-sig")
    assert list(df.columns) == EXPORT_COLUMNS
    assert list(df["Name"]) == ["Ann Lee", "Bo Kim", "Cy Ray"]
    assert list(df["Grade"]) == ["A", "C+", "F"]
    assert list(df["Age Group"]) == ["Young Adult", "Minor", "Mature Adult"]


def test_export_csv_active_only_forwards_flag():
    repo = make_repo(roster())
    ExportService(repo).export_csv(include_inactive=False)
    assert repo.get_all.call_args.kwargs["include_inactive"] is False


def test_export_excel_has_summary_sheet():
    buffer = ExportService(make_repo(roster())).export_excel()

    sheets = pd.read_excel(buffer, sheet_name=None)
    assert set(sheets) == {"Students", "Departments"}
    assert len(sheets["Students"]) == 3
    assert list(sheets["Departments"]["Department"]) == ["CS", "Math"]


def test_export_empty_table():
    df = pd.read_csv(ExportService(make_repo([])).export_csv(), encoding="utf-8-sig")
    assert df.empty
    assert list(df.columns) == EXPORT_COLUMNS


def test_import_csv_bulk_inserts_parsed_rows():
    repo = make_repo()
    repo.bulk_insert.side_effect = lambda students: len(students)
    content = (
        b"Name,Age,Department,Email,Phone,GPA,Active\n"
        b"Ann Lee,20,CS,ann@example.com,555-0100,3.8,true\n"
        b"Bo Kim,17,Math,,,2.1,no\n"
    )

    assert ExportService(repo).import_csv(content) == 2

    students = repo.bulk_insert.call_args.args[0]
    assert [s.name for s in students] == ["Ann Lee", "Bo Kim"]
    assert students[0].gpa == Decimal("3.80")
    assert students[0].phone_number == "555-0100"
    assert students[1].email is None
    assert students[1].is_active is False


def test_import_csv_semicolon_separated():
    repo = make_repo()
    repo.bulk_insert.side_effect = lambda students: len(students)
    assert ExportService(repo).import_csv(b"name;age;department\nAnn Lee;20;CS\n") == 1


def test_import_csv_unparsable_row_inserts_nothing():
    repo = make_repo()
    content = b"Name,Age,Department\nAnn Lee,20,CS\nBo Kim,seventeen,Math\n"

    with pytest.raises(InvalidArgumentError) as exc:
        ExportService(repo).import_csv(content)

    assert exc.value.errors == ["Line 3: age 'seventeen' is not a whole number"]
    repo.bulk_insert.assert_not_called()


def test_import_csv_missing_columns():
    repo = make_repo()
    with pytest.raises(InvalidArgumentError) as exc:
        ExportService(repo).import_csv(b"Name,Email\nAnn Lee,ann@example.com\n")
    assert "age, department" in str(exc.value)
    repo.bulk_insert.assert_not_called()


def test_import_excel_round_trip():
    source = ExportService(make_repo(roster())).export_excel()
    repo = make_repo()
    repo.bulk_insert.side_effect = lambda students: len(students)

    assert ExportService(repo).import_excel(source.getvalue()) == 3
    students = repo.bulk_insert.call_args.args[0]
    assert [s.is_active for s in students] == [True, True, False]


# ============================================================
# ChartService
# ============================================================

def test_distributions_include_empty_buckets():
    students = roster()
    assert age_group_distribution(students) == {
        "Minor": 1, "Young Adult": 1, "Adult": 0, "Mature Adult": 1,
    }
    grades = grade_distribution(students)
    assert list(grades)[0] == "A" and list(grades)[-1] == "F"
    assert grades["A"] == 1 and grades["C+"] == 1 and grades["F"] == 1
    assert sum(grades.values()) == 3


def test_charts_render_png():
    charts = ChartService(make_repo(roster()))
    for buffer in (charts.generate_age_pie(), charts.generate_grade_bar()):
        assert buffer.getvalue().startswith(b"\x89PNG")


def test_charts_without_active_students_return_none():
    charts = ChartService(make_repo([]))
    assert charts.generate_age_pie() is None
    assert charts.generate_grade_bar() is None
