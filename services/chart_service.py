"""
services/chart_service.py
--------------------------
Generates chart images for student statistics.
Uses matplotlib to create the age-group pie and the letter-grade bar chart
and returns them as BytesIO buffers.
"""

import io
from collections import Counter
from typing import Iterable

import matplotlib
matplotlib.use("Agg")  # Non-interactive backend
import matplotlib.pyplot as plt

from models.student import AGE_GROUPS, LETTER_GRADES, Student
from repositories.student_repo import StudentRepository
from utils.logger import get_logger

logger = get_logger(__name__)

_COLORS = ["#3498DB", "#2ECC71", "#F1C40F", "#E74C3C", "#9B59B6",
           "#1ABC9C", "#E67E22", "#34495E", "#95A5A6", "#D35400"]


def age_group_distribution(students: Iterable[Student]) -> dict[str, int]:
    """Count students per age group, in AGE_GROUPS order, empty groups included."""
    counts = Counter(s.age_group() for s in students)
    return {group: counts.get(group, 0) for group in AGE_GROUPS}


def grade_distribution(students: Iterable[Student]) -> dict[str, int]:
    """Count students per letter grade, best grade first, empty grades included."""
    counts = Counter(s.letter_grade() for s in students)
    return {grade: counts.get(grade, 0) for grade in LETTER_GRADES}


def _to_png(fig) -> io.BytesIO:
    plt.tight_layout()
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=150, bbox_inches="tight")
    buf.seek(0)
    plt.close(fig)
    return buf


class ChartService:
    """Generates visual charts over active students."""

    def __init__(self, repo: StudentRepository | None = None):
        self.repo = repo or StudentRepository()

    def generate_age_pie(self) -> io.BytesIO | None:
        """
        Generate a pie chart of active students by age group.

        Returns:
            BytesIO buffer with PNG image, or None if no data.
        """
        distribution = {
            k: v for k, v in age_group_distribution(self.repo.search()).items() if v
        }
        if not distribution:
            return None

        fig, ax = plt.subplots(figsize=(7, 6))
        ax.pie(
            list(distribution.values()),
            labels=list(distribution.keys()),
            autopct=lambda pct: f"{pct:.0f}%",
            colors=_COLORS[:len(distribution)],
            startangle=90,
            wedgeprops=dict(edgecolor="white", linewidth=2),
        )
        ax.set_title(
            f"Age Distribution\nActive students: {sum(distribution.values())}",
            fontsize=13, fontweight="bold",
        )

        logger.info("Generated age distribution chart")
        return _to_png(fig)

    def generate_grade_bar(self) -> io.BytesIO | None:
        """
        Generate a bar chart of active students per letter grade.

        Returns:
            BytesIO buffer with PNG image, or None if no data.
        """
        distribution = grade_distribution(self.repo.search())
        total = sum(distribution.values())
        if not total:
            return None

        grades = list(distribution.keys())
        counts = list(distribution.values())

        fig, ax = plt.subplots(figsize=(9, 5))
        bars = ax.bar(grades, counts, color="#3498DB", width=0.6, zorder=3)
        for bar, count in zip(bars, counts):
            if count:
                ax.text(
                    bar.get_x() + bar.get_width() / 2, bar.get_height(),
                    str(count), ha="center", va="bottom", fontsize=10,
                )

        ax.set_xlabel("Letter Grade")
        ax.set_ylabel("Number of Students")
        ax.set_title(f"GPA Distribution\nActive students: {total}",
                     fontsize=13, fontweight="bold")
        ax.spines["top"].set_visible(False)
        ax.spines["right"].set_visible(False)
        ax.grid(axis="y", alpha=0.3)
        ax.set_axisbelow(True)

        logger.info("Generated grade distribution chart")
        return _to_png(fig)
