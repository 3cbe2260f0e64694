"""
Data models for extracted gradebook information.

This module contains the dataclasses used to represent one course's grades as
read from one or more gradebook screenshots, and the final-exam projection
derived from them.
"""
from __future__ import annotations

import typing as t
from dataclasses import dataclass, field


@dataclass
class Assignment:
    """
    One gradebook row.

    The name is a display label and is not guaranteed to be unique.
    """
    name: str = ""
    category: str = ""
    score: t.Optional[float] = None         # None while ungraded / pending
    points_possible: float = 0.0
    weight: t.Optional[float] = None
    due_date: t.Optional[str] = None        # "YYYY-MM-DD" when visible
    is_dropped: t.Optional[bool] = None


@dataclass
class Category:
    """
    A weighted assignment group, e.g. "Homework (20%, drop lowest 1)".
    """
    name: str = ""
    weight: float = 0.0                     # percentage 0-100
    drop_lowest: t.Optional[int] = None


@dataclass
class GradeRecord:
    """
    Normalized summary of one course's grades.
    Produced once per screenshot by the extractor, and once more when
    several screenshots of the same course are merged.
    """
    class_name: str = ""
    instructor: t.Optional[str] = None
    current_grade: float = 0.0              # percentage
    letter_grade: str = ""
    assignments: list[Assignment] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    grading_scale: dict[str, float] = field(default_factory=dict)  # {"A": 90, "B": 80}


@dataclass
class FinalProjection:
    """Score needed on a not-yet-graded component to reach a target grade."""
    target_grade: str
    target_percentage: float
    current_grade: float
    final_weight: float
    needed_score: float
    is_possible: bool
