"""Merge gradebook screenshots into one grade record and project the final."""
from .merge import EmptyInputError, merge_grade_records
from .models import Assignment, Category, FinalProjection, GradeRecord
from .projection import project_final

__all__ = [
    "Assignment",
    "Category",
    "EmptyInputError",
    "FinalProjection",
    "GradeRecord",
    "merge_grade_records",
    "project_final",
]
