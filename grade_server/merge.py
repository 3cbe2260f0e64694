"""Reconcile grade records extracted from several screenshots of one course.

Each screenshot is extracted on its own, so the same assignment can show up
in more than one record, sometimes graded in one and pending in another.
``merge_grade_records`` folds the records together in the order they were
produced; that order decides every first-seen tie.
"""
from __future__ import annotations

import logging
import typing as t

from .models import Assignment, Category, GradeRecord

logger = logging.getLogger(__name__)

FALLBACK_LETTER_GRADE = "F"


class EmptyInputError(ValueError):
    """Raised when merge is called without any records."""


def normalize_assignment_name(name: str) -> str:
    """Merge key for an assignment: case and surrounding whitespace ignored."""
    return name.lower().strip()


def pick_better_assignment(existing: Assignment, incoming: Assignment) -> Assignment:
    """Pick which of two copies of the same assignment to keep.

    A graded copy beats an ungraded one. Otherwise the copy with more points
    possible wins, and ties keep ``existing``.
    """
    if existing.score is not None and incoming.score is None:
        return existing
    if incoming.score is not None and existing.score is None:
        return incoming
    if existing.points_possible >= incoming.points_possible:
        return existing
    return incoming


def compute_current_grade(assignments: t.Iterable[Assignment]) -> float:
    """Points-based percentage over graded assignments, 0.0 if nothing is graded."""
    graded = [a for a in assignments if a.score is not None]
    total_score = sum(a.score for a in graded)
    total_possible = sum(a.points_possible for a in graded)
    if total_possible > 0:
        return 100 * total_score / total_possible
    return 0.0


def letter_grade_for(current_grade: float, grading_scale: t.Mapping[str, float]) -> str:
    """Highest letter whose threshold is met, "F" when none is."""
    ranked = sorted(grading_scale.items(), key=lambda item: item[1], reverse=True)
    for letter, minimum in ranked:
        if current_grade >= minimum:
            return letter
    return FALLBACK_LETTER_GRADE


def merge_grade_records(records: t.Sequence[GradeRecord]) -> GradeRecord:
    """Merge several extracted grade records into one.

    A single record is returned as-is, including the grade and letter the
    extractor reported. With two or more records the assignment and category
    lists are unioned and the grade is recomputed from the merged
    assignments against the first record's grading scale.

    Args:
        records: Extracted records in screenshot submission order.

    Returns:
        The merged record. Input records are left untouched.

    Raises:
        EmptyInputError: If ``records`` is empty.
    """
    if not records:
        raise EmptyInputError("No grade data to merge")

    if len(records) == 1:
        return records[0]

    base = records[0]
    merged_assignments: list[Assignment] = list(base.assignments)
    merged_categories: list[Category] = list(base.categories)

    # name key -> index into merged_assignments
    positions: dict[str, int] = {}
    for i, assignment in enumerate(merged_assignments):
        positions.setdefault(normalize_assignment_name(assignment.name), i)
    seen_categories = {c.name.lower() for c in merged_categories}

    for current in records[1:]:
        for assignment in current.assignments:
            key = normalize_assignment_name(assignment.name)
            index = positions.get(key)
            if index is None:
                positions[key] = len(merged_assignments)
                merged_assignments.append(assignment)
            else:
                merged_assignments[index] = pick_better_assignment(
                    merged_assignments[index], assignment
                )

        for category in current.categories:
            key = category.name.lower()
            if key not in seen_categories:
                seen_categories.add(key)
                merged_categories.append(category)

    current_grade = compute_current_grade(merged_assignments)
    letter_grade = letter_grade_for(current_grade, base.grading_scale)

    logger.debug(
        "Merged %d records into %d assignments, %d categories (%.2f%%, %s)",
        len(records), len(merged_assignments), len(merged_categories),
        current_grade, letter_grade,
    )

    return GradeRecord(
        class_name=base.class_name,
        instructor=base.instructor,
        current_grade=current_grade,
        letter_grade=letter_grade,
        assignments=merged_assignments,
        categories=merged_categories,
        grading_scale=dict(base.grading_scale),
    )
