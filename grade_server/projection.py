"""What do I need on the final?

Given the grade banked so far, solve for the score ``x`` on the remaining
component such that::

    current_grade * (100 - final_weight) / 100 + x * final_weight / 100 == target
"""
from __future__ import annotations

import typing as t

from .models import FinalProjection, GradeRecord

# Threshold used when the requested letter is not in the record's scale.
DEFAULT_TARGET_PERCENTAGE = 90.0

DEFAULT_TARGET_GRADE = "A"
DEFAULT_FINAL_WEIGHT = 20.0


def project_final(
    record: GradeRecord,
    target_grade: str = DEFAULT_TARGET_GRADE,
    final_weight: float = DEFAULT_FINAL_WEIGHT,
) -> FinalProjection:
    """Compute the score needed on the final to reach ``target_grade``.

    ``final_weight`` is a percentage in (0, 100]; values outside that range
    are the caller's responsibility and are not checked here.

    The reported ``needed_score`` is clamped at 0 but never capped at 100.
    ``is_possible`` is decided on the unclamped value, so a target that is
    already exceeded (negative requirement) reports 0 and is not "possible".
    """
    target_percentage = record.grading_scale.get(target_grade, DEFAULT_TARGET_PERCENTAGE)
    current_grade = record.current_grade
    current_weight = 100 - final_weight

    needed_score = (target_percentage - current_grade * current_weight / 100) / (final_weight / 100)

    return FinalProjection(
        target_grade=target_grade,
        target_percentage=target_percentage,
        current_grade=current_grade,
        final_weight=final_weight,
        needed_score=max(0.0, needed_score),
        is_possible=0 <= needed_score <= 100,
    )


def grade_options(grading_scale: t.Mapping[str, float]) -> list[str]:
    """Letters of a grading scale, best first."""
    return sorted(grading_scale, key=lambda letter: grading_scale[letter], reverse=True)


def next_lower_grade(grading_scale: t.Mapping[str, float], target_grade: str) -> t.Optional[str]:
    """The letter ranked just below ``target_grade``, if there is one."""
    options = grade_options(grading_scale)
    if target_grade not in options:
        return None
    index = options.index(target_grade) + 1
    return options[index] if index < len(options) else None
