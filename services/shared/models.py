"""
Shared Pydantic models for REST API serialization.

This module contains Pydantic equivalents of the dataclass models in
grade_server.models. Python attributes are snake_case; the JSON keys are the
camelCase names gradebook extractors produce (``className``,
``pointsPossible``, ...). Both spellings are accepted on input.
"""
from __future__ import annotations

import typing as t
from dataclasses import asdict

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from grade_server import models as dc


class CamelModel(BaseModel):
    """Base model that speaks camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, t.Any]:
        """Dump with camelCase keys, keeping nulls (an ungraded score is null)."""
        return self.model_dump(by_alias=True)


class Assignment(CamelModel):
    """
    One gradebook row.
    """
    name: str = ""
    category: str = ""
    score: t.Optional[float] = None         # null while ungraded
    points_possible: float = 0.0
    weight: t.Optional[float] = None
    due_date: t.Optional[str] = None
    is_dropped: t.Optional[bool] = None


class Category(CamelModel):
    """
    A weighted assignment group.
    """
    name: str = ""
    weight: float = 0.0
    drop_lowest: t.Optional[int] = None


class GradeRecord(CamelModel):
    """
    Normalized summary of one course's grades.
    """
    class_name: str = ""
    instructor: t.Optional[str] = None
    current_grade: float = 0.0
    letter_grade: str = ""
    assignments: list[Assignment] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    grading_scale: dict[str, float] = Field(default_factory=dict)


class FinalProjection(CamelModel):
    """Score needed on the final to reach a target grade."""
    target_grade: str
    target_percentage: float
    current_grade: float
    final_weight: float
    needed_score: float
    is_possible: bool


# Request/Response Models for API endpoints
class MergeGradesRequest(CamelModel):
    """Request model for merging grade records, in screenshot order."""
    records: list[GradeRecord] = Field(min_length=1)


class ProjectFinalRequest(CamelModel):
    """Request model for the final exam projection."""
    record: GradeRecord
    target_grade: str = "A"
    final_weight: float = Field(default=20.0, gt=0, le=100)


class ProjectFinalResponse(FinalProjection):
    """Projection plus the next letter down when the target is out of reach."""
    suggested_grade: t.Optional[str] = None


class AnalysisResponse(CamelModel):
    """Response model for screenshot analysis."""
    success: bool
    data: t.Optional[GradeRecord] = None
    error: t.Optional[str] = None


# Dataclass <-> Pydantic conversion
def grade_record_to_pydantic(record: dc.GradeRecord) -> GradeRecord:
    """Convert a dataclass GradeRecord to its Pydantic equivalent."""
    return GradeRecord(**asdict(record))


def grade_record_to_dataclass(record: GradeRecord) -> dc.GradeRecord:
    """Convert a Pydantic GradeRecord back to the dataclass the core works on."""
    data = record.model_dump()
    return dc.GradeRecord(
        class_name=data["class_name"],
        instructor=data["instructor"],
        current_grade=data["current_grade"],
        letter_grade=data["letter_grade"],
        assignments=[dc.Assignment(**a) for a in data["assignments"]],
        categories=[dc.Category(**c) for c in data["categories"]],
        grading_scale=data["grading_scale"],
    )


def projection_to_pydantic(
    projection: dc.FinalProjection,
    suggested_grade: t.Optional[str] = None,
) -> ProjectFinalResponse:
    """Convert a dataclass FinalProjection to the REST response model."""
    return ProjectFinalResponse(**asdict(projection), suggested_grade=suggested_grade)
