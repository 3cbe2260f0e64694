"""
Mock grade extractor for running the service without a vision model.

Returns the same realistic gradebook for every screenshot, so the HTTP
layer, upload handling and merging can be exercised end to end.

    GRADE_EXTRACTOR=services.grade_service.mock_extractor:MockGradeExtractor
"""
from __future__ import annotations

import typing as t

from grade_server.extraction import grade_record_from_dict
from grade_server.models import GradeRecord


class MockGradeExtractor:
    """Extractor that ignores the image and returns canned grades."""

    def __init__(self, payload: t.Optional[dict[str, t.Any]] = None) -> None:
        self.payload = payload or _get_mock_grade_payload()
        self.calls: list[tuple[int, str]] = []

    def extract(self, image_bytes: bytes, mime_type: str) -> GradeRecord:
        self.calls.append((len(image_bytes), mime_type))
        return grade_record_from_dict(self.payload)


def _get_mock_grade_payload() -> dict[str, t.Any]:
    """Generate a mock extractor answer in its camelCase JSON shape."""
    return {
        "className": "CS 101 - Introduction to Computer Science",
        "instructor": "Dr. Jane Smith",
        "currentGrade": 87.5,
        "letterGrade": "B",
        "assignments": [
            {
                "name": "Homework 1",
                "category": "Homework",
                "score": 48,
                "pointsPossible": 50,
                "dueDate": "2026-01-23",
            },
            {
                "name": "Homework 2",
                "category": "Homework",
                "score": 41,
                "pointsPossible": 50,
                "dueDate": "2026-02-06",
            },
            {
                "name": "Quiz 1",
                "category": "Quizzes",
                "score": 9,
                "pointsPossible": 10,
                "dueDate": "2026-02-10",
            },
            {
                "name": "Midterm Exam",
                "category": "Exams",
                "score": 84,
                "pointsPossible": 100,
                "dueDate": "2026-03-05",
            },
            {
                "name": "Homework 3",
                "category": "Homework",
                "score": None,
                "pointsPossible": 50,
                "dueDate": "2026-03-20",
            },
        ],
        "categories": [
            {"name": "Homework", "weight": 30, "dropLowest": 1},
            {"name": "Quizzes", "weight": 20},
            {"name": "Exams", "weight": 50},
        ],
        "gradingScale": {"A": 90, "B": 80, "C": 70, "D": 60, "F": 0},
    }
