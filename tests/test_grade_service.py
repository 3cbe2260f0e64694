"""Tests for the grade service REST API.

Exercises the endpoints through FastAPI's TestClient with camelCase JSON
bodies, an injected extractor and a fresh rate limiter per test.
"""
import typing as t

import pytest
from fastapi.testclient import TestClient

from grade_server.extraction import (
    RetryableExtractionError,
    TerminalExtractionError,
    grade_record_from_dict,
)
from grade_server.models import GradeRecord
from services.grade_service import app as app_module
from services.grade_service.app import app, get_extractor, get_rate_limiter
from services.grade_service.mock_extractor import MockGradeExtractor
from services.grade_service.rate_limit import RateLimiter


PNG = ("grades.png", b"\x89PNG\r\n\x1a\nfake", "image/png")


class KeyedExtractor:
    """Returns the canned record registered for each image's bytes."""

    def __init__(self, records: dict[bytes, dict[str, t.Any]]) -> None:
        self.records = {image: grade_record_from_dict(r) for image, r in records.items()}
        self.calls: list[bytes] = []

    def extract(self, image_bytes: bytes, mime_type: str) -> GradeRecord:
        self.calls.append(image_bytes)
        return self.records[image_bytes]


class FailingExtractor:
    """Always raises the given error."""

    def __init__(self, error: Exception) -> None:
        self.error = error

    def extract(self, image_bytes: bytes, mime_type: str) -> GradeRecord:
        raise self.error


@pytest.fixture
def client() -> t.Iterator[TestClient]:
    """Test client with a mock extractor and a generous rate limiter."""
    app.dependency_overrides[get_extractor] = lambda: MockGradeExtractor()
    app.dependency_overrides[get_rate_limiter] = lambda: RateLimiter(100, 60)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def use_extractor(extractor: t.Any) -> None:
    app.dependency_overrides[get_extractor] = lambda: extractor


def test_health_check(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "grade-service"}


def test_merge_endpoint_round_trips_camel_case(client: TestClient) -> None:
    records = [
        {
            "className": "CS 101",
            "currentGrade": 10,
            "letterGrade": "F",
            "assignments": [{"name": "Quiz 1", "category": "Quizzes", "score": None, "pointsPossible": 10}],
            "categories": [{"name": "HW", "weight": 20}],
            "gradingScale": {"A": 90, "B": 80, "C": 70, "D": 60, "F": 0},
        },
        {
            "className": "CS 101 (copy)",
            "currentGrade": 80,
            "letterGrade": "B",
            "assignments": [
                {"name": "quiz 1", "category": "Quizzes", "score": 8, "pointsPossible": 10},
                {"name": "Quiz 2", "category": "Quizzes", "score": None, "pointsPossible": 10},
            ],
            "categories": [{"name": "hw", "weight": 99, "dropLowest": 1}],
            "gradingScale": {"A": 95},
        },
    ]

    response = client.post("/grades:merge", json={"records": records})

    assert response.status_code == 200
    data = response.json()
    assert data["className"] == "CS 101"
    assert data["currentGrade"] == pytest.approx(80.0)
    assert data["letterGrade"] == "B"
    assert data["gradingScale"] == {"A": 90, "B": 80, "C": 70, "D": 60, "F": 0}
    assert [a["name"] for a in data["assignments"]] == ["quiz 1", "Quiz 2"]
    assert data["assignments"][0]["pointsPossible"] == 10
    # ungraded scores stay null on the wire
    assert data["assignments"][1]["score"] is None
    assert data["categories"] == [{"name": "HW", "weight": 20, "dropLowest": None}]


def test_merge_endpoint_single_record_is_passed_through(client: TestClient) -> None:
    record = {
        "className": "Bio 150",
        "currentGrade": 93.4,
        "letterGrade": "A",
        "assignments": [{"name": "Lab", "score": 1, "pointsPossible": 10}],
        "gradingScale": {"A": 90},
    }

    response = client.post("/grades:merge", json={"records": [record]})

    assert response.status_code == 200
    assert response.json()["currentGrade"] == 93.4
    assert response.json()["letterGrade"] == "A"


def test_merge_endpoint_rejects_empty_list(client: TestClient) -> None:
    response = client.post("/grades:merge", json={"records": []})

    assert response.status_code == 422


def test_project_endpoint(client: TestClient) -> None:
    body = {
        "record": {"className": "CS 101", "currentGrade": 88, "gradingScale": {"A": 90}},
        "targetGrade": "A",
        "finalWeight": 20,
    }

    response = client.post("/grades:project", json=body)

    assert response.status_code == 200
    data = response.json()
    assert data["targetGrade"] == "A"
    assert data["targetPercentage"] == 90
    assert data["neededScore"] == pytest.approx(98.0)
    assert data["isPossible"] is True
    assert data["suggestedGrade"] is None


def test_project_endpoint_suggests_lower_grade_when_impossible(client: TestClient) -> None:
    body = {
        "record": {"currentGrade": 60, "gradingScale": {"A": 90, "B": 80, "F": 0}},
        "targetGrade": "A",
        "finalWeight": 10,
    }

    response = client.post("/grades:project", json=body)

    data = response.json()
    assert data["neededScore"] == pytest.approx(360.0)
    assert data["isPossible"] is False
    assert data["suggestedGrade"] == "B"


def test_project_endpoint_uses_defaults(client: TestClient) -> None:
    response = client.post("/grades:project", json={"record": {"currentGrade": 88}})

    data = response.json()
    assert data["targetGrade"] == "A"
    assert data["finalWeight"] == 20
    assert data["targetPercentage"] == 90


@pytest.mark.parametrize("weight", [0, -5, 100.5])
def test_project_endpoint_validates_final_weight(client: TestClient, weight: float) -> None:
    body = {"record": {"currentGrade": 88}, "finalWeight": weight}

    response = client.post("/grades:project", json=body)

    assert response.status_code == 422


def test_analyze_single_screenshot(client: TestClient) -> None:
    response = client.post("/grades:analyze", files=[("screenshots", PNG)])

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["error"] is None
    # single screenshot: extractor's own grade is kept
    assert data["data"]["currentGrade"] == 87.5
    assert data["data"]["className"].startswith("CS 101")


def test_analyze_merges_screenshots_in_upload_order(client: TestClient) -> None:
    page_one = b"\x89PNG page one"
    page_two = b"\xff\xd8\xff page two"
    extractor = KeyedExtractor({
        page_one: {
            "className": "Stats 250",
            "assignments": [{"name": "HW 1", "score": None, "pointsPossible": 20}],
            "categories": [{"name": "Homework", "weight": 40}],
            "gradingScale": {"A": 90, "B": 80, "F": 0},
        },
        page_two: {
            "className": "Stats 250 page 2",
            "assignments": [
                {"name": "HW 1", "score": 17, "pointsPossible": 20},
                {"name": "Exam 1", "score": 85, "pointsPossible": 100},
            ],
            "categories": [{"name": "homework", "weight": 10}],
            "gradingScale": {},
        },
    })
    use_extractor(extractor)

    response = client.post(
        "/grades:analyze",
        files=[
            ("screenshots", ("page1.png", page_one, "image/png")),
            ("screenshots", ("page2.jpg", page_two, "image/jpeg")),
        ],
    )

    assert response.status_code == 200
    merged = response.json()["data"]
    assert sorted(extractor.calls) == sorted([page_one, page_two])
    assert merged["className"] == "Stats 250"
    assert merged["currentGrade"] == pytest.approx(85.0)
    assert merged["letterGrade"] == "B"
    assert merged["assignments"][0]["score"] == 17
    assert merged["categories"][0]["weight"] == 40


def test_analyze_without_files(client: TestClient) -> None:
    response = client.post("/grades:analyze")

    assert response.status_code == 400
    assert response.json() == {"success": False, "data": None, "error": "No screenshot file provided"}


def test_analyze_rejects_wrong_file_type(client: TestClient) -> None:
    response = client.post("/grades:analyze", files=[("screenshots", ("grades.pdf", b"%PDF", "application/pdf"))])

    assert response.status_code == 400
    assert "Invalid file type" in response.json()["error"]


def test_analyze_rejects_oversized_file(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app_module, "MAX_UPLOAD_BYTES", 4)

    response = client.post("/grades:analyze", files=[("screenshots", PNG)])

    assert response.status_code == 400
    assert "limit" in response.json()["error"]


def test_analyze_rejects_too_many_files(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app_module, "MAX_SCREENSHOTS", 1)

    response = client.post("/grades:analyze", files=[("screenshots", PNG), ("screenshots", PNG)])

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_analyze_without_extractor(client: TestClient) -> None:
    use_extractor(None)

    response = client.post("/grades:analyze", files=[("screenshots", PNG)])

    assert response.status_code == 503


def test_analyze_terminal_extraction_failure(client: TestClient) -> None:
    use_extractor(FailingExtractor(TerminalExtractionError("Extractor returned invalid JSON")))

    response = client.post("/grades:analyze", files=[("screenshots", PNG)])

    assert response.status_code == 502
    assert "invalid JSON" in response.json()["error"]


def test_analyze_rate_limited_extraction(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app_module, "EXTRACTION_MAX_ATTEMPTS", 1)
    use_extractor(FailingExtractor(RetryableExtractionError("429 Too Many Requests")))

    response = client.post("/grades:analyze", files=[("screenshots", PNG)])

    assert response.status_code == 503
    assert response.json()["success"] is False


def test_analyze_is_rate_limited_per_client(client: TestClient) -> None:
    limiter = RateLimiter(2, 60)
    app.dependency_overrides[get_rate_limiter] = lambda: limiter

    statuses = [client.post("/grades:analyze", files=[("screenshots", PNG)]).status_code for _ in range(3)]

    assert statuses == [200, 200, 429]
    blocked = client.post("/grades:analyze", files=[("screenshots", PNG)])
    assert int(blocked.headers["Retry-After"]) > 0
    assert blocked.json()["error"] == "Too many requests, please try again later."
