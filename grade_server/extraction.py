"""
Extraction capability: turning a gradebook screenshot into a GradeRecord.

The actual vision/LLM call lives outside this project. This module defines the
interface an extractor implements, how its failures are classified, the
retry policy applied around it, and the lenient conversion of its raw JSON
output into dataclasses.
"""
from __future__ import annotations

import importlib
import json
import logging
import time
import typing as t

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .models import Assignment, Category, GradeRecord

logger = logging.getLogger(__name__)

# Retry configuration
MAX_ATTEMPTS = 3
INITIAL_DELAY_SECONDS = 2.0

_RATE_LIMIT_MARKERS = ("429", "rate", "quota", "resource exhausted")


class ExtractionError(Exception):
    """Base class for extractor failures."""


class RetryableExtractionError(ExtractionError):
    """Transient failure (rate limiting, exhausted quota). Safe to retry."""


class TerminalExtractionError(ExtractionError):
    """Permanent failure, e.g. the model returned unparseable output."""


@t.runtime_checkable
class GradeExtractor(t.Protocol):
    """Anything that can read a gradebook screenshot."""

    def extract(self, image_bytes: bytes, mime_type: str) -> GradeRecord:
        ...


def classify_extraction_error(exc: BaseException) -> ExtractionError:
    """Map any extractor failure onto the retryable / terminal split."""
    if isinstance(exc, ExtractionError):
        return exc
    message = str(exc).lower()
    if any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return RetryableExtractionError(str(exc))
    return TerminalExtractionError(str(exc))


def extract_with_retry(
    extractor: GradeExtractor,
    image_bytes: bytes,
    mime_type: str,
    max_attempts: int = MAX_ATTEMPTS,
    initial_delay: float = INITIAL_DELAY_SECONDS,
    sleep: t.Callable[[float], None] = time.sleep,
) -> GradeRecord:
    """Run ``extractor`` with exponential backoff on retryable failures.

    Delays double after every failed attempt (2s, 4s, ... by default).
    Terminal failures are raised immediately.

    Raises:
        RetryableExtractionError: If the last attempt still hit a transient error.
        TerminalExtractionError: On any non-retryable failure.
    """
    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=initial_delay),
        retry=retry_if_exception_type(RetryableExtractionError),
        sleep=sleep,
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return retrying(_extract_once, extractor, image_bytes, mime_type)


def _extract_once(extractor: GradeExtractor, image_bytes: bytes, mime_type: str) -> GradeRecord:
    try:
        return extractor.extract(image_bytes, mime_type)
    except Exception as e:
        error = classify_extraction_error(e)
        if error is e:
            raise
        raise error from e


def strip_code_fence(text: str) -> str:
    """Remove a Markdown code fence wrapped around a JSON answer."""
    stripped = text.strip()
    if stripped.startswith("```json"):
        stripped = stripped[len("```json"):]
    elif stripped.startswith("```"):
        stripped = stripped[3:]
    if stripped.endswith("```"):
        stripped = stripped[:-3]
    return stripped.strip()


def parse_grade_record_text(text: str) -> GradeRecord:
    """Parse an extractor's text answer into a GradeRecord."""
    try:
        data = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise TerminalExtractionError(f"Extractor returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise TerminalExtractionError(
            f"Extractor returned {type(data).__name__}, expected a JSON object"
        )
    return grade_record_from_dict(data)


def _pick(data: t.Mapping[str, t.Any], camel: str, snake: str, default: t.Any = None) -> t.Any:
    value = data.get(camel)
    if value is None:
        value = data.get(snake)
    return default if value is None else value


def _float(value: t.Any, field_name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise TerminalExtractionError(f"{field_name} must be a number, got {value!r}") from e


def _optional_float(value: t.Any, field_name: str) -> t.Optional[float]:
    if value is None or value == "":
        return None
    return _float(value, field_name)


def _optional_bool(value: t.Any, field_name: str) -> t.Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise TerminalExtractionError(f"{field_name} must be true or false, got {value!r}")


def _objects(data: t.Mapping[str, t.Any], key: str) -> list[t.Mapping[str, t.Any]]:
    items = data.get(key) or []
    if not isinstance(items, list) or not all(isinstance(item, t.Mapping) for item in items):
        raise TerminalExtractionError(f"{key} must be a list of objects")
    return items


def grade_record_from_dict(data: t.Mapping[str, t.Any]) -> GradeRecord:
    """
    Convert raw extractor JSON into a GradeRecord.

    Accepts both the camelCase keys extractors emit and snake_case keys.
    Missing lists become empty, missing strings become "", and a null score
    stays null. Anything of the wrong shape raises TerminalExtractionError.
    """
    # Assignments
    assignments: list[Assignment] = []
    for a in _objects(data, "assignments"):
        assignments.append(
            Assignment(
                name=a.get("name", "") or "",
                category=a.get("category", "") or "",
                score=_optional_float(a.get("score"), "score"),
                points_possible=_float(_pick(a, "pointsPossible", "points_possible", 0.0) or 0.0, "pointsPossible"),
                weight=_optional_float(a.get("weight"), "weight"),
                due_date=_pick(a, "dueDate", "due_date") or None,
                is_dropped=_optional_bool(_pick(a, "isDropped", "is_dropped"), "isDropped"),
            )
        )

    # Categories
    categories: list[Category] = []
    for c in _objects(data, "categories"):
        drop_lowest = _optional_float(_pick(c, "dropLowest", "drop_lowest"), "dropLowest")
        categories.append(
            Category(
                name=c.get("name", "") or "",
                weight=_float(c.get("weight", 0.0) or 0.0, "weight"),
                drop_lowest=None if drop_lowest is None else int(drop_lowest),
            )
        )

    scale_src = _pick(data, "gradingScale", "grading_scale", {}) or {}
    if not isinstance(scale_src, t.Mapping):
        raise TerminalExtractionError("gradingScale must be an object of letter -> minimum")
    grading_scale = {str(letter): _float(minimum, f"gradingScale.{letter}") for letter, minimum in scale_src.items()}

    return GradeRecord(
        class_name=_pick(data, "className", "class_name", "") or "",
        instructor=data.get("instructor") or None,
        current_grade=_float(_pick(data, "currentGrade", "current_grade", 0.0) or 0.0, "currentGrade"),
        letter_grade=_pick(data, "letterGrade", "letter_grade", "") or "",
        assignments=assignments,
        categories=categories,
        grading_scale=grading_scale,
    )


def load_extractor(spec: str) -> GradeExtractor:
    """Load an extractor from a ``"package.module:attribute"`` string.

    Classes and zero-argument factories are called; anything else is used
    as the extractor itself.
    """
    module_name, sep, attribute = spec.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Extractor must look like 'package.module:attribute', got {spec!r}")

    module = importlib.import_module(module_name)
    target = getattr(module, attribute)
    if isinstance(target, type):
        extractor = target()
    elif not isinstance(target, GradeExtractor) and callable(target):
        extractor = target()
    else:
        extractor = target

    if not isinstance(extractor, GradeExtractor):
        raise TypeError(f"{spec} does not provide an extract(image_bytes, mime_type) method")
    return extractor
