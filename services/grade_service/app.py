"""
FastAPI service for gradebook screenshot analysis.

Exposes the grade merge and final-exam projection as REST endpoints, plus an
analyze endpoint that runs the configured extractor over uploaded screenshots
and merges the results. Grades are never stored: every request works on the
data it carries and forgets it afterwards.
"""
from __future__ import annotations

import asyncio
import logging
import math
import os
import typing as t
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from grade_server import image_utils
from grade_server.extraction import (
    GradeExtractor,
    RetryableExtractionError,
    TerminalExtractionError,
    extract_with_retry,
    load_extractor,
)
from grade_server.image_utils import InvalidImageError, validate_screenshot
from grade_server.merge import EmptyInputError, merge_grade_records
from grade_server.projection import next_lower_grade, project_final
from services.grade_service.rate_limit import RateLimiter
from services.shared.models import (
    AnalysisResponse,
    GradeRecord as PydanticGradeRecord,
    MergeGradesRequest,
    ProjectFinalRequest,
    ProjectFinalResponse,
    grade_record_to_dataclass,
    grade_record_to_pydantic,
    projection_to_pydantic,
)

logger = logging.getLogger(__name__)

# Settings - configurable via environment variables
GRADE_EXTRACTOR = os.getenv("GRADE_EXTRACTOR", "")
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(image_utils.MAX_UPLOAD_BYTES)))
MAX_SCREENSHOTS = int(os.getenv("MAX_SCREENSHOTS", "10"))
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "10"))
RATE_LIMIT_WINDOW_SECONDS = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
EXTRACTION_MAX_ATTEMPTS = int(os.getenv("EXTRACTION_MAX_ATTEMPTS", "3"))


# Global extractor - loaded on startup when GRADE_EXTRACTOR is set
extractor: t.Optional[GradeExtractor] = None
rate_limiter = RateLimiter(RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the extractor on startup."""
    global extractor

    if GRADE_EXTRACTOR:
        extractor = load_extractor(GRADE_EXTRACTOR)
        logger.info("Grade service starting with extractor %s", GRADE_EXTRACTOR)
    else:
        logger.warning("GRADE_EXTRACTOR is not set; /grades:analyze will answer 503")

    yield

    logger.info("Grade service shutting down")


app = FastAPI(
    title="Grade Service",
    description="REST API for merging gradebook screenshots and projecting final exam scores",
    version="1.0.0",
    lifespan=lifespan,
)


def get_extractor() -> t.Optional[GradeExtractor]:
    """Dependency returning the configured extractor, if any."""
    return extractor


def get_rate_limiter() -> RateLimiter:
    """Dependency returning the process-wide rate limiter."""
    return rate_limiter


def _error_response(
    status_code: int,
    message: str,
    headers: t.Optional[dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=AnalysisResponse(success=False, error=message).to_json_dict(),
        headers=headers,
    )


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "healthy", "service": "grade-service"}


@app.post("/grades:merge", response_model=PydanticGradeRecord)
async def merge_grades(request: MergeGradesRequest) -> PydanticGradeRecord:
    """
    Merge grade records extracted from several screenshots of one course.

    Records are merged in the order given.
    """
    records = [grade_record_to_dataclass(r) for r in request.records]
    try:
        merged = merge_grade_records(records)
    except EmptyInputError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return grade_record_to_pydantic(merged)


@app.post("/grades:project", response_model=ProjectFinalResponse)
async def project_final_grade(request: ProjectFinalRequest) -> ProjectFinalResponse:
    """
    Compute the score needed on the final exam to reach a target grade.

    When the target is out of reach, the next letter down is suggested.
    """
    record = grade_record_to_dataclass(request.record)
    projection = project_final(record, request.target_grade, request.final_weight)

    suggested = None
    if not projection.is_possible:
        suggested = next_lower_grade(record.grading_scale, request.target_grade)

    return projection_to_pydantic(projection, suggested_grade=suggested)


@app.post("/grades:analyze", response_model=AnalysisResponse)
async def analyze_screenshots(
    request: Request,
    screenshots: t.Optional[list[UploadFile]] = File(None),
    grade_extractor: t.Optional[GradeExtractor] = Depends(get_extractor),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """
    Extract grades from one or more gradebook screenshots and merge them.

    Screenshots are extracted concurrently but merged in upload order.
    This endpoint can take a while per image, depending on the extractor.
    """
    client_key = request.client.host if request.client else "unknown"
    decision = limiter.hit(client_key)
    if not decision.allowed:
        logger.info("Rate limit exceeded for %s", client_key)
        return _error_response(
            429,
            "Too many requests, please try again later.",
            headers={"Retry-After": str(math.ceil(decision.retry_after))},
        )

    if not screenshots:
        return _error_response(400, "No screenshot file provided")
    if len(screenshots) > MAX_SCREENSHOTS:
        return _error_response(400, f"At most {MAX_SCREENSHOTS} screenshots per request")

    uploads: list[tuple[bytes, str]] = []
    for upload in screenshots:
        content = await upload.read()
        mime_type = upload.content_type or ""
        try:
            validate_screenshot(content, mime_type, MAX_UPLOAD_BYTES)
        except InvalidImageError as e:
            return _error_response(400, f"{upload.filename}: {e}")
        uploads.append((content, mime_type))

    if grade_extractor is None:
        return _error_response(503, "No grade extractor is configured")

    try:
        records = await asyncio.gather(*(
            asyncio.to_thread(extract_with_retry, grade_extractor, content, mime_type, EXTRACTION_MAX_ATTEMPTS)
            for content, mime_type in uploads
        ))
    except RetryableExtractionError as e:
        logger.warning("Extraction still rate limited after retries: %s", e)
        return _error_response(503, f"Extraction service is busy: {e}")
    except TerminalExtractionError as e:
        logger.error("Extraction failed: %s", e)
        return _error_response(502, f"Could not read grades from screenshot: {e}")

    merged = merge_grade_records(list(records))
    logger.info("Analyzed %d screenshot(s) for %r", len(records), merged.class_name)

    return AnalysisResponse(success=True, data=grade_record_to_pydantic(merged))


if __name__ == "__main__":
    import uvicorn
    from rich.logging import RichHandler

    logging.basicConfig(level=logging.INFO, format="%(message)s", handlers=[RichHandler()])
    uvicorn.run(app, host="0.0.0.0", port=8001)
