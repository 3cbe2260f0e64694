from __future__ import annotations

from fastmcp import FastMCP

from .merge import merge_grade_records
from .models import FinalProjection, GradeRecord
from .projection import DEFAULT_FINAL_WEIGHT, DEFAULT_TARGET_GRADE, project_final


mcp = FastMCP("GradeServer")


# -----------------------------
# MCP Tool Implementation
# -----------------------------

@mcp.tool()
def merge_grades(records: list[GradeRecord]) -> GradeRecord:
    """Merge grade records extracted from several screenshots of one course.

    Records must be given in screenshot order. Duplicate assignments are
    matched by name (ignoring case and surrounding whitespace); a graded copy
    beats an ungraded one, then the copy with more points possible wins.
    Categories keep the first copy seen. The overall grade and letter are
    recomputed from the merged assignments. A single record is returned
    unchanged.

    Args:
        records: One or more extracted grade records

    Returns:
        The merged grade record
    """
    return merge_grade_records(records)


@mcp.tool()
def project_final_grade(
    record: GradeRecord,
    target_grade: str = DEFAULT_TARGET_GRADE,
    final_weight: float = DEFAULT_FINAL_WEIGHT,
) -> FinalProjection:
    """Work out the score needed on the final exam to reach a target grade.

    Examples:
    - "What do I need on the final to get an A?"
    - "Can I still get a B if the final is worth 30%?"

    Args:
        record: The (merged) grade record
        target_grade: Letter grade to aim for; unknown letters use a 90% threshold
        final_weight: Weight of the final as a percentage, in (0, 100]

    Returns:
        The needed score and whether it is achievable
    """
    return project_final(record, target_grade, final_weight)


if __name__ == "__main__":
    # Run as an MCP server over stdio
    mcp.run()
