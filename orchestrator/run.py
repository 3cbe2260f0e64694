# -*- coding: utf-8 -*-
import json
import logging
import os
import typing as t
from dataclasses import asdict

import click
import httpx
from rich.json import JSON
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from grade_server.extraction import (
    ExtractionError,
    extract_with_retry,
    grade_record_from_dict,
    load_extractor,
)
from grade_server.image_utils import load_screenshot
from grade_server.merge import merge_grade_records
from grade_server.models import FinalProjection, GradeRecord
from grade_server.projection import (
    DEFAULT_FINAL_WEIGHT,
    DEFAULT_TARGET_GRADE,
    next_lower_grade,
    project_final,
)
from orchestrator.utils import console, err_console, expand_input_paths, is_screenshot
from services.shared.models import (
    GradeRecord as PydanticGradeRecord,
    MergeGradesRequest,
    ProjectFinalRequest,
    ProjectFinalResponse,
    grade_record_to_dataclass,
    grade_record_to_pydantic,
)

# Timeout for calls to the grade service (in seconds)
SERVICE_TIMEOUT = 30.0


def display_verbose_json(title: str, data: t.Any) -> None:
    """Display JSON data in a panel."""
    console.print(Panel(JSON(json.dumps(data, indent=2)), title=f"📄 {title}", expand=True, border_style="blue"))


def load_record_file(path: str) -> GradeRecord:
    """Load one extracted grade record from a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return grade_record_from_dict(data)


def merge_via_service(records: list[GradeRecord], service_url: str) -> GradeRecord:
    """Merge records with a running grade service instead of locally."""
    request = MergeGradesRequest(records=[grade_record_to_pydantic(r) for r in records])
    try:
        with httpx.Client(timeout=SERVICE_TIMEOUT) as client:
            response = client.post(f"{service_url}/grades:merge", json=request.to_json_dict())
            response.raise_for_status()
    except httpx.TimeoutException:
        raise RuntimeError(f"Grade merge timed out after {SERVICE_TIMEOUT} seconds")
    except httpx.HTTPStatusError as e:
        raise RuntimeError(f"HTTP error from grade service: {e.response.status_code} {e.response.text}")
    except httpx.HTTPError as e:
        raise RuntimeError(f"Error calling grade service: {e}")

    return grade_record_to_dataclass(PydanticGradeRecord.model_validate(response.json()))


def project_via_service(
    record: GradeRecord,
    target_grade: str,
    final_weight: float,
    service_url: str,
) -> FinalProjection:
    """Ask a running grade service for the final exam projection."""
    request = ProjectFinalRequest(
        record=grade_record_to_pydantic(record),
        target_grade=target_grade,
        final_weight=final_weight,
    )
    try:
        with httpx.Client(timeout=SERVICE_TIMEOUT) as client:
            response = client.post(f"{service_url}/grades:project", json=request.to_json_dict())
            response.raise_for_status()
    except httpx.TimeoutException:
        raise RuntimeError(f"Final projection timed out after {SERVICE_TIMEOUT} seconds")
    except httpx.HTTPStatusError as e:
        raise RuntimeError(f"HTTP error from grade service: {e.response.status_code} {e.response.text}")
    except httpx.HTTPError as e:
        raise RuntimeError(f"Error calling grade service: {e}")

    data = ProjectFinalResponse.model_validate(response.json()).model_dump(exclude={"suggested_grade"})
    return FinalProjection(**data)


def format_score(value: t.Optional[float]) -> str:
    """Format a number without trailing zeros, "-" for missing values."""
    if value is None:
        return "-"
    return f"{value:g}"


def create_summary_panel(record: GradeRecord) -> Panel:
    """Create the headline panel: course, instructor, grade."""
    text = Text()
    text.append(f"{record.class_name or 'Unknown course'}\n", style="bold white")
    if record.instructor:
        text.append(f"{record.instructor}\n", style="dim")
    text.append("Current grade: ", style="white")
    text.append(f"{record.current_grade:.2f}%", style="bold green")
    text.append("  ")
    text.append(record.letter_grade or "-", style="bold magenta")
    return Panel(text, title="📊 Grade Summary", border_style="green")


def create_assignments_table(record: GradeRecord) -> Table:
    """Create a table of the record's assignments."""
    table = Table(title="📝 Assignments", show_header=True, header_style="bold magenta")
    table.add_column("Name", style="white")
    table.add_column("Category", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Possible", justify="right")
    table.add_column("%", justify="right", style="yellow")
    table.add_column("Due", style="dim")

    for a in record.assignments:
        if a.score is not None and a.points_possible > 0:
            percent = f"{100 * a.score / a.points_possible:.1f}"
        else:
            percent = "-"
        name = f"{a.name} (dropped)" if a.is_dropped else a.name
        table.add_row(
            name,
            a.category,
            format_score(a.score),
            format_score(a.points_possible),
            percent,
            a.due_date or "",
        )
    return table


def create_categories_table(record: GradeRecord) -> Table:
    """Create a table of category weights."""
    table = Table(title="📦 Categories", show_header=True, header_style="bold magenta")
    table.add_column("Category", style="cyan")
    table.add_column("Weight", justify="right")
    table.add_column("Drop lowest", justify="right")
    for c in record.categories:
        table.add_row(c.name, f"{format_score(c.weight)}%", format_score(c.drop_lowest))
    return table


def create_projection_panel(projection: FinalProjection, grading_scale: t.Mapping[str, float]) -> Panel:
    """Create the "what do I need on the final" panel."""
    text = Text()
    target = f"{projection.target_grade} ({format_score(projection.target_percentage)}%)"

    if projection.is_possible:
        text.append("Score needed: ", style="white")
        text.append(f"{projection.needed_score:.1f}%", style="bold green")
        text.append(f" on your final to get a {target}")
        if projection.needed_score < 60:
            text.append("\nLooking good! Very achievable.", style="green")
        border = "green"
    elif projection.needed_score == 0:
        text.append(f"You are already above {target}, whatever the final.", style="bold green")
        border = "green"
    else:
        text.append("Not possible: ", style="bold red")
        text.append(f"you would need {projection.needed_score:.1f}% on the final to get a {target}")
        lower = next_lower_grade(grading_scale, projection.target_grade)
        text.append(f"\nConsider aiming for a {lower or 'lower grade'}", style="dim")
        border = "red"

    title = f"🎯 Final worth {format_score(projection.final_weight)}%"
    return Panel(text, title=title, border_style=border)


def collect_records(
    input_files: list[str],
    extractor_spec: t.Optional[str],
) -> list[GradeRecord]:
    """Load record JSON files and extract screenshots, in the order given."""
    extractor = None
    records: list[GradeRecord] = []

    for path in input_files:
        name = os.path.basename(path)
        if is_screenshot(path):
            if extractor is None:
                if not extractor_spec:
                    raise click.UsageError(
                        f"{name} is a screenshot; pass --extractor (or set GRADE_EXTRACTOR) to read it."
                    )
                try:
                    extractor = load_extractor(extractor_spec)
                except (ImportError, AttributeError, TypeError) as e:
                    raise click.UsageError(f"Cannot load extractor {extractor_spec!r}: {e}")
            content, mime_type = load_screenshot(path)
            record = extract_with_retry(extractor, content, mime_type)
        else:
            record = load_record_file(path)

        console.print(f"   ✓ {name}: {len(record.assignments)} assignments")
        records.append(record)

    return records


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("inputs", nargs=-1, type=click.Path(exists=True))
@click.option("--target", "-t", default=DEFAULT_TARGET_GRADE, show_default=True,
              help="Letter grade to aim for.")
@click.option("--final-weight", "-w", default=DEFAULT_FINAL_WEIGHT, show_default=True,
              type=click.FloatRange(min=0, max=100, min_open=True),
              help="Weight of the final exam, in percent.")
@click.option("--service-url", envvar="GRADE_SERVICE_URL", default=None,
              help="Use a running grade service instead of merging locally.")
@click.option("--extractor", "extractor_spec", envvar="GRADE_EXTRACTOR", default=None,
              help="Extractor for screenshot inputs, as 'package.module:attribute'.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
def main(
    inputs: tuple[str, ...],
    target: str,
    final_weight: float,
    service_url: t.Optional[str],
    extractor_spec: t.Optional[str],
    verbose: bool,
) -> None:
    """Merge gradebook records and work out what you need on the final.

    INPUTS: Extracted record JSON files, screenshots, or directories of either.
    Order matters: earlier inputs win ties when merging.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console)],
    )

    if not inputs:
        err_console.print("[red]Error:[/red] Provide one or more record files or screenshots.")
        raise SystemExit(1)

    input_files = expand_input_paths(inputs)

    console.print(
        Panel.fit(
            f"[bold blue]🎓 Grade Summary[/bold blue]\n"
            f"Reading [bold]{len(input_files)}[/bold] input(s)",
            border_style="blue",
        )
    )

    try:
        records = collect_records(input_files, extractor_spec)
        if service_url:
            merged = merge_via_service(records, service_url.rstrip("/"))
            projection = project_via_service(merged, target, final_weight, service_url.rstrip("/"))
        else:
            merged = merge_grade_records(records)
            projection = project_final(merged, target, final_weight)
    except (ValueError, OSError, ExtractionError, RuntimeError) as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    if verbose:
        display_verbose_json("Merged Record", asdict(merged))

    console.print(create_summary_panel(merged))
    if merged.assignments:
        console.print(create_assignments_table(merged))
    if merged.categories:
        console.print(create_categories_table(merged))
    console.print(create_projection_panel(projection, merged.grading_scale))


if __name__ == "__main__":
    main()
