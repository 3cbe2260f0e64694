"""Utility functions for the orchestrator."""
from pathlib import Path

from rich.console import Console

from grade_server.image_utils import ALLOWED_MIME_TYPES, guess_mime_type

console = Console()
err_console = Console(stderr=True)


def is_screenshot(path: str) -> bool:
    """True if ``path`` looks like a supported screenshot image."""
    return guess_mime_type(path) in ALLOWED_MIME_TYPES


def expand_input_paths(paths: tuple[str, ...]) -> list[str]:
    """Expand paths to include all record JSON files and screenshots in directories.

    Args:
        paths: Tuple of file paths and/or directory paths

    Returns:
        List of file paths with directories expanded, in sorted order per directory

    Raises:
        SystemExit: If a directory contains no usable files or a path does not exist
    """
    input_files: list[str] = []

    for path_str in paths:
        path = Path(path_str)

        if path.is_file():
            input_files.append(path_str)
        elif path.is_dir():
            found = sorted(
                p for p in path.iterdir()
                if p.is_file() and (p.suffix.lower() == ".json" or is_screenshot(str(p)))
            )

            if not found:
                err_console.print(
                    f"[red]Error:[/red] Directory '{path_str}' contains no record JSON or screenshot files."
                )
                raise SystemExit(1)

            input_files.extend(str(p) for p in found)
        else:
            err_console.print(f"[red]Error:[/red] Path '{path_str}' does not exist.")
            raise SystemExit(1)

    return input_files
