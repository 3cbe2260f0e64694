# -*- coding: utf-8 -*-
import mimetypes
from pathlib import Path

ALLOWED_MIME_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")
MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB


class InvalidImageError(ValueError):
    """Raised when a screenshot is rejected before extraction."""


def guess_mime_type(path: str) -> str:
    """
    Guesses the MIME type of an image from its file name.
    :param path: A local file path.
    :return: The MIME type, or "application/octet-stream" if unknown.
    """
    mime_type, _ = mimetypes.guess_type(path)
    return mime_type or "application/octet-stream"


def validate_screenshot(content: bytes, mime_type: str, max_bytes: int = MAX_UPLOAD_BYTES) -> None:
    """
    Rejects screenshots the extractor should never see.
    :param content: Raw image bytes.
    :param mime_type: Declared MIME type of the upload.
    :param max_bytes: Size limit in bytes.
    """
    if mime_type not in ALLOWED_MIME_TYPES:
        raise InvalidImageError("Invalid file type. Only JPEG, PNG, WebP, and GIF allowed.")
    if not content:
        raise InvalidImageError("Screenshot file is empty.")
    if len(content) > max_bytes:
        raise InvalidImageError(f"Screenshot exceeds the upload size limit ({max_bytes} bytes).")


def load_screenshot(path: str, max_bytes: int = MAX_UPLOAD_BYTES) -> tuple[bytes, str]:
    """
    Loads and validates a screenshot from a local path.
    :param path: A local file path to an image.
    :return: The image bytes and their MIME type.
    """
    image_path = Path(path)
    if not image_path.is_file():
        raise FileNotFoundError(f"File not found: {image_path}")
    content = image_path.read_bytes()
    mime_type = guess_mime_type(path)
    validate_screenshot(content, mime_type, max_bytes)
    return content, mime_type
