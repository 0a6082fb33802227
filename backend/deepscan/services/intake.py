"""
Request validation for uploads and URL submissions.

Everything here runs before a job is created, so a rejected request never
leaves state behind.
"""
from __future__ import annotations

import json
import posixpath
import re
from typing import Any, List, Optional, Sequence, Tuple
from urllib.parse import unquote, urlparse

from ..exceptions import PayloadTooLargeError, ValidationError

MEDIA_URL_PATTERN = re.compile(r"^https?://.+\.(jpg|jpeg|png|mp4|mov)$", re.IGNORECASE)

EXTENSION_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
}


def parse_job_id(raw: Any) -> int:
    """Job ids are positive integers; anything else is a validation error."""
    if isinstance(raw, bool):
        raise ValidationError("Invalid media ID")
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        if not text.isdigit():
            raise ValidationError("Invalid media ID")
        value = int(text)
    if value < 1:
        raise ValidationError("Invalid media ID")
    return value


def _model_id(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValidationError(f"Invalid model id: {raw!r}")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().lstrip("-").isdigit():
        return int(raw.strip())
    raise ValidationError(f"Invalid model id: {raw!r}")


def parse_selected_models(raw: Any) -> Optional[List[int]]:
    """
    Normalize an explicit model selection.

    Accepts None, an empty string, a JSON array string, or a list of ints and
    numeric strings. Returns None when nothing was selected, so the selector
    falls back to the active models. Malformed input raises ValidationError;
    it never silently turns into some default subset.
    """
    if raw is None:
        return None

    items: Any = raw
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            items = json.loads(text)
        except json.JSONDecodeError:
            raise ValidationError("selectedModels must be a JSON array of model ids")

    if not isinstance(items, (list, tuple)):
        raise ValidationError("selectedModels must be an array of model ids")

    ids = [_model_id(item) for item in items]
    return ids or None


def validate_media(filetype: Optional[str], filesize: int, allowed_types: Sequence[str], max_bytes: int) -> None:
    if not filetype or filetype not in allowed_types:
        raise ValidationError(
            "Unsupported file type. Only JPG, PNG, MP4, and MOV files are allowed."
        )
    if filesize < 0:
        raise ValidationError("File size cannot be negative")
    if filesize > max_bytes:
        raise PayloadTooLargeError(max_bytes)


def describe_media_url(url: Optional[str]) -> Tuple[str, str]:
    """Return (filename, filetype) for a remote media URL."""
    if not url:
        raise ValidationError("No URL provided")

    url = url.strip()
    if not MEDIA_URL_PATTERN.match(url):
        raise ValidationError("Invalid URL format or unsupported file type")

    path = unquote(urlparse(url).path)
    filename = posixpath.basename(path)
    extension = posixpath.splitext(filename)[1].lower()

    filetype = EXTENSION_MIME_TYPES.get(extension)
    if not filename or filetype is None:
        raise ValidationError("Unsupported file type")
    return filename, filetype
