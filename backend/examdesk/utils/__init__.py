"""Utility functions for the ExamDesk backend."""

import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Tuple


def new_id(prefix: str) -> str:
    """Short prefixed identifier, e.g. ``exam_3f9a1c0b2d4e``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Any) -> Optional[datetime]:
    """
    Normalise a stored timestamp to an aware UTC datetime.

    Mongo hands back naive datetimes and older records keep ISO strings.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        raise TypeError(f"Expected datetime, got {type(value).__name__}")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_file_type(filename: str, allowed_extensions: Iterable[str]) -> Tuple[bool, str]:
    """Validate file type by extension."""
    if not filename or "." not in filename:
        return False, "File has no extension"

    file_ext = filename.split('.')[-1].lower()
    allowed = list(allowed_extensions)

    if file_ext not in allowed:
        return False, f"File type '{file_ext}' not allowed. Allowed: {allowed}"

    return True, "OK"


def validate_file_size(file_bytes: bytes, max_size_mb: int) -> Tuple[bool, str]:
    """Validate file size in MB."""
    if not file_bytes:
        return False, "File is empty"

    file_size_mb = len(file_bytes) / (1024 * 1024)

    if file_size_mb > max_size_mb:
        return False, f"File size {file_size_mb:.1f} MB exceeds limit of {max_size_mb} MB"

    return True, "OK"
