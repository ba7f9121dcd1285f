"""
Extraction Result Validation

Schema checks applied to extraction results, both when the worker stores a
fresh result and when a reviewer verifies it later. Failures are returned as
a list of "<field path>: <message>" strings rather than raised.
"""

import json
from typing import Any

from pydantic import ValidationError

from app.modules.documents.schemas import TranscriptResult


def format_validation_errors(error: ValidationError) -> list[str]:
    messages = []
    for item in error.errors():
        path = ".".join(str(part) for part in item["loc"]) or "result"
        messages.append(f"{path}: {item['msg']}")
    return messages


def validate_transcript_data(data: Any) -> list[str]:
    """Check class records against TranscriptData (muc in {T,H}, diem numeric or null)."""
    if not isinstance(data, dict) or not data:
        return ["result: expected a non-empty object of class records"]
    try:
        TranscriptResult.validate_python(data)
    except ValidationError as e:
        return format_validation_errors(e)
    return []


def parse_stored_result(result: str | None) -> tuple[Any, list[str]]:
    """Decode a job's stored result; the error list is non-empty if it is unusable."""
    if result is None or not result.strip():
        return None, ["result: empty"]
    try:
        return json.loads(result), []
    except ValueError:
        return None, ["result: not valid JSON"]


def validate_transcript_result(result: str | None) -> list[str]:
    data, errors = parse_stored_result(result)
    if errors:
        return errors
    return validate_transcript_data(data)


def validate_certificate_result(result: str | None) -> list[str]:
    """Certificate results are opaque records; only their shape is checked."""
    data, errors = parse_stored_result(result)
    if errors:
        return errors
    if not isinstance(data, dict) or not data:
        return ["result: expected a non-empty object"]
    return []
