"""JSON helpers for TEXT columns and SQLite json_* aggregates."""

import json
from typing import Any

from pydantic import BaseModel


def parse_json_field(raw: str | dict | None) -> dict[str, Any] | None:
    """Parse a JSON string or dict, returning None on failure or empty.

    For dict-valued columns such as nodes.info.
    Returns None for: None, empty string, empty dict, invalid JSON, non-dict JSON.
    """
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw if raw else None
    if isinstance(raw, str):
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, dict) and parsed:
                return parsed
        except (ValueError, TypeError):
            pass
    return None


def parse_json_list(raw: str | list | None) -> list:
    """Parse a JSON array from an aggregate column. Empty list on None or bad input."""
    if raw is None:
        return []
    if isinstance(raw, list):
        return raw
    try:
        parsed = json.loads(raw)
    except (ValueError, TypeError):
        return []
    return parsed if isinstance(parsed, list) else []


def model_json_or_none(value: BaseModel | None) -> str | None:
    """Serialize a model for a TEXT column, or None."""
    if value is None:
        return None
    return value.model_dump_json()
