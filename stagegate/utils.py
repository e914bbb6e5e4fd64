"""Shared utility functions used across Stagegate modules."""
from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from typing import Any

_MISSING = object()


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    """Safely parse a JSON string, returning *default* on failure.

    If no default is given, returns ``{}`` on parse error.
    """
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow_iso() -> str:
    """Current UTC time as an ISO-8601 string (the stored date format)."""
    return datetime.now(UTC).isoformat()
