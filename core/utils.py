"""
Utility functions for the workflow engine.

Includes:
- UTC datetime helpers
- JSON document coercion and merging
"""

from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from core.types import JsonValue


def utcnow() -> datetime:
    """
    Get the current UTC datetime as a naive value.

    Every timestamp the engine persists is naive UTC, so values read back
    from any database backend compare cleanly against this.

    Returns:
        Current naive UTC datetime
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def as_aware_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime (for schedulers that need aware values)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_json_value(obj: Any, depth: int = 0) -> JsonValue:
    """Recursively convert ``obj`` into a JSON-serializable value."""
    if depth > 32:
        return str(obj)
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, timedelta):
        return obj.total_seconds()
    if isinstance(obj, Enum):
        return to_json_value(obj.value, depth + 1)
    if isinstance(obj, dict):
        return {str(k): to_json_value(v, depth + 1) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_json_value(v, depth + 1) for v in obj]
    if hasattr(obj, "model_dump"):
        return to_json_value(obj.model_dump(), depth + 1)
    return str(obj)


def merge_documents(base: JsonValue, override: JsonValue) -> JsonValue:
    """Shallow key-wise overlay of ``override`` on top of ``base``.

    When either side is not an object, ``override`` wins if present.
    """
    if isinstance(base, dict) and isinstance(override, dict):
        return {**base, **override}
    if override is not None:
        return override
    return base


def is_empty_document(value: JsonValue) -> bool:
    """True for ``None`` and empty strings, lists and objects."""
    if value is None:
        return True
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    return False
