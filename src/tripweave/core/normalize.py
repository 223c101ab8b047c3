"""Total-normalisation helpers.

Model output is untrusted: keys go missing, numbers arrive as strings, enums
come back in the wrong case. Every parser in :mod:`tripweave.ai` funnels its
raw values through these coercers so that a result is always fully populated
with the documented defaults. None of the functions here raise on bad input.
"""

from __future__ import annotations

import json
import logging
import math
from enum import Enum
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


def parse_optional_json(text: Any) -> Any | None:
    """Parse a JSON string, returning None when it is absent or invalid.

    This is the single place where a JSON decode failure is swallowed.

    Example:
        >>> parse_optional_json('{"camera": "X100"}')
        {'camera': 'X100'}
        >>> parse_optional_json("not json") is None
        True
    """
    if text is None:
        return None
    if isinstance(text, (dict, list)):
        return text
    if not isinstance(text, (str, bytes, bytearray)) or not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError as e:
        logger.debug(f"Ignoring unparseable JSON ({e.__class__.__name__})")
        return None


def as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def as_dict_list(value: Any) -> list[dict[str, Any]]:
    """Keep only the mapping entries of a list."""
    return [item for item in as_list(value) if isinstance(item, dict)]


def as_str(value: Any, default: str = "") -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def as_str_list(value: Any) -> list[str]:
    """Strings from a list, dropping anything else. A bare string becomes a one-item list."""
    if isinstance(value, str):
        return [value] if value.strip() else []
    return [item for item in as_list(value) if isinstance(item, str) and item.strip()]


def as_float(
    value: Any,
    default: float,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    """Coerce a number or numeric string, clamped into [minimum, maximum]."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value.strip())
        except ValueError:
            return default
    else:
        return default

    if math.isnan(result) or math.isinf(result):
        return default
    if minimum is not None:
        result = max(minimum, result)
    if maximum is not None:
        result = min(maximum, result)
    return result


def as_int(
    value: Any,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    result = as_float(value, float(default), minimum, maximum)
    return int(round(result))


def as_bool(value: Any, default: bool) -> bool:
    """Accept real booleans and the usual string spellings; anything else is the default."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1"):
            return True
        if lowered in ("false", "no", "0"):
            return False
    return default


def as_enum(value: Any, enum_cls: type[E], default: E) -> E:
    """Match an enum by value, case-insensitively."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        for member in enum_cls:
            if str(member.value).lower() == lowered:
                return member
    return default
