"""Field extraction and line encoding for the stream-json wire format.

Every message on the wire is a single JSON object terminated by a newline.
The helpers here validate the fields a decoder needs and raise
ProtocolDecodeError with a description of what was wrong; the caller
attaches the raw line.
"""

import json
from typing import Any, Dict, List, Optional

from .errors import ProtocolDecodeError


_MISSING = object()


def _type_error(context: str, key: str, expected: str, value: Any) -> ProtocolDecodeError:
    return ProtocolDecodeError(
        f"{context}: field '{key}' must be {expected}, got {type(value).__name__}"
    )


def require_str(data: Dict[str, Any], key: str, context: str) -> str:
    """Return a required string field."""
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        raise ProtocolDecodeError(f"{context}: missing required field '{key}'")
    if not isinstance(value, str):
        raise _type_error(context, key, "a string", value)
    return value


def require_dict(data: Dict[str, Any], key: str, context: str) -> Dict[str, Any]:
    """Return a required object field."""
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        raise ProtocolDecodeError(f"{context}: missing required field '{key}'")
    if not isinstance(value, dict):
        raise _type_error(context, key, "an object", value)
    return value


def require_list(data: Dict[str, Any], key: str, context: str) -> List[Any]:
    """Return a required array field."""
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        raise ProtocolDecodeError(f"{context}: missing required field '{key}'")
    if not isinstance(value, list):
        raise _type_error(context, key, "an array", value)
    return value


def optional_str(data: Dict[str, Any], key: str, context: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise _type_error(context, key, "a string", value)
    return value


def optional_bool(data: Dict[str, Any], key: str, context: str) -> Optional[bool]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise _type_error(context, key, "a boolean", value)
    return value


def optional_int(data: Dict[str, Any], key: str, context: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    # bool is an int subclass; a flag is never a counter
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, float) and value.is_integer():
            return int(value)
        raise _type_error(context, key, "an integer", value)
    return value


def optional_number(data: Dict[str, Any], key: str, context: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _type_error(context, key, "a number", value)
    return float(value)


def optional_dict(data: Dict[str, Any], key: str, context: str) -> Optional[Dict[str, Any]]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise _type_error(context, key, "an object", value)
    return value


def optional_list(data: Dict[str, Any], key: str, context: str) -> Optional[List[Any]]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise _type_error(context, key, "an array", value)
    return value


def load_object(line: str) -> Dict[str, Any]:
    """Parse one wire line into a JSON object.

    Raises:
        ProtocolDecodeError: If the line is not valid JSON or not an object.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolDecodeError(f"Invalid JSON ({e.msg})", raw_line=line) from e
    if not isinstance(data, dict):
        raise ProtocolDecodeError(
            f"Expected a JSON object, got {type(data).__name__}", raw_line=line
        )
    return data


def encode_line(message: Dict[str, Any]) -> str:
    """Serialize a message to a single newline-terminated JSON line."""
    # json.dumps escapes embedded newlines, so the result is always one line
    return json.dumps(message, ensure_ascii=False, separators=(",", ":")) + "\n"
