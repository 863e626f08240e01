"""Input validation against a tool's parameter schema.

Only the subset of JSON schema that tool definitions use is supported:
``required``, per-property ``type`` and ``enum``. Unknown properties pass
through untouched.
"""

from __future__ import annotations

from typing import Any, Dict

from ..errors import InvalidInput

_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    # bool is a subclass of int; booleans never satisfy numeric types.
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, (list, tuple)),
    "object": lambda v: isinstance(v, dict),
}


def validate_input(schema: Dict[str, Any], payload: Dict[str, Any]) -> None:
    """
    Validate a tool input payload.

    Args:
        schema: The tool's parameter schema.
        payload: The input supplied by the agent.

    Raises:
        InvalidInput: Naming the first offending field.
    """
    if not isinstance(payload, dict):
        raise InvalidInput("input", "expected an object")

    for name in schema.get("required") or []:
        if payload.get(name) is None:
            raise InvalidInput(name, "required field is missing")

    properties: Dict[str, Any] = schema.get("properties") or {}
    for name, value in payload.items():
        prop = properties.get(name)
        if prop is None or value is None:
            continue
        expected = prop.get("type")
        check = _TYPE_CHECKS.get(expected) if isinstance(expected, str) else None
        if check is not None and not check(value):
            raise InvalidInput(name, f"expected {expected}, got {type(value).__name__}")
        allowed = prop.get("enum")
        if allowed is not None and value not in allowed:
            raise InvalidInput(name, f"must be one of {', '.join(map(str, allowed))}")
