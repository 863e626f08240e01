from __future__ import annotations

import pytest

from agentflow.agent_core.errors import InvalidInput
from agentflow.agent_core.tools.validation import validate_input

SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "count": {"type": "integer"},
        "ratio": {"type": "number"},
        "urgent": {"type": "boolean"},
        "tags": {"type": "array"},
        "meta": {"type": "object"},
        "channel": {"type": "string", "enum": ["email", "sms"]},
    },
    "required": ["title"],
}


def test_valid_payload_passes() -> None:
    validate_input(
        SCHEMA,
        {
            "title": "Hi",
            "count": 2,
            "ratio": 0.5,
            "urgent": False,
            "tags": ["a"],
            "meta": {},
            "channel": "sms",
            "extra": "ignored",
        },
    )


def test_missing_required_field_names_the_field() -> None:
    with pytest.raises(InvalidInput) as exc:
        validate_input(SCHEMA, {"count": 1})

    assert exc.value.field == "title"
    assert str(exc.value) == "Invalid input for 'title': required field is missing"


def test_null_required_field_counts_as_missing() -> None:
    with pytest.raises(InvalidInput):
        validate_input(SCHEMA, {"title": None})


@pytest.mark.parametrize(
    "field,value",
    [
        ("title", 5),
        ("count", "3"),
        ("count", True),
        ("ratio", "x"),
        ("urgent", 1),
        ("tags", "a,b"),
        ("meta", []),
    ],
)
def test_type_mismatch_is_rejected(field, value) -> None:
    payload = {"title": "Hi", field: value}

    with pytest.raises(InvalidInput) as exc:
        validate_input(SCHEMA, payload)

    assert exc.value.field == field


def test_enum_violation_is_rejected() -> None:
    with pytest.raises(InvalidInput, match="must be one of email, sms"):
        validate_input(SCHEMA, {"title": "Hi", "channel": "fax"})


def test_non_object_payload_is_rejected() -> None:
    with pytest.raises(InvalidInput):
        validate_input(SCHEMA, ["title"])  # type: ignore[arg-type]
