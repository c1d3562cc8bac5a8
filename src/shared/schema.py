"""JSON Schema validation for catalog and secrets files."""

from typing import Any

from jsonschema import Draft7Validator

TOOL_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "integer", "minimum": 0},
        "title": {"type": "string", "minLength": 1},
        "category": {"type": "string"},
        "status": {"type": "string", "enum": ["online", "maintenance", "offline"]},
        "logo_image": {"type": ["string", "null"]},
        "bg_color": {"type": ["string", "null"]},
        "text_color": {"type": ["string", "null"]},
        "website": {"type": ["string", "null"]},
    },
    "required": ["id", "title"],
    "additionalProperties": False,
}

CATALOG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "tools": {"type": "array", "items": TOOL_SCHEMA},
    },
    "required": ["tools"],
}

CREDENTIAL_BUNDLE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "email": {"type": "string"},
        "password": {"type": "string"},
        "cookie": {"type": "string"},
    },
    "required": ["email", "password", "cookie"],
    "additionalProperties": False,
}

SECRETS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "credentials": {
            "type": "object",
            "patternProperties": {"^[0-9]+$": CREDENTIAL_BUNDLE_SCHEMA},
            "additionalProperties": False,
        },
    },
    "required": ["credentials"],
}


def validate_schema(data: Any, schema: dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate data against a JSON Schema.

    Args:
        data: The data to validate
        schema: JSON Schema to validate against

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    if not schema:
        return True, []

    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])

    if not errors:
        return True, []

    error_messages = [
        f"{'.'.join(str(p) for p in e.path)}: {e.message}" if e.path else e.message
        for e in errors
    ]

    return False, error_messages
