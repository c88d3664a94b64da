"""JSON Schema for the Jira search response and its validator.

The schema is shallow: it pins down only what the fetcher reads
(``issues[].key``, ``issues[].fields.summary`` and ``errorMessages``) and
leaves everything else open so additive API changes never break parsing.
"""

from __future__ import annotations

from typing import Any

from jsonschema import Draft7Validator

SCHEMA_KEY = "$schema"
SCHEMA_URL = "http://json-schema.org/draft-07/schema#"

SEARCH_RESPONSE_SCHEMA: dict[str, Any] = {
    SCHEMA_KEY: SCHEMA_URL,
    "title": "JiraSearchResponse",
    "type": "object",
    "properties": {
        "issues": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["key"],
                "properties": {
                    "id": {"type": ["string", "integer"]},
                    "key": {"type": "string", "minLength": 1},
                    "fields": {
                        "type": "object",
                        "properties": {"summary": {"type": ["string", "null"]}},
                    },
                },
            },
        },
        "errorMessages": {"type": "array", "items": {"type": "string"}},
        "total": {"type": "integer"},
    },
    "anyOf": [
        {"required": ["issues"]},
        {"required": ["errorMessages"]},
    ],
}

_SEARCH_RESPONSE_VALIDATOR = Draft7Validator(SEARCH_RESPONSE_SCHEMA)


def _format_error_path(parts: list[Any]) -> str:
    return "/".join(str(p) for p in parts)


def search_response_errors(payload: Any) -> list[str]:
    """Return human-readable schema violations (empty when valid)."""
    errors = sorted(
        _SEARCH_RESPONSE_VALIDATOR.iter_errors(payload),
        key=lambda err: list(err.path),
    )
    messages: list[str] = []
    for err in errors:
        location = _format_error_path(list(err.path))
        messages.append(f"{location}: {err.message}" if location else err.message)
    return messages


__all__ = ["SEARCH_RESPONSE_SCHEMA", "search_response_errors"]
