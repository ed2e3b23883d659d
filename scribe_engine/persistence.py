"""
scribe_engine/persistence.py -- Save and load ``.qsd`` document snapshots.

A snapshot is one JSON object::

    {
      "schema_version": 1,
      "content": "<editor document JSON>",
      "entities": [Entity, ...],
      "markers": [Marker, ...]
    }

``schema_version`` is optional on input; documents written before it
existed load unchanged.  Loading is validated twice: first structurally
against ``DOCUMENT_SCHEMA`` with jsonschema (so the user gets a message
pointing at the broken part of the file), then by the pydantic models
(colours, positions, change types, dotted paths).

Writes use the atomic temp-file + ``os.replace()`` helper, so an
interrupted save never leaves a truncated document behind.
"""

from __future__ import annotations

import json
import logging

import jsonschema
from pydantic import ValidationError

from scribe_engine.errors import IOFailureError, InvalidFormatError
from scribe_engine.models.base import Document
from scribe_engine.utils import read_json, safe_write_json

logger = logging.getLogger(__name__)

DOCUMENT_EXTENSION = ".qsd"
SCHEMA_VERSION = 1

_CHANGE_SCHEMA = {
    "type": "object",
    "required": ["field_name", "change_type"],
    "properties": {
        "field_name": {"type": "string", "minLength": 1},
        "change_type": {"type": "string"},
        "value": {"type": ["string", "number", "boolean", "null"]},
    },
}

DOCUMENT_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "QuestScribe document",
    "type": "object",
    "required": ["content", "entities", "markers"],
    "properties": {
        "schema_version": {"type": "integer", "minimum": 1},
        "content": {"type": "string"},
        "entities": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "name"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "name": {"type": "string"},
                    "color": {"type": "string"},
                    "fields": {"type": "array", "items": {"type": "string"}},
                    "field_metadata": {
                        "type": "object",
                        "additionalProperties": {
                            "type": "object",
                            "required": ["created_at", "last_modified"],
                            "properties": {
                                "created_at": {"type": "integer"},
                                "last_modified": {"type": "integer"},
                            },
                        },
                    },
                },
            },
        },
        "markers": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "position", "entity_id"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "position": {"type": "integer", "minimum": 0},
                    "entity_id": {"type": "string"},
                    "changes": {"type": "array", "items": _CHANGE_SCHEMA},
                    "visual": {
                        "type": "object",
                        "properties": {
                            "icon": {"type": "string"},
                            "color": {"type": "string"},
                        },
                    },
                    "description": {"type": "string"},
                    "created_at": {"type": "integer"},
                    "modified_at": {"type": "integer"},
                },
            },
        },
    },
}


# ---------------------------------------------------------------------------
# Error formatting
# ---------------------------------------------------------------------------

def _humanize_schema_error(error: jsonschema.ValidationError) -> str:
    """Convert a ``jsonschema.ValidationError`` into plain English."""
    path = " -> ".join(str(p) for p in error.absolute_path) if error.absolute_path else "(root)"
    msg = error.message
    if error.validator == "required":
        return f"Missing required field at {path}: {msg}"
    if error.validator == "type":
        return f"Wrong data type at '{path}': {msg}"
    if error.validator == "minimum":
        return f"Value too small at '{path}': {msg}"
    return f"Issue at '{path}': {msg}"


def _humanize_model_error(error: ValidationError) -> str:
    lines = []
    for item in error.errors():
        path = " -> ".join(str(p) for p in item.get("loc", ())) or "(root)"
        lines.append(f"Issue at '{path}': {item.get('msg', 'invalid value')}")
    return "\n".join(f"  {i}. {line}" for i, line in enumerate(lines, 1))


def _invalid(path, details: str) -> InvalidFormatError:
    return InvalidFormatError(
        f"'{path}' is not a valid QuestScribe document:\n{details}\n"
        f"The file may be damaged or was written by another program."
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_payload(payload) -> list[str]:
    """Return friendly messages for every schema violation in *payload*."""
    validator = jsonschema.Draft202012Validator(DOCUMENT_SCHEMA)
    return [_humanize_schema_error(e) for e in validator.iter_errors(payload)]


def document_to_payload(document: Document) -> dict:
    payload = {"schema_version": SCHEMA_VERSION}
    payload.update(document.model_dump(mode="json"))
    return payload


def document_from_payload(payload, source="document") -> Document:
    """Validate a decoded JSON payload and build a ``Document`` from it.

    Raises
    ------
    InvalidFormatError
        If the payload fails the document schema or model validation.
    """
    problems = validate_payload(payload)
    if problems:
        raise _invalid(source, "\n".join(f"  {i}. {p}" for i, p in enumerate(problems, 1)))
    try:
        return Document.model_validate(payload)
    except ValidationError as exc:
        raise _invalid(source, _humanize_model_error(exc)) from exc


def save_document(path, document: Document) -> None:
    """Write *document* to *path* atomically.

    Raises
    ------
    IOFailureError
        If the file cannot be written.
    """
    try:
        safe_write_json(path, document_to_payload(document))
    except OSError as exc:
        raise IOFailureError(
            f"Could not save the document to '{path}'. Check that the folder "
            f"exists and you have permission to write there. "
            f"Technical detail: {exc}"
        ) from exc
    logger.info(
        "Saved document to %s (%d entities, %d markers)",
        path, len(document.entities), len(document.markers),
    )


def load_document(path) -> Document:
    """Read and validate the document at *path*.

    Raises
    ------
    IOFailureError
        If the file cannot be read.
    InvalidFormatError
        If the file is not JSON or not a valid document.
    """
    try:
        payload = read_json(path)
    except json.JSONDecodeError as exc:
        raise _invalid(path, f"  1. The file is not valid JSON ({exc.msg}, line {exc.lineno}).") from exc
    except UnicodeDecodeError as exc:
        raise _invalid(path, "  1. The file is not UTF-8 text.") from exc
    except OSError as exc:
        raise IOFailureError(
            f"Could not open '{path}'. Check that the file exists and that "
            f"you have permission to read it. Technical detail: {exc}"
        ) from exc

    document = document_from_payload(payload, source=path)
    logger.info(
        "Loaded document from %s (%d entities, %d markers)",
        path, len(document.entities), len(document.markers),
    )
    return document
