"""
scribe_engine/models/base.py -- Pydantic v2 models for QuestScribe documents.

These models define the serialized shape of a ``.qsd`` document and are the
boundary where user input is validated.  Field names and the lowercase change
type names (``absolute`` / ``relative`` / ``remove``) match the document
format written by earlier QuestScribe releases, so older files load
unchanged.

Key design decisions:
    - Change payloads are stored as text.  Typed values (numbers, booleans)
      given at the input boundary are normalised to text by a ``before``
      validator; ``FieldChange.typed_value()`` applies the one coercion
      policy from ``validators.coerce_value``.
    - ``FieldChange`` is frozen.  Marker change lists are replaced as a
      whole, never edited record by record.
    - Missing optional keys in older documents fall back to the same
      defaults earlier releases used (gold colour, star icon, "now"
      timestamps).
"""

from __future__ import annotations

import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from scribe_engine.models.validators import (
    StateValue,
    coerce_value,
    payload_text,
    validate_field_path,
    validate_hex_color,
)

DEFAULT_ENTITY_COLOR = "#FFD700"
DEFAULT_MARKER_ICON = "⭐"


def _epoch_now() -> int:
    return int(time.time())


class ChangeType(str, Enum):
    """How a change record mutates its field.

    - SET (``"absolute"``): set the field to the value.
    - ADD (``"relative"``): add the numeric value to the current value.
    - REMOVE (``"remove"``): delete the field from the state.
    """

    SET = "absolute"
    ADD = "relative"
    REMOVE = "remove"

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        lowered = value.strip().lower()
        aliases = {
            "set": cls.SET,
            "absolute": cls.SET,
            "add": cls.ADD,
            "relative": cls.ADD,
            "remove": cls.REMOVE,
            "delete": cls.REMOVE,
        }
        return aliases.get(lowered)


class FieldChange(BaseModel):
    """One typed mutation of one dotted attribute path."""

    model_config = ConfigDict(frozen=True)

    field_name: str
    change_type: ChangeType
    value: str = ""

    @field_validator("field_name")
    @classmethod
    def _check_field_name(cls, v: str) -> str:
        return validate_field_path(v)

    @field_validator("value", mode="before")
    @classmethod
    def _normalise_value(cls, v):
        return payload_text(v)

    def typed_value(self) -> StateValue:
        return coerce_value(self.value)


class MarkerVisual(BaseModel):
    icon: str = DEFAULT_MARKER_ICON
    color: str = DEFAULT_ENTITY_COLOR

    @field_validator("color")
    @classmethod
    def _check_color(cls, v: str) -> str:
        return validate_hex_color(v)


class Marker(BaseModel):
    """A positioned event carrying field changes for one entity."""

    id: str
    position: int = Field(ge=0)
    entity_id: str
    changes: list[FieldChange] = Field(default_factory=list)
    visual: MarkerVisual = Field(default_factory=MarkerVisual)
    description: str = ""
    created_at: int = Field(default_factory=_epoch_now)
    modified_at: int = Field(default_factory=_epoch_now)

    @property
    def field_names(self) -> list[str]:
        """Distinct field names touched by this marker, in list order."""
        seen: list[str] = []
        for change in self.changes:
            if change.field_name not in seen:
                seen.append(change.field_name)
        return seen


class FieldMetadata(BaseModel):
    created_at: int
    last_modified: int


class Entity(BaseModel):
    """A tracked character or object."""

    id: str
    name: str
    fields: list[str] = Field(default_factory=list)
    color: str = DEFAULT_ENTITY_COLOR
    field_metadata: dict[str, FieldMetadata] = Field(default_factory=dict)

    @field_validator("color")
    @classmethod
    def _check_color(cls, v: str) -> str:
        return validate_hex_color(v)

    @field_validator("fields")
    @classmethod
    def _dedupe_fields(cls, v: list[str]) -> list[str]:
        # Registry order is first-seen order; repeated entries collapse.
        return list(dict.fromkeys(v))


class Document(BaseModel):
    """The full persisted checkpoint: text plus both collections."""

    content: str = ""
    entities: list[Entity] = Field(default_factory=list)
    markers: list[Marker] = Field(default_factory=list)
