"""
scribe_engine/models/ -- Pydantic v2 models for QuestScribe documents.

Submodules:
    base        Entity, Marker, FieldChange, Document and friends.
    validators  Payload coercion and field validators.
"""

from scribe_engine.models.base import (
    DEFAULT_ENTITY_COLOR,
    DEFAULT_MARKER_ICON,
    ChangeType,
    Document,
    Entity,
    FieldChange,
    FieldMetadata,
    Marker,
    MarkerVisual,
)

__all__ = [
    "DEFAULT_ENTITY_COLOR",
    "DEFAULT_MARKER_ICON",
    "ChangeType",
    "Document",
    "Entity",
    "FieldChange",
    "FieldMetadata",
    "Marker",
    "MarkerVisual",
]
