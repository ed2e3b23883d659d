"""
scribe_engine/document_manager.py -- The engine facade.

Owns the two aggregates of an open document (the entity registry and the
marker index, each behind its own ``threading.RLock``) plus the services
that operate across them, and exposes the operations the command layer
calls.

Locking
-------
Any operation that touches both aggregates acquires the entity lock first
and the marker lock second.  Nothing in the engine acquires them in the
opposite order, so two threads calling into the same manager cannot
deadlock.  File I/O (save, load, export, import) never runs while either
lock is held: the snapshot is taken under the locks and written after, and
a loaded document is fully parsed before it is swapped in.

Every mutation validates its input before it changes anything.  When an
operation raises, the registry and the index are exactly as they were.

Usage::

    from scribe_engine.document_manager import DocumentManager

    dm = DocumentManager()
    hero = dm.create_entity("Hero")
    dm.insert_marker(5, hero.id, [
        {"field_name": "stats.HP", "change_type": "relative", "value": "10"},
    ])
    dm.get_entity_state(hero.id, 7)   # -> {"stats": {"HP": 10.0}}
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Optional, Union

from scribe_engine import exporters, persistence
from scribe_engine.clock import SystemClock
from scribe_engine.duplication import DuplicationService
from scribe_engine.entity_registry import EntityRegistry
from scribe_engine.errors import InvalidFormatError
from scribe_engine.field_lifecycle import FieldLifecycleManager
from scribe_engine.formatting import paragraphs_from_content, paragraphs_to_content
from scribe_engine.marker_index import UPDATABLE_FIELDS, MarkerIndex
from scribe_engine.models.base import (
    DEFAULT_ENTITY_COLOR,
    Document,
    Entity,
    FieldChange,
    Marker,
    MarkerVisual,
)
from scribe_engine.models.validators import validate_hex_color
from scribe_engine.replay import StateReplayer
from scribe_engine.sheet import render_state_sheet
from scribe_engine.utils import new_id

logger = logging.getLogger(__name__)

ChangeInput = Union[FieldChange, dict]
VisualInput = Union[MarkerVisual, dict, None]


def _to_changes(changes: Iterable[ChangeInput]) -> list[FieldChange]:
    return [
        c if isinstance(c, FieldChange) else FieldChange.model_validate(c)
        for c in changes
    ]


def _to_visual(visual: VisualInput, default_color: str) -> MarkerVisual:
    if visual is None:
        return MarkerVisual(color=default_color)
    if isinstance(visual, MarkerVisual):
        return visual
    return MarkerVisual.model_validate(visual)


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValueError("A character needs a name. Please enter one and try again.")
    return cleaned


class DocumentManager:
    """All entities and markers of one open document.

    Parameters
    ----------
    clock : object, optional
        Anything with a ``now() -> int`` method.  Defaults to
        ``SystemClock``.
    id_factory : callable, optional
        Returns a fresh unique id string.  Defaults to UUID4.
    """

    def __init__(self, clock=None, id_factory: Optional[Callable[[], str]] = None):
        self.clock = clock or SystemClock()
        self._new_id = id_factory or new_id

        self.entities = EntityRegistry()
        self.markers = MarkerIndex()
        self._locks = {
            "entities": self.entities.lock,
            "markers": self.markers.lock,
        }

        self.replayer = StateReplayer(self.entities, self.markers)
        self.fields = FieldLifecycleManager(self.entities, self.markers, self.clock)
        self.duplicator = DuplicationService(
            self.entities, self.markers, self.replayer, self.clock, self._new_id
        )

    # ------------------------------------------------------------------
    # Lock-guarded access
    # ------------------------------------------------------------------

    def get_lock(self, name: str) -> threading.RLock:
        """Return the RLock of one aggregate (``"entities"`` or ``"markers"``)."""
        if name not in self._locks:
            raise KeyError(f"Unknown aggregate: {name}")
        return self._locks[name]

    @contextmanager
    def locked(self):
        """Hold both aggregate locks, entities first."""
        with self.get_lock("entities"), self.get_lock("markers"):
            yield self

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def create_entity(self, name: str, color: Optional[str] = None) -> Entity:
        entity = Entity(
            id=self._new_id(),
            name=_clean_name(name),
            color=color or DEFAULT_ENTITY_COLOR,
        )
        self.entities.put(entity)
        logger.info("Created entity %s (%s)", entity.id, entity.name)
        return entity

    def get_entity(self, entity_id: str) -> Entity:
        return self.entities.get(entity_id)

    def list_entities(self) -> list[Entity]:
        return self.entities.list_all()

    def update_entity(
        self, entity_id: str, name: Optional[str] = None, color: Optional[str] = None
    ) -> Entity:
        """Rename and/or recolour an entity.

        A given colour is pushed onto every marker the entity owns, even
        when it matches the current one.
        """
        new_name = _clean_name(name) if name is not None else None
        new_color = validate_hex_color(color) if color is not None else None

        with self.locked():
            entity = self.entities.get(entity_id)
            if new_name is not None:
                entity.name = new_name
            recolored = 0
            if new_color is not None:
                entity.color = new_color
                recolored = self.markers.recolor_entity(entity_id, new_color)
            self.entities.put(entity)

        logger.debug("Updated entity %s (%d marker(s) recoloured)", entity_id, recolored)
        return entity

    def delete_entity(self, entity_id: str) -> list[str]:
        """Delete an entity and every marker it owns.

        Returns
        -------
        list of str
            Ids of the markers removed with it.
        """
        with self.locked():
            self.entities.delete(entity_id)
            removed = self.markers.delete_for_entity(entity_id)
        logger.info("Deleted entity %s and %d marker(s)", entity_id, len(removed))
        return removed

    def duplicate_entity(
        self, entity_id: str, new_name: str, position: int
    ) -> tuple[Entity, Optional[Marker]]:
        return self.duplicator.duplicate(entity_id, new_name, position)

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------

    def delete_field(self, entity_id: str, field_name: str) -> int:
        """Erase a field from an entity and its whole marker history."""
        return self.fields.delete_field_completely(entity_id, field_name)

    def rename_field(self, entity_id: str, old_name: str, new_name: str) -> int:
        return self.fields.rename_field(entity_id, old_name, new_name)

    # ------------------------------------------------------------------
    # Markers
    # ------------------------------------------------------------------

    def insert_marker(
        self,
        position: int,
        entity_id: str,
        changes: Iterable[ChangeInput],
        visual: VisualInput = None,
        description: str = "",
    ) -> Marker:
        """Place a new marker for *entity_id* at *position*.

        Without an explicit *visual* the marker takes the entity's colour
        and the default icon.  Every field the changes touch is recorded
        in the entity's field registry.

        Raises
        ------
        EntityNotFoundError
            If *entity_id* does not exist.
        pydantic.ValidationError
            If the position, a change record or the visual is invalid.
        """
        change_list = _to_changes(changes)
        with self.locked():
            entity = self.entities.get(entity_id)
            now = self.clock.now()
            marker = Marker(
                id=self._new_id(),
                position=position,
                entity_id=entity_id,
                changes=change_list,
                visual=_to_visual(visual, entity.color),
                description=description or "",
                created_at=now,
                modified_at=now,
            )
            stored = self.markers.insert(marker)
            self.fields.record_fields(entity_id, change_list)
        return stored

    def update_marker(self, marker_id: str, **fields: Any) -> Marker:
        """Replace any of a marker's position, entity_id, changes, visual or
        description.  ``modified_at`` is refreshed."""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(
                f"Cannot update marker field(s): {', '.join(sorted(unknown))}."
            )
        if "changes" in fields:
            fields["changes"] = [c.model_dump() for c in _to_changes(fields["changes"])]
        if isinstance(fields.get("visual"), MarkerVisual):
            fields["visual"] = fields["visual"].model_dump()

        with self.locked():
            if "entity_id" in fields:
                self.entities.require(fields["entity_id"])
            updated = self.markers.update(marker_id, fields, self.clock.now())
            if "changes" in fields or "entity_id" in fields:
                self.fields.record_fields(updated.entity_id, updated.changes)
        logger.debug("Updated marker %s (%s)", marker_id, ", ".join(sorted(fields)) or "touch")
        return updated

    def delete_marker(self, marker_id: str) -> Marker:
        with self.locked():
            marker = self.markers.delete(marker_id)
        logger.debug("Deleted marker %s", marker_id)
        return marker

    def update_marker_positions(self, updates: Iterable[tuple[str, int]]) -> int:
        """Best-effort reposition after text edits; returns how many moved."""
        return self.markers.remap_positions(updates)

    def get_marker(self, marker_id: str) -> Marker:
        return self.markers.get(marker_id)

    def list_markers(self) -> list[Marker]:
        return self.markers.list_all()

    def markers_at_position(self, position: int) -> list[Marker]:
        return self.markers.list_at_position(position)

    def markers_for_entity(self, entity_id: str) -> list[Marker]:
        return self.markers.list_for_entity(entity_id)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def get_entity_state(self, entity_id: str, position: int) -> dict:
        return self.replayer.reconstruct(entity_id, position).to_dict()

    def render_entity_sheet(self, entity_id: str, position: int) -> str:
        with self.locked():
            entity = self.entities.get(entity_id)
            tree = self.replayer.reconstruct(entity_id, position)
        return render_state_sheet(tree.to_dict(), title=f"{entity.name} -- position {position}")

    # ------------------------------------------------------------------
    # Snapshots and persistence
    # ------------------------------------------------------------------

    def snapshot(self, content: str = "") -> Document:
        with self.locked():
            return Document(
                content=content,
                entities=self.entities.list_all(),
                markers=self.markers.list_all(),
            )

    def restore(self, document: Document) -> None:
        """Replace both collections with those of *document* (no merge)."""
        for label, items in (("character", document.entities), ("marker", document.markers)):
            ids = [item.id for item in items]
            if len(ids) != len(set(ids)):
                dupes = sorted({i for i in ids if ids.count(i) > 1})
                raise InvalidFormatError(
                    f"The document lists the same {label} id more than once: "
                    f"{', '.join(dupes)}."
                )
        with self.locked():
            self.entities.replace_all(document.entities)
            self.markers.replace_all(document.markers)

    def new_document(self) -> None:
        with self.locked():
            self.entities.clear()
            self.markers.clear()
        logger.info("Started a new document")

    def save_document(self, path, content: str = "") -> Document:
        document = self.snapshot(content)
        persistence.save_document(path, document)
        return document

    def load_document(self, path) -> Document:
        document = persistence.load_document(path)
        self.restore(document)
        return document

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_document(self, path, content: str) -> None:
        exporters.export_paragraphs(paragraphs_from_content(content), path)

    def import_document(self, path) -> str:
        """Read a .txt or .rtf file and return it as editor document JSON."""
        return paragraphs_to_content(exporters.import_paragraphs(path))
