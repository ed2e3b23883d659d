"""
scribe_engine/field_lifecycle.py -- Field registry upkeep and field cascades.

Each entity keeps a registry of every attribute path its markers have ever
touched (``Entity.fields``, first-seen order) plus created/modified
timestamps per path (``Entity.field_metadata``).  This module keeps that
registry in step with the markers and implements the operations that
rewrite marker history for a whole entity:

    - ``delete_field_completely``: purge a field from the registry *and*
      from every marker of the entity (SET, ADD and REMOVE records alike).
    - ``rename_field``: rename a field everywhere, merging into an existing
      field of the new name.
    - ``apply_entity_color``: push an entity's colour onto all its markers.

Every cascade holds the entity lock and then the marker lock for its whole
duration, so readers see either the old or the new history, never a mix.
"""

from __future__ import annotations

import logging
from typing import Iterable

from scribe_engine.clock import SystemClock
from scribe_engine.entity_registry import EntityRegistry
from scribe_engine.marker_index import MarkerIndex
from scribe_engine.models.base import Entity, FieldChange, FieldMetadata
from scribe_engine.models.validators import validate_field_path

logger = logging.getLogger(__name__)


def register_fields(entity: Entity, field_names: Iterable[str], now: int) -> Entity:
    """Return a copy of *entity* with *field_names* recorded in its registry."""
    updated = entity.model_copy(deep=True)
    for name in field_names:
        meta = updated.field_metadata.get(name)
        if name not in updated.fields:
            updated.fields.append(name)
        if meta is None:
            updated.field_metadata[name] = FieldMetadata(created_at=now, last_modified=now)
        else:
            meta.last_modified = now
    return updated


class FieldLifecycleManager:
    """Keeps entity field registries consistent with marker history."""

    def __init__(self, registry: EntityRegistry, index: MarkerIndex, clock=None):
        self._registry = registry
        self._index = index
        self._clock = clock or SystemClock()

    def record_fields(self, entity_id: str, changes: Iterable[FieldChange]) -> Entity:
        """Register every field touched by *changes* on *entity_id*.

        New paths are appended with ``created_at = last_modified = now``;
        known paths get a fresh ``last_modified``.
        """
        names = list(dict.fromkeys(c.field_name for c in changes))
        with self._registry.lock:
            entity = register_fields(self._registry.get(entity_id), names, self._clock.now())
            self._registry.put(entity)
        return entity

    def delete_field_completely(self, entity_id: str, field_name: str) -> int:
        """Erase *field_name* from *entity_id*'s registry and marker history.

        This rewrites history and cannot be undone.

        Returns
        -------
        int
            Number of change records removed from markers.
        """
        with self._registry.lock, self._index.lock:
            entity = self._registry.get(entity_id)
            removed = sum(
                1
                for marker in self._index.list_for_entity(entity_id)
                for change in marker.changes
                if change.field_name == field_name
            )
            now = self._clock.now()
            self._index.rewrite_changes(
                entity_id,
                lambda changes: [c for c in changes if c.field_name != field_name],
                now,
            )
            if field_name in entity.fields:
                entity.fields.remove(field_name)
            entity.field_metadata.pop(field_name, None)
            self._registry.put(entity)

        logger.info(
            "Purged field '%s' from %s (%d change record(s) removed)",
            field_name, entity_id, removed,
        )
        return removed

    def rename_field(self, entity_id: str, old_name: str, new_name: str) -> int:
        """Rename *old_name* to *new_name* across *entity_id*'s history.

        If *new_name* is already registered the two registry entries merge:
        the existing position of *new_name* is kept, with the earliest
        ``created_at`` and the latest ``last_modified`` of the pair.

        Returns
        -------
        int
            Number of change records renamed.
        """
        validate_field_path(new_name)
        if old_name == new_name:
            return 0

        with self._registry.lock, self._index.lock:
            entity = self._registry.get(entity_id)
            renamed = sum(
                1
                for marker in self._index.list_for_entity(entity_id)
                for change in marker.changes
                if change.field_name == old_name
            )
            if renamed == 0 and old_name not in entity.fields:
                return 0
            now = self._clock.now()
            self._index.rewrite_changes(
                entity_id,
                lambda changes: [
                    c.model_copy(update={"field_name": new_name}) if c.field_name == old_name else c
                    for c in changes
                ],
                now,
            )

            old_meta = entity.field_metadata.pop(old_name, None)
            new_meta = entity.field_metadata.get(new_name)
            if new_name in entity.fields:
                if old_name in entity.fields:
                    entity.fields.remove(old_name)
            elif old_name in entity.fields:
                entity.fields[entity.fields.index(old_name)] = new_name
            else:
                # History mentioned the field but the registry had lost it.
                entity.fields.append(new_name)

            if old_meta is not None and new_meta is not None:
                entity.field_metadata[new_name] = FieldMetadata(
                    created_at=min(old_meta.created_at, new_meta.created_at),
                    last_modified=max(old_meta.last_modified, new_meta.last_modified),
                )
            elif old_meta is not None:
                entity.field_metadata[new_name] = old_meta
            elif new_meta is None:
                entity.field_metadata[new_name] = FieldMetadata(created_at=now, last_modified=now)
            self._registry.put(entity)

        logger.info(
            "Renamed field '%s' to '%s' on %s (%d change record(s))",
            old_name, new_name, entity_id, renamed,
        )
        return renamed

    def apply_entity_color(self, entity_id: str, color: str) -> int:
        """Recolour every marker of *entity_id*; returns how many changed."""
        with self._registry.lock, self._index.lock:
            self._registry.require(entity_id)
            return self._index.recolor_entity(entity_id, color)
