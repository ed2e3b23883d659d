"""
scribe_engine/entity_registry.py -- The entity aggregate.

Holds every tracked entity behind one ``threading.RLock``.  Reads return
deep copies so callers can never observe (or cause) a half-applied change;
writes replace whole entities.

Cross-aggregate operations (recolor cascade, field purge, duplication,
replay) take this lock *before* the marker index lock.  See
``DocumentManager`` for the lock ordering.
"""

from __future__ import annotations

import logging
import threading

from scribe_engine.errors import EntityNotFoundError
from scribe_engine.models.base import Entity

logger = logging.getLogger(__name__)


class EntityRegistry:
    """Insertion-ordered map of entity id -> Entity."""

    def __init__(self):
        self.lock = threading.RLock()
        self._entities: dict[str, Entity] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, entity_id: str) -> Entity:
        with self.lock:
            entity = self._entities.get(entity_id)
            if entity is None:
                raise EntityNotFoundError(entity_id)
            return entity.model_copy(deep=True)

    def exists(self, entity_id: str) -> bool:
        with self.lock:
            return entity_id in self._entities

    def require(self, entity_id: str) -> None:
        """Raise ``EntityNotFoundError`` unless *entity_id* is registered."""
        if not self.exists(entity_id):
            raise EntityNotFoundError(entity_id)

    def list_all(self) -> list[Entity]:
        with self.lock:
            return [e.model_copy(deep=True) for e in self._entities.values()]

    def __len__(self) -> int:
        with self.lock:
            return len(self._entities)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, entity: Entity) -> None:
        """Insert or replace *entity* (stored as a copy)."""
        with self.lock:
            self._entities[entity.id] = entity.model_copy(deep=True)

    def delete(self, entity_id: str) -> Entity:
        with self.lock:
            entity = self._entities.pop(entity_id, None)
            if entity is None:
                raise EntityNotFoundError(entity_id)
            return entity

    def replace_all(self, entities: list[Entity]) -> None:
        with self.lock:
            self._entities = {e.id: e.model_copy(deep=True) for e in entities}
        logger.debug("Entity registry replaced (%d entities)", len(entities))

    def clear(self) -> None:
        with self.lock:
            self._entities.clear()
