"""
scribe_engine/duplication.py -- Duplicate an entity from a point in the story.

The copy does not inherit the source's marker history.  Instead the
source's state at the chosen position is "baked" into one synthetic marker
of SET records, one per leaf path, so that::

    reconstruct(copy, position) == reconstruct(source, position)

Flattening walks the tree depth-first in first-insertion key order, which
is itself determined by replay order, so duplicating the same document
twice yields identical change lists.  Empty objects carry no leaf and are
not baked.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from scribe_engine.clock import SystemClock
from scribe_engine.entity_registry import EntityRegistry
from scribe_engine.field_lifecycle import register_fields
from scribe_engine.marker_index import MarkerIndex
from scribe_engine.models.base import ChangeType, Entity, FieldChange, Marker, MarkerVisual
from scribe_engine.path_tree import PathTree
from scribe_engine.replay import StateReplayer
from scribe_engine.utils import new_id

logger = logging.getLogger(__name__)


def flatten_tree(tree: PathTree) -> list[FieldChange]:
    """Turn every leaf of *tree* into an absolute change record."""
    return [
        FieldChange(field_name=path, change_type=ChangeType.SET, value=value)
        for path, value in tree.leaves()
    ]


class DuplicationService:
    def __init__(
        self,
        registry: EntityRegistry,
        index: MarkerIndex,
        replayer: StateReplayer,
        clock=None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self._registry = registry
        self._index = index
        self._replayer = replayer
        self._clock = clock or SystemClock()
        self._new_id = id_factory or new_id

    def duplicate(
        self, entity_id: str, new_name: str, at_position: int
    ) -> tuple[Entity, Optional[Marker]]:
        """Create a copy of *entity_id* whose state starts at *at_position*.

        Parameters
        ----------
        entity_id : str
            The source entity.
        new_name : str
            Name of the copy.  Blank means ``"<source name> (Copy)"``.
        at_position : int
            Document position whose state is baked into the copy.

        Returns
        -------
        tuple
            ``(new_entity, synthetic_marker)``; the marker is ``None`` when
            the source has no state at that position.

        Raises
        ------
        EntityNotFoundError
            If the source entity does not exist.
        """
        if at_position < 0:
            raise ValueError("A document position cannot be negative.")

        with self._registry.lock, self._index.lock:
            source = self._registry.get(entity_id)
            tree = self._replayer.reconstruct(entity_id, at_position)
            changes = flatten_tree(tree)
            now = self._clock.now()

            name = new_name.strip() if new_name and new_name.strip() else f"{source.name} (Copy)"
            clone = source.model_copy(deep=True, update={"id": self._new_id(), "name": name})

            marker = None
            if changes:
                # Leaves always come from recorded field names, but a purge
                # may have dropped one from the registry since.
                clone = register_fields(
                    clone,
                    [c.field_name for c in changes if c.field_name not in clone.fields],
                    now,
                )
                marker = Marker(
                    id=self._new_id(),
                    position=at_position,
                    entity_id=clone.id,
                    changes=changes,
                    visual=MarkerVisual(color=clone.color),
                    description=f"Duplicated from {source.name}",
                    created_at=now,
                    modified_at=now,
                )

            self._registry.put(clone)
            if marker is not None:
                self._index.insert(marker)

        logger.info(
            "Duplicated %s as %s at position %d (%d baked field(s))",
            entity_id, clone.id, at_position, len(changes),
        )
        return clone, marker
