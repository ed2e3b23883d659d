"""
scribe_engine/marker_index.py -- The marker aggregate.

Stores every marker behind one ``threading.RLock`` and answers the queries
replay needs: by entity, by exact position, everything in document order.

Ordering
--------
Markers are ordered by ``(position, sequence)`` where *sequence* is the
order in which a marker entered the index.  Markers sharing a position
therefore replay in insertion order, independent of dict iteration order.
``replace_all`` (document load) assigns sequences in list order, and
``list_all`` emits markers in ``(position, sequence)`` order, so a saved
and reloaded document keeps its tie-breaks.

Reads return deep copies.  Mutations build the replacement marker first and
only store it once it validated, so a failed call changes nothing.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Optional

from scribe_engine.errors import MarkerNotFoundError
from scribe_engine.models.base import FieldChange, Marker

logger = logging.getLogger(__name__)

# Marker attributes a caller may replace through ``update``.
UPDATABLE_FIELDS = frozenset({"position", "entity_id", "changes", "visual", "description"})


def _as_position(value) -> Optional[int]:
    """Return *value* as an int offset, or ``None`` if it is not a whole number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


class MarkerIndex:
    """All markers of the open document."""

    def __init__(self):
        self.lock = threading.RLock()
        self._markers: dict[str, Marker] = {}
        self._sequence: dict[str, int] = {}
        self._next_sequence = 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, marker_id: str) -> Marker:
        with self.lock:
            marker = self._markers.get(marker_id)
            if marker is None:
                raise MarkerNotFoundError(marker_id)
            return marker.model_copy(deep=True)

    def list_all(self) -> list[Marker]:
        """Every marker in document order."""
        with self.lock:
            return [m.model_copy(deep=True) for m in self._ordered(self._markers.values())]

    def list_at_position(self, position: int) -> list[Marker]:
        with self.lock:
            hits = [m for m in self._markers.values() if m.position == position]
            return [m.model_copy(deep=True) for m in self._ordered(hits)]

    def list_for_entity(self, entity_id: str, up_to: Optional[int] = None) -> list[Marker]:
        """Markers owned by *entity_id* in replay order.

        When *up_to* is given only markers with ``position <= up_to`` are
        returned.
        """
        with self.lock:
            hits = [
                m for m in self._markers.values()
                if m.entity_id == entity_id and (up_to is None or m.position <= up_to)
            ]
            return [m.model_copy(deep=True) for m in self._ordered(hits)]

    def __len__(self) -> int:
        with self.lock:
            return len(self._markers)

    def __contains__(self, marker_id: str) -> bool:
        with self.lock:
            return marker_id in self._markers

    # ------------------------------------------------------------------
    # Single-marker writes
    # ------------------------------------------------------------------

    def insert(self, marker: Marker) -> Marker:
        with self.lock:
            if marker.id in self._markers:
                raise ValueError(f"A marker with id '{marker.id}' already exists.")
            self._store(marker.model_copy(deep=True), self._take_sequence())
            logger.debug("Marker %s inserted at %d for %s", marker.id, marker.position, marker.entity_id)
            return marker.model_copy(deep=True)

    def update(self, marker_id: str, fields: dict, modified_at: int) -> Marker:
        """Replace any subset of a marker's updatable fields.

        ``modified_at`` is always refreshed, even for an empty *fields*.
        The updated marker is re-validated before it is stored.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(
                f"Cannot update marker field(s): {', '.join(sorted(unknown))}."
            )
        with self.lock:
            current = self._markers.get(marker_id)
            if current is None:
                raise MarkerNotFoundError(marker_id)
            data = current.model_dump()
            data.update(fields)
            data["modified_at"] = modified_at
            updated = Marker.model_validate(data)
            self._store(updated, self._sequence[marker_id])
            return updated.model_copy(deep=True)

    def delete(self, marker_id: str) -> Marker:
        with self.lock:
            marker = self._markers.pop(marker_id, None)
            if marker is None:
                raise MarkerNotFoundError(marker_id)
            del self._sequence[marker_id]
            return marker

    # ------------------------------------------------------------------
    # Bulk writes
    # ------------------------------------------------------------------

    def remap_positions(self, updates: Iterable[tuple[str, int]]) -> int:
        """Move markers after the document text was edited upstream.

        Best effort: each pair is applied on its own.  Malformed pairs,
        unknown ids, non-integer and negative positions are logged and
        skipped.  ``modified_at`` is left alone since reflowing text is
        not an edit of the marker.

        Returns
        -------
        int
            How many markers were moved.
        """
        applied = 0
        with self.lock:
            for pair in updates:
                try:
                    marker_id, new_position = pair
                except (TypeError, ValueError):
                    logger.warning("Skipping malformed reposition entry %r", pair)
                    continue
                position = _as_position(new_position)
                if position is None:
                    logger.warning(
                        "Skipping reposition of marker %s to non-integer position %r",
                        marker_id, new_position,
                    )
                    continue
                marker = self._markers.get(marker_id)
                if marker is None:
                    logger.warning("Skipping reposition of unknown marker %s", marker_id)
                    continue
                if position < 0:
                    logger.warning(
                        "Skipping reposition of marker %s to negative position %d",
                        marker_id, position,
                    )
                    continue
                marker.position = position
                applied += 1
        return applied

    def delete_for_entity(self, entity_id: str) -> list[str]:
        """Remove every marker owned by *entity_id*; return their ids."""
        with self.lock:
            doomed = [m.id for m in self._ordered(self._markers.values()) if m.entity_id == entity_id]
            for marker_id in doomed:
                del self._markers[marker_id]
                del self._sequence[marker_id]
            return doomed

    def rewrite_changes(self, entity_id: str, rewrite, modified_at: int) -> int:
        """Rewrite the change lists of every marker owned by *entity_id*.

        *rewrite* receives a marker's change list and returns the new list.
        Markers whose list actually changed get ``modified_at``.  The whole
        batch is computed before anything is stored.

        Returns
        -------
        int
            Number of markers whose changes were rewritten.
        """
        with self.lock:
            replacements: list[Marker] = []
            for marker in self._markers.values():
                if marker.entity_id != entity_id:
                    continue
                new_changes: list[FieldChange] = list(rewrite(list(marker.changes)))
                if new_changes != marker.changes:
                    replacements.append(
                        marker.model_copy(update={"changes": new_changes, "modified_at": modified_at})
                    )
            for marker in replacements:
                self._markers[marker.id] = marker
            return len(replacements)

    def recolor_entity(self, entity_id: str, color: str) -> int:
        """Set ``visual.color`` of every marker owned by *entity_id*."""
        with self.lock:
            count = 0
            for marker in self._markers.values():
                if marker.entity_id == entity_id:
                    marker.visual = marker.visual.model_copy(update={"color": color})
                    count += 1
            return count

    def replace_all(self, markers: list[Marker]) -> None:
        """Swap in a whole new collection (document load)."""
        with self.lock:
            self._markers = {}
            self._sequence = {}
            self._next_sequence = 0
            for marker in markers:
                self._store(marker.model_copy(deep=True), self._take_sequence())
        logger.debug("Marker index replaced (%d markers)", len(markers))

    def clear(self) -> None:
        self.replace_all([])

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _take_sequence(self) -> int:
        seq = self._next_sequence
        self._next_sequence += 1
        return seq

    def _store(self, marker: Marker, sequence: int) -> None:
        self._markers[marker.id] = marker
        self._sequence[marker.id] = sequence

    def _ordered(self, markers: Iterable[Marker]) -> list[Marker]:
        return sorted(markers, key=lambda m: (m.position, self._sequence[m.id]))
