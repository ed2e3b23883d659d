"""
scribe_app/services/document_session.py -- Command layer around the engine.

``DocumentSession`` is what an editor window talks to.  Each command is a
thin request/response wrapper around one ``DocumentManager`` operation: it
takes plain arguments, returns plain JSON-ready data (dicts and lists), and
announces successful mutations on the ``EventBus``.

The session also owns what the engine does not: the editor content of the
open document, the path it was loaded from or saved to, the dirty flag,
and an autosave timer that writes a recovery copy to the user data
directory every 30 seconds while there are unsaved changes.

Failures are logged, reported through ``EventBus.error_occurred`` with the
engine's user-facing message, and re-raised to the caller.

Usage::

    from scribe_app.services.document_session import DocumentSession

    session = DocumentSession()
    hero = session.create_entity("Hero")
    session.insert_marker(5, hero["id"], [
        {"field_name": "Level", "change_type": "absolute", "value": "1"},
    ])
    session.save_document("campaign.qsd")
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, QTimer, Signal

from scribe_app.paths import get_autosave_path
from scribe_app.services.event_bus import EventBus
from scribe_engine.document_manager import DocumentManager
from scribe_engine.errors import QuestScribeError

logger = logging.getLogger(__name__)

AUTO_SAVE_INTERVAL_MS = 30_000


def _dump(model) -> dict:
    return model.model_dump(mode="json")


class DocumentSession(QObject):
    """One open document plus its engine.

    Signals
    -------
    dirty_changed(bool)
        Emitted when the document gains or loses unsaved changes.
    autosaved(str)
        Emitted after a recovery copy was written.  Payload is its path.
    """

    dirty_changed = Signal(bool)
    autosaved = Signal(str)

    def __init__(
        self,
        manager: Optional[DocumentManager] = None,
        autosave_path: Optional[str] = None,
        autosave_interval_ms: int = AUTO_SAVE_INTERVAL_MS,
        parent: QObject | None = None,
    ):
        super().__init__(parent)
        self._manager = manager or DocumentManager()
        self._bus = EventBus.instance()
        self._autosave_path = autosave_path
        self._content = ""
        self._path: Optional[str] = None
        self._dirty = False
        self._autosave_pending = False

        self._auto_save_timer = QTimer(self)
        self._auto_save_timer.setInterval(autosave_interval_ms)
        self._auto_save_timer.timeout.connect(self._auto_save)
        self._auto_save_timer.start()

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    @property
    def manager(self) -> DocumentManager:
        return self._manager

    @property
    def content(self) -> str:
        return self._content

    @property
    def current_path(self) -> Optional[str]:
        return self._path

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def set_content(self, content: str) -> None:
        """Store the editor's latest document JSON."""
        if content == self._content:
            return
        self._content = content
        self._mark_dirty()

    def _mark_dirty(self) -> None:
        self._autosave_pending = True
        if not self._dirty:
            self._dirty = True
            self.dirty_changed.emit(True)

    def _mark_clean(self) -> None:
        self._autosave_pending = False
        if self._dirty:
            self._dirty = False
            self.dirty_changed.emit(False)

    def _run(self, action: str, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Call *fn*, reporting engine errors on the bus before re-raising."""
        try:
            return fn(*args, **kwargs)
        except (QuestScribeError, ValueError) as exc:
            logger.exception("Failed to %s", action)
            self._bus.error_occurred.emit(str(exc))
            raise

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def get_all_entities(self) -> list[dict]:
        return [_dump(e) for e in self._manager.list_entities()]

    def get_entity_state(self, entity_id: str, position: int) -> dict:
        return self._run("reconstruct entity state", self._manager.get_entity_state, entity_id, position)

    def create_entity(self, name: str, color: Optional[str] = None) -> dict:
        entity = self._run("create entity", self._manager.create_entity, name, color)
        self._mark_dirty()
        self._bus.entity_created.emit(entity.id)
        return _dump(entity)

    def update_entity(self, entity_id: str, name: Optional[str] = None, color: Optional[str] = None) -> dict:
        entity = self._run("update entity", self._manager.update_entity, entity_id, name, color)
        self._mark_dirty()
        self._bus.entity_updated.emit(entity_id)
        return _dump(entity)

    def delete_entity(self, entity_id: str) -> list[str]:
        removed = self._run("delete entity", self._manager.delete_entity, entity_id)
        self._mark_dirty()
        for marker_id in removed:
            self._bus.marker_deleted.emit(marker_id)
        self._bus.entity_deleted.emit(entity_id)
        return removed

    def duplicate_entity(self, entity_id: str, new_name: str, position: int) -> dict:
        entity, marker = self._run(
            "duplicate entity", self._manager.duplicate_entity, entity_id, new_name, position
        )
        self._mark_dirty()
        self._bus.entity_created.emit(entity.id)
        if marker is not None:
            self._bus.marker_inserted.emit(marker.id)
        return {"entity": _dump(entity), "marker": _dump(marker) if marker is not None else None}

    def delete_field(self, entity_id: str, field_name: str) -> int:
        removed = self._run("delete field", self._manager.delete_field, entity_id, field_name)
        self._mark_dirty()
        self._bus.entity_updated.emit(entity_id)
        self._bus.status_message.emit(
            f"Removed '{field_name}' and {removed} recorded change(s)."
        )
        return removed

    # ------------------------------------------------------------------
    # Markers
    # ------------------------------------------------------------------

    def insert_marker(
        self,
        position: int,
        entity_id: str,
        changes: list,
        visual: Optional[dict] = None,
        description: str = "",
    ) -> dict:
        marker = self._run(
            "insert marker", self._manager.insert_marker,
            position, entity_id, changes, visual, description,
        )
        self._mark_dirty()
        self._bus.marker_inserted.emit(marker.id)
        self._bus.entity_updated.emit(entity_id)
        return _dump(marker)

    def update_marker(self, marker_id: str, **fields: Any) -> dict:
        marker = self._run("update marker", self._manager.update_marker, marker_id, **fields)
        self._mark_dirty()
        self._bus.marker_updated.emit(marker_id)
        return _dump(marker)

    def delete_marker(self, marker_id: str) -> dict:
        marker = self._run("delete marker", self._manager.delete_marker, marker_id)
        self._mark_dirty()
        self._bus.marker_deleted.emit(marker_id)
        return _dump(marker)

    def update_marker_positions(self, updates: list) -> int:
        moved = self._run("reposition markers", self._manager.update_marker_positions, updates)
        if moved:
            self._mark_dirty()
        self._bus.markers_repositioned.emit(moved)
        return moved

    def get_all_markers(self) -> list[dict]:
        return [_dump(m) for m in self._manager.list_markers()]

    def get_markers_at_position(self, position: int) -> list[dict]:
        return [_dump(m) for m in self._manager.markers_at_position(position)]

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def new_document(self) -> None:
        self._manager.new_document()
        self._content = ""
        self._path = None
        self._mark_clean()
        self._bus.document_cleared.emit()

    def save_document(self, path: Optional[str] = None, content: Optional[str] = None) -> str:
        """Save to *path* (or the current path).  Returns the path written."""
        if content is not None:
            self._content = content
        target = path or self._path
        if not target:
            exc = ValueError("Choose where to save the document first.")
            self._bus.error_occurred.emit(str(exc))
            raise exc
        self._run("save document", self._manager.save_document, target, self._content)
        self._path = str(target)
        self._mark_clean()
        self._bus.document_saved.emit(self._path)
        self._bus.status_message.emit(f"Saved {self._path}")
        return self._path

    def load_document(self, path: str) -> dict:
        """Open *path*, replacing everything in the session."""
        document = self._run("load document", self._manager.load_document, path)
        self._content = document.content
        self._path = str(path)
        self._mark_clean()
        self._bus.document_loaded.emit(self._path)
        self._bus.status_message.emit(f"Opened {self._path}")
        return _dump(document)

    def export_document(self, path: str, content: Optional[str] = None) -> None:
        text = self._content if content is None else content
        self._run("export document", self._manager.export_document, path, text)
        self._bus.status_message.emit(f"Exported to {path}")

    def import_document(self, path: str) -> str:
        """Read *path* into the editor; returns the new editor content."""
        content = self._run("import document", self._manager.import_document, path)
        self._content = content
        self._mark_dirty()
        self._bus.status_message.emit(f"Imported {path}")
        return content

    # ------------------------------------------------------------------
    # Autosave
    # ------------------------------------------------------------------

    def _auto_save(self) -> None:
        """Called by the auto-save timer.  Only writes if there are changes."""
        if not self._autosave_pending:
            return
        path = self._autosave_path or get_autosave_path()
        try:
            self._manager.save_document(path, self._content)
        except QuestScribeError:
            logger.exception("Autosave to %s failed", path)
            return  # Retry next tick
        self._autosave_pending = False
        logger.debug("Autosaved to %s", path)
        self.autosaved.emit(path)

    def shutdown(self) -> None:
        """Stop autosave and flush any pending recovery copy."""
        self._auto_save_timer.stop()
        self._auto_save()
