"""
scribe_app/services/event_bus.py -- Application-wide event bus using Qt signals.

Singleton that provides typed signals so views can react to document
changes without holding references to each other or to the session.

Usage::

    from scribe_app.services.event_bus import EventBus

    bus = EventBus.instance()
    bus.marker_inserted.connect(my_handler)
    bus.marker_inserted.emit("3f2c...")
"""

from __future__ import annotations

import threading

from PySide6.QtCore import QObject, Signal


class EventBus(QObject):
    """Application-wide signal bus.

    Signals
    -------
    entity_created(str), entity_updated(str), entity_deleted(str)
        Entity lifecycle.  Payload is the entity ID.
    marker_inserted(str), marker_updated(str), marker_deleted(str)
        Marker lifecycle.  Payload is the marker ID.
    markers_repositioned(int)
        Fired after a position remap.  Payload is how many markers moved.
    document_loaded(str)
        A document was opened.  Payload is its path.
    document_saved(str)
        The document was written.  Payload is its path.
    document_cleared()
        A new, empty document was started.
    error_occurred(str)
        Fired when an error needs to be shown to the user.
    status_message(str)
        Fired to update the status bar message.
    """

    # Entity lifecycle
    entity_created = Signal(str)
    entity_updated = Signal(str)
    entity_deleted = Signal(str)

    # Marker lifecycle
    marker_inserted = Signal(str)
    marker_updated = Signal(str)
    marker_deleted = Signal(str)
    markers_repositioned = Signal(int)

    # Document lifecycle
    document_loaded = Signal(str)
    document_saved = Signal(str)
    document_cleared = Signal()

    # Error and status
    error_occurred = Signal(str)
    status_message = Signal(str)

    # Singleton
    _instance: EventBus | None = None
    _lock = threading.Lock()

    @classmethod
    def instance(cls) -> EventBus:
        """Return the singleton EventBus instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton (for testing)."""
        with cls._lock:
            if cls._instance is not None:
                cls._instance.deleteLater()
            cls._instance = None
