"""
scribe_engine/errors.py -- Error kinds raised by the QuestScribe engine.

Every public engine operation either succeeds or raises one of these.  No
operation leaves the entity registry or the marker index partially mutated
when it raises.

Messages are written for the person using the editor, not for developers:
they say what went wrong and, where possible, what to do next.
"""


class QuestScribeError(Exception):
    """Base class for all engine errors."""


class NotFoundError(QuestScribeError, LookupError):
    """An entity or marker id is not present."""


class EntityNotFoundError(NotFoundError):
    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(
            f"Could not find character '{entity_id}'. "
            f"It may have been deleted or the ID may be incorrect."
        )


class MarkerNotFoundError(NotFoundError):
    def __init__(self, marker_id: str):
        self.marker_id = marker_id
        super().__init__(
            f"Could not find marker '{marker_id}'. "
            f"It may have been deleted or the ID may be incorrect."
        )


class InvalidFormatError(QuestScribeError, ValueError):
    """A persisted document could not be parsed or failed validation."""


class UnsupportedFormatError(QuestScribeError):
    """An export/import file type is not recognised or not supported."""


class IOFailureError(QuestScribeError, OSError):
    """Reading or writing a file failed at the persistence/export boundary."""
