"""
Shared utility functions for the QuestScribe engine.

All file writes use atomic temp-file-then-os.replace() so that a crash in
the middle of a save never leaves a half-written document or export on
disk.
"""

import json
import logging
import os
import tempfile
import uuid

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

def new_id() -> str:
    """Return a fresh opaque identifier (UUID4 string)."""
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# File I/O (atomic writes)
# ---------------------------------------------------------------------------

def atomic_write_bytes(path, payload: bytes) -> None:
    """Atomically write *payload* to *path*.

    Uses a temporary file in the same directory followed by
    ``os.replace()`` so that readers never see a partially-written file.
    Parent directories are created if they do not exist.

    Parameters
    ----------
    path : str or pathlib.Path
        Target file path.
    payload : bytes
        The full file content.
    """
    path = os.path.abspath(str(path))
    parent = os.path.dirname(path)
    os.makedirs(parent, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(payload)
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any failure.
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def safe_write_json(path, data, *, indent=2):
    """Atomically write *data* as UTF-8 JSON to *path*.

    Parameters
    ----------
    path : str or pathlib.Path
        Absolute path to the target JSON file.
    data
        JSON-serialisable object to write.
    indent : int, optional
        JSON indentation level (default 2).
    """
    text = json.dumps(data, indent=indent, ensure_ascii=False)
    atomic_write_bytes(path, text.encode("utf-8"))


def read_json(path):
    """Read and parse a JSON file.

    Unlike a lenient reader this lets ``OSError`` and
    ``json.JSONDecodeError`` propagate so callers can tell a missing file
    from a corrupt one.
    """
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)
