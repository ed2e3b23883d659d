"""
scribe_app/paths.py -- Per-user file locations.

Uses platformdirs for the user data directory.  The ``QUESTSCRIBE_DATA_DIR``
environment variable overrides it (handy for tests and portable installs).
"""

from __future__ import annotations

import os

from platformdirs import user_data_dir

from scribe_engine.persistence import DOCUMENT_EXTENSION

_APP_NAME = "QuestScribe"
_APP_AUTHOR = "QuestScribe"

DATA_DIR_ENV = "QUESTSCRIBE_DATA_DIR"


def get_user_data_dir() -> str:
    """Return the platform-appropriate user data directory, creating it."""
    path = os.environ.get(DATA_DIR_ENV) or user_data_dir(_APP_NAME, _APP_AUTHOR)
    os.makedirs(path, exist_ok=True)
    return path


def get_autosave_path() -> str:
    """Where the session writes its periodic autosave."""
    return os.path.join(get_user_data_dir(), f"autosave{DOCUMENT_EXTENSION}")
