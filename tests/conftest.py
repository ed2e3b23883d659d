"""
Shared pytest fixtures for the QuestScribe test suite.

Provides:
    - clock: a FixedClock starting at 1_700_000_000
    - id_factory: deterministic ids ("id-1", "id-2", ...)
    - manager: a DocumentManager wired to both of the above
    - hero: an entity named "Hero" inside ``manager``
    - editor_content: sample editor document JSON with a heading, mixed
      formatting, a hard break and an embedded marker node
"""

import itertools
import json
import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Ensure scribe_engine/ and scribe_app/ are importable regardless of where
# pytest is invoked
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from scribe_engine.clock import FixedClock  # noqa: E402
from scribe_engine.document_manager import DocumentManager  # noqa: E402

START_TIME = 1_700_000_000


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FixedClock(START_TIME)


@pytest.fixture
def id_factory():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def manager(clock, id_factory):
    """A fresh, empty DocumentManager with a fixed clock."""
    return DocumentManager(clock=clock, id_factory=id_factory)


@pytest.fixture
def hero(manager):
    """Return the Entity for a character named "Hero"."""
    return manager.create_entity("Hero", "#FF0000")


@pytest.fixture
def editor_content():
    """Editor document JSON as the editor would store it."""
    doc = {
        "type": "doc",
        "content": [
            {
                "type": "heading",
                "attrs": {"level": 1},
                "content": [{"type": "text", "text": "Chapter One"}],
            },
            {
                "type": "paragraph",
                "content": [
                    {"type": "text", "text": "The "},
                    {"type": "text", "text": "hero", "marks": [{"type": "strong"}]},
                    {"type": "marker", "attrs": {"markerId": "m-1"}},
                    {"type": "text", "text": " drew a "},
                    {"type": "text", "text": "blade", "marks": [{"type": "em"}]},
                    {"type": "text", "text": "."},
                ],
            },
            {
                "type": "paragraph",
                "content": [
                    {"type": "text", "text": "Line one"},
                    {"type": "hard_break"},
                    {"type": "text", "text": "Line two"},
                ],
            },
            {"type": "paragraph"},
        ],
    }
    return json.dumps(doc)
