"""
Tests for scribe_app/services/document_session.py -- command layer, dirty
tracking, autosave and error reporting.
"""

import json
from unittest.mock import MagicMock

import pytest
from PySide6.QtCore import QCoreApplication

from scribe_app.services.document_session import AUTO_SAVE_INTERVAL_MS, DocumentSession
from scribe_app.services.event_bus import EventBus
from scribe_engine.errors import EntityNotFoundError, IOFailureError, UnsupportedFormatError


def _change(field_name, change_type="absolute", value=""):
    return {"field_name": field_name, "change_type": change_type, "value": value}


@pytest.fixture(autouse=True)
def _reset_event_bus():
    EventBus.reset()
    yield
    EventBus.reset()


@pytest.fixture()
def _ensure_qapp():
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


@pytest.fixture
def session(_ensure_qapp, manager, tmp_path):
    s = DocumentSession(manager=manager, autosave_path=str(tmp_path / "autosave.qsd"))
    yield s
    s._auto_save_timer.stop()


@pytest.fixture
def bus(_ensure_qapp):
    return EventBus.instance()


class TestCommands:
    def test_create_entity_returns_dict_and_signals(self, session, bus):
        receiver = MagicMock()
        bus.entity_created.connect(receiver)
        entity = session.create_entity("Hero")
        assert entity["name"] == "Hero"
        assert entity["color"] == "#FFD700"
        receiver.assert_called_once_with(entity["id"])
        assert session.get_all_entities() == [entity]

    def test_marker_roundtrip_through_commands(self, session, bus):
        inserted = MagicMock()
        bus.marker_inserted.connect(inserted)
        hero = session.create_entity("Hero")
        marker = session.insert_marker(5, hero["id"], [_change("stats.HP", "relative", "10")])
        session.insert_marker(10, hero["id"], [_change("stats.HP", "relative", "5")])

        assert marker["changes"][0]["change_type"] == "relative"
        assert inserted.call_count == 2
        assert session.get_entity_state(hero["id"], 10) == {"stats": {"HP": 15.0}}
        assert [m["position"] for m in session.get_all_markers()] == [5, 10]
        assert [m["id"] for m in session.get_markers_at_position(5)] == [marker["id"]]

    def test_update_and_delete_marker(self, session, bus):
        updated, deleted = MagicMock(), MagicMock()
        bus.marker_updated.connect(updated)
        bus.marker_deleted.connect(deleted)
        hero = session.create_entity("Hero")
        marker = session.insert_marker(5, hero["id"], [])
        assert session.update_marker(marker["id"], description="x")["description"] == "x"
        session.delete_marker(marker["id"])
        updated.assert_called_once_with(marker["id"])
        deleted.assert_called_once_with(marker["id"])

    def test_delete_entity_announces_cascaded_markers(self, session, bus):
        marker_deleted, entity_deleted = MagicMock(), MagicMock()
        bus.marker_deleted.connect(marker_deleted)
        bus.entity_deleted.connect(entity_deleted)
        hero = session.create_entity("Hero")
        marker = session.insert_marker(5, hero["id"], [])
        assert session.delete_entity(hero["id"]) == [marker["id"]]
        marker_deleted.assert_called_once_with(marker["id"])
        entity_deleted.assert_called_once_with(hero["id"])

    def test_duplicate_entity(self, session):
        hero = session.create_entity("Hero")
        session.insert_marker(1, hero["id"], [_change("Level", "absolute", "3")])
        result = session.duplicate_entity(hero["id"], "", 2)
        assert result["entity"]["name"] == "Hero (Copy)"
        assert result["marker"]["description"] == "Duplicated from Hero"

    def test_delete_field_reports_status(self, session, bus):
        status = MagicMock()
        bus.status_message.connect(status)
        hero = session.create_entity("Hero")
        session.insert_marker(1, hero["id"], [_change("Level", "absolute", "3")])
        assert session.delete_field(hero["id"], "Level") == 1
        status.assert_called_once()

    def test_update_marker_positions(self, session, bus):
        moved = MagicMock()
        bus.markers_repositioned.connect(moved)
        hero = session.create_entity("Hero")
        marker = session.insert_marker(1, hero["id"], [])
        assert session.update_marker_positions([(marker["id"], 9)]) == 1
        moved.assert_called_once_with(1)

    def test_update_marker_positions_skips_bad_pairs(self, session, tmp_path):
        hero = session.create_entity("Hero")
        marker = session.insert_marker(1, hero["id"], [])
        session.save_document(str(tmp_path / "campaign.qsd"))
        assert not session.is_dirty
        updates = [(marker["id"], 9), (marker["id"], "x"), ("ghost", 3), (marker["id"],)]
        assert session.update_marker_positions(updates) == 1
        assert session.is_dirty
        assert session.get_all_markers()[0]["position"] == 9


class TestErrors:
    def test_engine_error_is_reported_and_raised(self, session, bus):
        errors = MagicMock()
        bus.error_occurred.connect(errors)
        with pytest.raises(EntityNotFoundError):
            session.insert_marker(0, "ghost", [])
        errors.assert_called_once()
        assert "ghost" in errors.call_args[0][0]

    def test_validation_error_is_reported(self, session, bus):
        errors = MagicMock()
        bus.error_occurred.connect(errors)
        hero = session.create_entity("Hero")
        with pytest.raises(ValueError):
            session.insert_marker(-1, hero["id"], [])
        errors.assert_called_once()

    def test_failed_mutation_leaves_session_clean(self, session):
        with pytest.raises(EntityNotFoundError):
            session.delete_entity("ghost")
        assert not session.is_dirty

    def test_word_import_reported(self, session, bus, tmp_path):
        errors = MagicMock()
        bus.error_occurred.connect(errors)
        with pytest.raises(UnsupportedFormatError):
            session.import_document(str(tmp_path / "story.docx"))
        errors.assert_called_once()

    def test_reposition_failure_is_reported(self, session, bus, monkeypatch):
        errors, moved = MagicMock(), MagicMock()
        bus.error_occurred.connect(errors)
        bus.markers_repositioned.connect(moved)

        def _fail(updates):
            raise ValueError("positions must be whole numbers")

        monkeypatch.setattr(session.manager, "update_marker_positions", _fail)
        with pytest.raises(ValueError):
            session.update_marker_positions([("m-1", "x")])
        errors.assert_called_once_with("positions must be whole numbers")
        moved.assert_not_called()
        assert not session.is_dirty

    def test_save_without_path(self, session):
        with pytest.raises(ValueError, match="save"):
            session.save_document()


class TestDocumentLifecycle:
    def test_dirty_tracking(self, session):
        changes = MagicMock()
        session.dirty_changed.connect(changes)
        assert not session.is_dirty
        session.create_entity("Hero")
        session.create_entity("Villain")
        assert session.is_dirty
        changes.assert_called_once_with(True)

    def test_save_and_load(self, session, bus, tmp_path, editor_content):
        saved, loaded = MagicMock(), MagicMock()
        bus.document_saved.connect(saved)
        bus.document_loaded.connect(loaded)
        hero = session.create_entity("Hero")
        session.insert_marker(2, hero["id"], [_change("HP", "absolute", "4")])
        session.set_content(editor_content)

        path = str(tmp_path / "campaign.qsd")
        assert session.save_document(path) == path
        assert not session.is_dirty
        assert session.current_path == path
        saved.assert_called_once_with(path)

        session.new_document()
        assert session.get_all_entities() == []
        assert session.content == ""
        assert session.current_path is None

        document = session.load_document(path)
        loaded.assert_called_once_with(path)
        assert document["content"] == editor_content
        assert session.content == editor_content
        assert session.get_entity_state(hero["id"], 2) == {"HP": 4.0}
        assert not session.is_dirty

    def test_save_reuses_current_path(self, session, tmp_path):
        path = str(tmp_path / "campaign.qsd")
        session.save_document(path, content="v1")
        session.set_content("v2")
        session.save_document()
        with open(path, encoding="utf-8") as fh:
            assert json.load(fh)["content"] == "v2"

    def test_new_document_signal(self, session, bus):
        cleared = MagicMock()
        bus.document_cleared.connect(cleared)
        session.new_document()
        cleared.assert_called_once_with()

    def test_export_and_import(self, session, tmp_path, editor_content):
        session.set_content(editor_content)
        path = str(tmp_path / "chapter.rtf")
        session.export_document(path)
        content = session.import_document(path)
        assert json.loads(content)["content"][0]["type"] == "heading"
        assert session.content == content
        assert session.is_dirty


class TestAutosave:
    def test_default_interval(self, session):
        assert AUTO_SAVE_INTERVAL_MS == 30_000
        assert session._auto_save_timer.interval() == 30_000

    def test_autosave_only_when_pending(self, session, tmp_path):
        autosaved = MagicMock()
        session.autosaved.connect(autosaved)
        session._auto_save()
        autosaved.assert_not_called()

        session.create_entity("Hero")
        session._auto_save()
        autosaved.assert_called_once_with(str(tmp_path / "autosave.qsd"))
        assert (tmp_path / "autosave.qsd").exists()
        # Autosave is a recovery copy; the document itself stays unsaved.
        assert session.is_dirty

        session._auto_save()
        assert autosaved.call_count == 1

    def test_autosave_failure_retries(self, session, monkeypatch):
        session.create_entity("Hero")
        autosaved = MagicMock()
        session.autosaved.connect(autosaved)

        def _fail(path, content=""):
            raise IOFailureError("disk full")

        monkeypatch.setattr(session.manager, "save_document", _fail)
        session._auto_save()
        autosaved.assert_not_called()

        monkeypatch.undo()
        session._auto_save()
        autosaved.assert_called_once()

    def test_shutdown_flushes(self, session, tmp_path):
        session.create_entity("Hero")
        session.shutdown()
        assert (tmp_path / "autosave.qsd").exists()
        assert not session._auto_save_timer.isActive()

    def test_default_autosave_location(self, _ensure_qapp, manager, tmp_path, monkeypatch):
        monkeypatch.setenv("QUESTSCRIBE_DATA_DIR", str(tmp_path / "data"))
        s = DocumentSession(manager=manager)
        try:
            s.create_entity("Hero")
            s._auto_save()
        finally:
            s._auto_save_timer.stop()
        assert (tmp_path / "data" / "autosave.qsd").exists()
