"""
Tests for scribe_engine/models/ -- pydantic models and payload coercion.
"""

import pytest
from pydantic import ValidationError

from scribe_engine.models import (
    DEFAULT_ENTITY_COLOR,
    DEFAULT_MARKER_ICON,
    ChangeType,
    Document,
    Entity,
    FieldChange,
    Marker,
    MarkerVisual,
)
from scribe_engine.models.validators import (
    coerce_value,
    format_number,
    parse_number,
    payload_text,
    validate_field_path,
    validate_hex_color,
)


# ------------------------------------------------------------------
# Coercion
# ------------------------------------------------------------------


class TestCoerceValue:
    @pytest.mark.parametrize("text, expected", [
        ("10", 10.0),
        ("-3", -3.0),
        ("+2.5", 2.5),
        (".5", 0.5),
        ("1e3", 1000.0),
        (" 7 ", 7.0),
    ])
    def test_numbers(self, text, expected):
        assert coerce_value(text) == expected

    def test_booleans_are_exact(self):
        assert coerce_value("true") is True
        assert coerce_value("false") is False
        assert coerce_value("True") == "True"

    @pytest.mark.parametrize("text", ["inf", "nan", "1_000", "0x10", "12abc", "", "learned"])
    def test_everything_else_is_text(self, text):
        assert coerce_value(text) == text

    def test_parse_number_rejects_overflow(self):
        assert parse_number("1e999") is None

    def test_format_number(self):
        assert format_number(10.0) == "10"
        assert format_number(2.5) == "2.5"

    def test_payload_text_normalises_typed_input(self):
        assert payload_text(True) == "true"
        assert payload_text(15) == "15"
        assert payload_text(1.25) == "1.25"
        assert payload_text(None) == ""
        assert payload_text("learned") == "learned"


class TestValidators:
    @pytest.mark.parametrize("color", ["#FFD700", "#fff", "#00aa11"])
    def test_valid_colors(self, color):
        assert validate_hex_color(color) == color

    @pytest.mark.parametrize("color", ["FFD700", "#GGG", "#12345", "red", ""])
    def test_invalid_colors(self, color):
        with pytest.raises(ValueError, match="hex colour"):
            validate_hex_color(color)

    @pytest.mark.parametrize("path", ["", ".", "stats.", ".HP", "stats..HP"])
    def test_invalid_paths(self, path):
        with pytest.raises(ValueError):
            validate_field_path(path)

    def test_valid_path(self):
        assert validate_field_path("spells.fire.Firebolt") == "spells.fire.Firebolt"


# ------------------------------------------------------------------
# Models
# ------------------------------------------------------------------


class TestChangeType:
    def test_wire_names(self):
        assert ChangeType("absolute") is ChangeType.SET
        assert ChangeType("relative") is ChangeType.ADD
        assert ChangeType("remove") is ChangeType.REMOVE

    @pytest.mark.parametrize("alias, expected", [
        ("set", ChangeType.SET),
        ("ADD", ChangeType.ADD),
        ("delete", ChangeType.REMOVE),
    ])
    def test_aliases(self, alias, expected):
        assert ChangeType(alias) is expected

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            FieldChange(field_name="HP", change_type="multiply", value="2")


class TestFieldChange:
    def test_typed_input_becomes_text(self):
        c = FieldChange(field_name="HP", change_type="relative", value=5)
        assert c.value == "5"
        assert c.typed_value() == 5.0

    def test_bool_input(self):
        c = FieldChange(field_name="alive", change_type="absolute", value=False)
        assert c.value == "false"
        assert c.typed_value() is False

    def test_frozen(self):
        c = FieldChange(field_name="HP", change_type="absolute", value="1")
        with pytest.raises(ValidationError):
            c.value = "2"

    def test_empty_field_name_rejected(self):
        with pytest.raises(ValidationError):
            FieldChange(field_name="", change_type="absolute", value="1")

    def test_serialises_wire_name(self):
        c = FieldChange(field_name="HP", change_type=ChangeType.ADD, value="1")
        assert c.model_dump(mode="json")["change_type"] == "relative"


class TestMarker:
    def test_defaults(self):
        m = Marker(id="m1", position=0, entity_id="e1")
        assert m.visual.icon == DEFAULT_MARKER_ICON
        assert m.visual.color == DEFAULT_ENTITY_COLOR
        assert m.description == ""
        assert m.changes == []
        assert m.created_at > 0

    def test_negative_position_rejected(self):
        with pytest.raises(ValidationError):
            Marker(id="m1", position=-1, entity_id="e1")

    def test_bad_visual_color_rejected(self):
        with pytest.raises(ValidationError):
            MarkerVisual(color="gold")

    def test_field_names_distinct_in_order(self):
        m = Marker(
            id="m1", position=3, entity_id="e1",
            changes=[
                {"field_name": "b", "change_type": "absolute", "value": "1"},
                {"field_name": "a", "change_type": "absolute", "value": "1"},
                {"field_name": "b", "change_type": "remove"},
            ],
        )
        assert m.field_names == ["b", "a"]


class TestEntityAndDocument:
    def test_entity_defaults(self):
        e = Entity(id="e1", name="Hero")
        assert e.color == DEFAULT_ENTITY_COLOR
        assert e.fields == []
        assert e.field_metadata == {}

    def test_fields_deduplicated(self):
        e = Entity(id="e1", name="Hero", fields=["HP", "Level", "HP"])
        assert e.fields == ["HP", "Level"]

    def test_document_accepts_older_minimal_shape(self):
        doc = Document.model_validate({
            "content": "hello",
            "entities": [{"id": "e1", "name": "Hero"}],
            "markers": [{
                "id": "m1", "position": 4, "entity_id": "e1",
                "changes": [{"field_name": "HP", "change_type": "absolute", "value": "10"}],
            }],
        })
        assert doc.entities[0].color == DEFAULT_ENTITY_COLOR
        assert doc.markers[0].changes[0].change_type is ChangeType.SET
