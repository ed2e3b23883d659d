"""
Tests for scribe_engine/exporters.py -- .txt/.rtf/.docx export and import.
"""

import json
import zipfile
from unittest.mock import patch

import pytest

from scribe_engine.errors import IOFailureError, UnsupportedFormatError
from scribe_engine.exporters import (
    export_paragraphs,
    import_paragraphs,
    render_docx_document_xml,
    render_plain_text,
    render_rtf,
)
from scribe_engine.formatting import HEADING, Paragraph, Run, heading, paragraphs_from_content


@pytest.fixture
def paragraphs():
    return [
        heading(1, Run("Chapter One")),
        Paragraph([Run("The "), Run("hero", bold=True), Run(" drew a "), Run("blade", italic=True), Run(".")]),
        Paragraph([Run("Braces {x} and back\\slash, café ✨")]),
        Paragraph(),
    ]


class TestPlainText:
    def test_render(self, paragraphs):
        assert render_plain_text(paragraphs).split("\n") == [
            "Chapter One",
            "The hero drew a blade.",
            "Braces {x} and back\\slash, café ✨",
            "",
        ]

    def test_round_trip_text(self, paragraphs, tmp_path):
        path = tmp_path / "out.txt"
        export_paragraphs(paragraphs, path)
        again = import_paragraphs(path)
        assert [p.text for p in again] == [p.text for p in paragraphs]


class TestRtf:
    def test_render_controls(self, paragraphs):
        rtf = render_rtf(paragraphs)
        assert rtf.startswith("{\\rtf1")
        assert "\\outlinelevel0" in rtf
        assert "{\\b hero}" in rtf
        assert "{\\i blade}" in rtf
        assert "\\{x\\}" in rtf
        assert "back\\\\slash" in rtf
        assert "caf\\u233?" in rtf
        rtf.encode("ascii")

    def test_round_trip(self, paragraphs, tmp_path):
        path = tmp_path / "out.rtf"
        export_paragraphs(paragraphs, path)
        again = import_paragraphs(path)
        assert again == paragraphs

    def test_import_foreign_rtf(self, tmp_path):
        path = tmp_path / "word.rtf"
        path.write_bytes(
            b"{\\rtf1\\ansi{\\fonttbl{\\f0 Arial;}}{\\colortbl;\\red0\\green0\\blue0;}"
            b"{\\*\\generator Some Writer;}"
            b"\\pard\\outlinelevel1\\b Part\\b0\\par "
            b"\\pard Plain \\i slanted\\i0  text\\'e9\\par}"
        )
        paragraphs = import_paragraphs(path)
        assert len(paragraphs) == 2
        assert paragraphs[0].kind == HEADING
        assert paragraphs[0].level == 2
        assert paragraphs[0].runs == [Run("Part", bold=True)]
        assert paragraphs[1].runs == [Run("Plain "), Run("slanted", italic=True), Run(" texté")]

    def test_not_rtf(self, tmp_path):
        path = tmp_path / "fake.rtf"
        path.write_text("just words", encoding="utf-8")
        with pytest.raises(UnsupportedFormatError):
            import_paragraphs(path)


class TestDocx:
    def test_package_parts(self, paragraphs, tmp_path):
        path = tmp_path / "out.docx"
        export_paragraphs(paragraphs, path)
        with zipfile.ZipFile(path) as zf:
            names = set(zf.namelist())
            document = zf.read("word/document.xml").decode("utf-8")
        assert {"[Content_Types].xml", "_rels/.rels", "word/document.xml"} <= names
        assert '<w:outlineLvl w:val="0"/>' in document
        assert "<w:b/>" in document
        assert "<w:i/>" in document
        assert "{x} and back\\slash, café ✨" in document

    def test_escapes_xml(self):
        xml = render_docx_document_xml([Paragraph([Run("a < b & c")])])
        assert "a &lt; b &amp; c" in xml

    def test_breaks(self):
        xml = render_docx_document_xml([Paragraph([Run("a\nb\tc")])])
        assert "<w:br/>" in xml
        assert "<w:tab/>" in xml

    def test_reproducible(self, paragraphs, tmp_path):
        export_paragraphs(paragraphs, tmp_path / "a.docx")
        export_paragraphs(paragraphs, tmp_path / "b.docx")
        assert (tmp_path / "a.docx").read_bytes() == (tmp_path / "b.docx").read_bytes()

    @pytest.mark.parametrize("name", ["story.docx", "story.doc", "STORY.DOCX"])
    def test_word_import_refused(self, tmp_path, name):
        with pytest.raises(UnsupportedFormatError, match="save it as Rich Text"):
            import_paragraphs(tmp_path / name)


class TestDispatch:
    def test_unknown_export_extension(self, paragraphs, tmp_path):
        with pytest.raises(UnsupportedFormatError, match=".txt, .rtf, .docx"):
            export_paragraphs(paragraphs, tmp_path / "out.pdf")

    def test_unknown_import_extension(self, tmp_path):
        with pytest.raises(UnsupportedFormatError):
            import_paragraphs(tmp_path / "in.odt")

    def test_missing_import_file(self, tmp_path):
        with pytest.raises(IOFailureError):
            import_paragraphs(tmp_path / "missing.txt")

    def test_write_failure(self, paragraphs, tmp_path):
        with patch("scribe_engine.exporters.atomic_write_bytes", side_effect=OSError("disk full")):
            with pytest.raises(IOFailureError, match="disk full"):
                export_paragraphs(paragraphs, tmp_path / "out.txt")


class TestDocumentManagerExport:
    def test_export_excludes_markers(self, manager, editor_content, tmp_path):
        path = tmp_path / "chapter.txt"
        manager.export_document(path, editor_content)
        assert path.read_text(encoding="utf-8").split("\n") == [
            "Chapter One",
            "The hero drew a blade.",
            "Line one",
            "Line two",
            "",
        ]

    def test_import_returns_editor_json(self, manager, editor_content, tmp_path):
        path = tmp_path / "chapter.rtf"
        manager.export_document(path, editor_content)
        content = manager.import_document(path)
        assert json.loads(content)["type"] == "doc"
        assert paragraphs_from_content(content) == paragraphs_from_content(editor_content)
