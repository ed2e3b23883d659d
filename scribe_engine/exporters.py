"""
scribe_engine/exporters.py -- Export and import collaborators.

Turns the paragraph/run sequence from ``formatting`` into files, and reads
files back into that sequence.

    Export  .txt   UTF-8, one line per paragraph
            .rtf   Rich Text (bold, italic, headings via \\outlinelevel)
            .docx  Word (WordprocessingML in a zip package)
    Import  .txt, .rtf
            .docx / .doc are refused with an actionable message

Dependencies: Python standard library only (zipfile, xml.sax.saxutils).

Usage::

    from scribe_engine.exporters import export_paragraphs, import_paragraphs

    export_paragraphs(paragraphs, "chapter-1.rtf")
    paragraphs = import_paragraphs("chapter-1.rtf")
"""

import logging
import zipfile
from io import BytesIO
from pathlib import Path
from xml.sax.saxutils import escape

from scribe_engine.errors import IOFailureError, UnsupportedFormatError
from scribe_engine.formatting import HEADING, Paragraph, Run, plain_text_to_paragraphs
from scribe_engine.utils import atomic_write_bytes

logger = logging.getLogger(__name__)

# Heading font sizes in half-points, shared by RTF and DOCX.
HEADING_SIZES = {1: 48, 2: 40, 3: 32, 4: 28, 5: 24, 6: 22}
BODY_SIZE = 24

WORD_IMPORT_MESSAGE = (
    "Importing Word documents is not supported. Open the file in your word "
    "processor, save it as Rich Text (.rtf) or Plain Text (.txt), and "
    "import that file instead."
)


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------

def render_plain_text(paragraphs: list[Paragraph]) -> str:
    return "\n".join(p.text for p in paragraphs)


def _encode_plain_text(paragraphs: list[Paragraph]) -> bytes:
    return render_plain_text(paragraphs).encode("utf-8")


def _decode_plain_text(payload: bytes) -> list[Paragraph]:
    text = payload.decode("utf-8-sig", errors="replace")
    if not text:
        return []
    return plain_text_to_paragraphs(text)


# ---------------------------------------------------------------------------
# RTF
# ---------------------------------------------------------------------------

def _rtf_escape(text: str) -> str:
    out = []
    for ch in text:
        if ch in "\\{}":
            out.append("\\" + ch)
        elif ch == "\n":
            out.append("\\line ")
        elif ch == "\t":
            out.append("\\tab ")
        elif ord(ch) < 128:
            out.append(ch)
        else:
            # \uN takes a signed 16-bit value; astral characters are
            # written as a surrogate pair.
            encoded = ch.encode("utf-16-le")
            for i in range(0, len(encoded), 2):
                unit = int.from_bytes(encoded[i:i + 2], "little")
                if unit > 32767:
                    unit -= 65536
                out.append(f"\\u{unit}?")
    return "".join(out)


def render_rtf(paragraphs: list[Paragraph]) -> str:
    parts = [
        "{\\rtf1\\ansi\\ansicpg1252\\deff0",
        "{\\fonttbl{\\f0\\froman Times New Roman;}}",
        f"\\f0\\fs{BODY_SIZE}",
    ]
    for paragraph in paragraphs:
        if paragraph.kind == HEADING:
            head = f"{{\\pard\\outlinelevel{paragraph.level - 1}\\fs{HEADING_SIZES[paragraph.level]} "
        else:
            head = "{\\pard "
        runs = []
        for run in paragraph.runs:
            ctrl = ("\\b" if run.bold else "") + ("\\i" if run.italic else "")
            runs.append("{" + ctrl + (" " if ctrl else "") + _rtf_escape(run.text) + "}")
        parts.append(head + "".join(runs) + "\\par}")
    parts.append("}")
    return "\n".join(parts)


def _encode_rtf(paragraphs: list[Paragraph]) -> bytes:
    return render_rtf(paragraphs).encode("ascii")


# Destinations whose content is never document text.
_RTF_SKIP_DESTINATIONS = {
    "fonttbl", "colortbl", "stylesheet", "info", "pict", "header", "footer",
    "headerl", "headerr", "footerl", "footerr", "generator", "listtable",
    "listoverridetable", "rsidtbl", "xmlnstbl", "themedata",
    "colorschememapping", "latentstyles", "datastore", "object", "fldinst",
}


def _join_surrogates(text: str) -> str:
    return text.encode("utf-16", "surrogatepass").decode("utf-16", errors="replace")


class _RtfReader:
    """A small RTF tokenizer that keeps only paragraphs, bold and italic."""

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.paragraphs: list[Paragraph] = []
        self.runs: list[Run] = []
        # bold, italic, skip, uc (fallback chars after \uN), outline level
        self.state = {"b": False, "i": False, "skip": False, "uc": 1, "outline": None}
        self.stack: list[dict] = []
        self.pending_skip = 0

    def read(self) -> list[Paragraph]:
        src = self.source
        while self.pos < len(src):
            ch = src[self.pos]
            if ch == "{":
                self.stack.append(dict(self.state))
                self.pos += 1
            elif ch == "}":
                if self.stack:
                    self.state = self.stack.pop()
                self.pos += 1
            elif ch == "\\":
                self._control()
            elif ch in "\r\n":
                self.pos += 1
            else:
                self._text(ch)
                self.pos += 1
        if self.runs:
            self._end_paragraph()
        for paragraph in self.paragraphs:
            for run in paragraph.runs:
                run.text = _join_surrogates(run.text)
        return self.paragraphs

    def _text(self, text: str) -> None:
        if self.pending_skip:
            self.pending_skip -= 1
            return
        if self.state["skip"]:
            return
        run = Run(text, self.state["b"], self.state["i"])
        if self.runs and self.runs[-1].bold == run.bold and self.runs[-1].italic == run.italic:
            self.runs[-1].text += text
        else:
            self.runs.append(run)

    def _end_paragraph(self) -> None:
        if self.state["skip"]:
            return
        level = self.state["outline"]
        if level is not None:
            paragraph = Paragraph(runs=self.runs, kind=HEADING, level=max(1, min(6, level + 1)))
        else:
            paragraph = Paragraph(runs=self.runs)
        self.paragraphs.append(paragraph)
        self.runs = []

    def _control(self) -> None:
        src = self.source
        self.pos += 1
        if self.pos >= len(src):
            return
        ch = src[self.pos]

        if ch in "\\{}":
            self._text(ch)
            self.pos += 1
            return
        if ch == "'":
            hex_code = src[self.pos + 1:self.pos + 3]
            self.pos += 3
            try:
                self._text(bytes([int(hex_code, 16)]).decode("cp1252", errors="replace"))
            except ValueError:
                pass
            return
        if ch == "*":
            self.state["skip"] = True
            self.pos += 1
            return
        if ch == "~":
            self._text(" ")
            self.pos += 1
            return
        if ch == "_":
            self._text("-")
            self.pos += 1
            return
        if not ch.isalpha():
            # \-, \|, \:, line-break escapes and friends
            if ch in "\r\n":
                self._end_paragraph()
            self.pos += 1
            return

        start = self.pos
        while self.pos < len(src) and src[self.pos].isalpha():
            self.pos += 1
        word = src[start:self.pos]
        num_start = self.pos
        if self.pos < len(src) and src[self.pos] == "-":
            self.pos += 1
        while self.pos < len(src) and src[self.pos].isdigit():
            self.pos += 1
        param_text = src[num_start:self.pos]
        param = int(param_text) if param_text not in ("", "-") else None
        if self.pos < len(src) and src[self.pos] == " ":
            self.pos += 1
        self._apply(word, param)

    def _apply(self, word: str, param) -> None:
        state = self.state
        if word in _RTF_SKIP_DESTINATIONS:
            state["skip"] = True
        elif word == "par":
            self._end_paragraph()
        elif word == "line":
            self._text("\n")
        elif word == "tab":
            self._text("\t")
        elif word == "b":
            state["b"] = param != 0
        elif word == "i":
            state["i"] = param != 0
        elif word == "plain":
            state["b"] = state["i"] = False
        elif word == "pard":
            state["outline"] = None
        elif word == "outlinelevel":
            state["outline"] = param if param is not None and param >= 0 else None
        elif word == "uc":
            state["uc"] = param or 0
        elif word == "u" and param is not None:
            code = param + 65536 if param < 0 else param
            self._text(chr(code))
            self.pending_skip = state["uc"]


def _decode_rtf(payload: bytes) -> list[Paragraph]:
    text = payload.decode("latin-1")
    if not text.lstrip().startswith("{\\rtf"):
        raise UnsupportedFormatError(
            "This file does not look like a Rich Text document. "
            "Check that it was saved as .rtf."
        )
    return _RtfReader(text).read()


# ---------------------------------------------------------------------------
# DOCX (export only)
# ---------------------------------------------------------------------------

_CONTENT_TYPES = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Override PartName="/word/document.xml" '
    'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
    "</Types>"
)

_PACKAGE_RELS = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
    '<Relationship Id="rId1" '
    'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" '
    'Target="word/document.xml"/>'
    "</Relationships>"
)

_W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"


def _docx_run(run: Run, size: int) -> str:
    props = ""
    if run.bold:
        props += "<w:b/>"
    if run.italic:
        props += "<w:i/>"
    if size != BODY_SIZE:
        props += f'<w:sz w:val="{size}"/>'
    body = []
    for i, line in enumerate(run.text.split("\n")):
        if i:
            body.append("<w:br/>")
        for j, piece in enumerate(line.split("\t")):
            if j:
                body.append("<w:tab/>")
            if piece:
                body.append(f'<w:t xml:space="preserve">{escape(piece)}</w:t>')
    rpr = f"<w:rPr>{props}</w:rPr>" if props else ""
    return f"<w:r>{rpr}{''.join(body)}</w:r>"


def render_docx_document_xml(paragraphs: list[Paragraph]) -> str:
    body = []
    for paragraph in paragraphs:
        if paragraph.kind == HEADING:
            ppr = f'<w:pPr><w:outlineLvl w:val="{paragraph.level - 1}"/></w:pPr>'
            size = HEADING_SIZES[paragraph.level]
        else:
            ppr = ""
            size = BODY_SIZE
        runs = "".join(_docx_run(run, size) for run in paragraph.runs)
        body.append(f"<w:p>{ppr}{runs}</w:p>")
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        f'<w:document xmlns:w="{_W_NS}"><w:body>'
        + "".join(body)
        + "<w:sectPr/></w:body></w:document>"
    )


def _encode_docx(paragraphs: list[Paragraph]) -> bytes:
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        # Fixed timestamps keep exports byte-for-byte reproducible.
        for name, data in (
            ("[Content_Types].xml", _CONTENT_TYPES),
            ("_rels/.rels", _PACKAGE_RELS),
            ("word/document.xml", render_docx_document_xml(paragraphs)),
        ):
            info = zipfile.ZipInfo(name, date_time=(1980, 1, 1, 0, 0, 0))
            info.compress_type = zipfile.ZIP_DEFLATED
            zf.writestr(info, data.encode("utf-8"))
    return buffer.getvalue()


def _refuse_word(payload: bytes) -> list[Paragraph]:
    raise UnsupportedFormatError(WORD_IMPORT_MESSAGE)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

_EXPORTERS = {
    ".txt": _encode_plain_text,
    ".rtf": _encode_rtf,
    ".docx": _encode_docx,
}

_IMPORTERS = {
    ".txt": _decode_plain_text,
    ".rtf": _decode_rtf,
    ".docx": _refuse_word,
    ".doc": _refuse_word,
}

SUPPORTED_EXPORT_FORMATS = tuple(_EXPORTERS)
SUPPORTED_IMPORT_FORMATS = (".txt", ".rtf")


def export_paragraphs(paragraphs: list[Paragraph], path) -> None:
    """Write *paragraphs* to *path* in the format implied by its extension.

    Raises
    ------
    UnsupportedFormatError
        If the extension is not .txt, .rtf or .docx.
    IOFailureError
        If the file cannot be written.
    """
    suffix = Path(path).suffix.lower()
    encoder = _EXPORTERS.get(suffix)
    if encoder is None:
        raise UnsupportedFormatError(
            f"Cannot export to '{suffix or path}'. Choose one of: "
            f"{', '.join(SUPPORTED_EXPORT_FORMATS)}."
        )
    payload = encoder(paragraphs)
    try:
        atomic_write_bytes(path, payload)
    except OSError as exc:
        raise IOFailureError(
            f"Could not write '{path}'. Check that the folder exists and "
            f"you have permission to write there. Technical detail: {exc}"
        ) from exc
    logger.info("Exported %d paragraph(s) to %s", len(paragraphs), path)


def import_paragraphs(path) -> list[Paragraph]:
    """Read *path* into a paragraph list.

    Raises
    ------
    UnsupportedFormatError
        For Word files and unknown extensions.
    IOFailureError
        If the file cannot be read.
    """
    suffix = Path(path).suffix.lower()
    decoder = _IMPORTERS.get(suffix)
    if decoder is None:
        raise UnsupportedFormatError(
            f"Cannot import '{suffix or path}' files. Choose one of: "
            f"{', '.join(SUPPORTED_IMPORT_FORMATS)}."
        )
    if decoder is _refuse_word:
        return decoder(b"")
    try:
        with open(path, "rb") as fh:
            payload = fh.read()
    except OSError as exc:
        raise IOFailureError(
            f"Could not read '{path}'. Technical detail: {exc}"
        ) from exc
    paragraphs = decoder(payload)
    logger.info("Imported %d paragraph(s) from %s", len(paragraphs), path)
    return paragraphs
