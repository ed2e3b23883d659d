"""
scribe_engine/formatting.py -- Editor document <-> paragraph/run sequence.

The editor stores its text as ProseMirror document JSON.  Export and import
collaborators never see that JSON; they work on a flat, ordered list of
``Paragraph`` objects, each a paragraph or a heading (level 1-6) made of
``Run`` objects carrying ``text``, ``bold`` and ``italic``.

Marker nodes embedded in the editor JSON are dropped: they are annotations,
not prose.  Content that is not editor JSON is treated as plain text with
one paragraph per line, matching how the editor itself falls back when it
opens an older plain-text document.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

PARAGRAPH = "paragraph"
HEADING = "heading"

# Blocks whose children are themselves blocks.
_CONTAINER_BLOCKS = {"blockquote", "bullet_list", "ordered_list", "list_item"}


@dataclass
class Run:
    text: str
    bold: bool = False
    italic: bool = False


@dataclass
class Paragraph:
    runs: list[Run] = field(default_factory=list)
    kind: str = PARAGRAPH
    level: int = 0

    @property
    def text(self) -> str:
        return "".join(run.text for run in self.runs)

    @property
    def is_heading(self) -> bool:
        return self.kind == HEADING


def heading(level: int, *runs: Run) -> Paragraph:
    return Paragraph(runs=list(runs), kind=HEADING, level=max(1, min(6, int(level))))


def _append_run(runs: list[Run], run: Run) -> None:
    """Append *run*, merging it into the previous one when formatting matches."""
    if not run.text:
        return
    if runs and runs[-1].bold == run.bold and runs[-1].italic == run.italic:
        runs[-1].text += run.text
    else:
        runs.append(run)


# ------------------------------------------------------------------
# Editor JSON -> paragraphs
# ------------------------------------------------------------------

def _inline_runs(nodes: list[dict[str, Any]]) -> list[Run]:
    runs: list[Run] = []
    for node in nodes or []:
        node_type = node.get("type")
        if node_type == "text":
            marks = {m.get("type") for m in node.get("marks", []) if isinstance(m, dict)}
            _append_run(runs, Run(node.get("text", ""), "strong" in marks, "em" in marks))
        elif node_type == "hard_break":
            _append_run(runs, Run("\n"))
        # marker nodes and unknown inline nodes carry no prose
    return runs


def _collect_blocks(nodes: list[dict[str, Any]], out: list[Paragraph]) -> None:
    for node in nodes or []:
        if not isinstance(node, dict):
            continue
        node_type = node.get("type")
        if node_type == PARAGRAPH or node_type == "code_block":
            out.append(Paragraph(runs=_inline_runs(node.get("content", []))))
        elif node_type == HEADING:
            level = node.get("attrs", {}).get("level", 1)
            out.append(heading(level, *_inline_runs(node.get("content", []))))
        elif node_type == "horizontal_rule":
            out.append(Paragraph())
        elif node_type in _CONTAINER_BLOCKS or "content" in node:
            _collect_blocks(node.get("content", []), out)


def plain_text_to_paragraphs(text: str) -> list[Paragraph]:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return [Paragraph(runs=[Run(line)] if line else []) for line in text.split("\n")]


def paragraphs_from_content(content: str) -> list[Paragraph]:
    """Convert stored editor content to a paragraph list."""
    if not content:
        return []
    try:
        doc = json.loads(content)
    except json.JSONDecodeError:
        return plain_text_to_paragraphs(content)
    if not isinstance(doc, dict) or doc.get("type") != "doc":
        return plain_text_to_paragraphs(content)

    paragraphs: list[Paragraph] = []
    _collect_blocks(doc.get("content", []), paragraphs)
    return paragraphs


# ------------------------------------------------------------------
# Paragraphs -> editor JSON
# ------------------------------------------------------------------

def _run_nodes(run: Run) -> list[dict[str, Any]]:
    marks = []
    if run.bold:
        marks.append({"type": "strong"})
    if run.italic:
        marks.append({"type": "em"})
    nodes: list[dict[str, Any]] = []
    for i, piece in enumerate(run.text.split("\n")):
        if i:
            nodes.append({"type": "hard_break"})
        if piece:
            text_node: dict[str, Any] = {"type": "text", "text": piece}
            if marks:
                text_node["marks"] = list(marks)
            nodes.append(text_node)
    return nodes


def paragraphs_to_content(paragraphs: list[Paragraph]) -> str:
    """Build editor document JSON (as a string) from *paragraphs*."""
    blocks = []
    for paragraph in paragraphs:
        block: dict[str, Any] = {"type": paragraph.kind}
        if paragraph.is_heading:
            block["attrs"] = {"level": paragraph.level}
        inline = [node for run in paragraph.runs for node in _run_nodes(run)]
        if inline:
            block["content"] = inline
        blocks.append(block)
    if not blocks:
        blocks.append({"type": PARAGRAPH})
    return json.dumps({"type": "doc", "content": blocks}, ensure_ascii=False)
