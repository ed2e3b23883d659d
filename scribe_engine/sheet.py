"""
scribe_engine/sheet.py -- Render a reconstructed state as a label/value sheet.

Nested objects become indented headings, scalars become ``label: value``
lines, in tree order::

    Hero -- position 120
    Level: 5
    stats
      HP: 15
      MP: 3.5
    alive: true
"""

from __future__ import annotations

from typing import Any, Optional

from scribe_engine.models.validators import format_number

INDENT = "  "


def format_value(value: Any) -> str:
    """Display text for one attribute value."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_number(float(value))
    return str(value)


def _sheet_lines(node: dict[str, Any], depth: int) -> list[str]:
    lines = []
    for key, value in node.items():
        prefix = INDENT * depth
        if isinstance(value, dict):
            lines.append(f"{prefix}{key}")
            lines.extend(_sheet_lines(value, depth + 1))
        else:
            lines.append(f"{prefix}{key}: {format_value(value)}")
    return lines


def render_state_sheet(state: dict[str, Any], title: Optional[str] = None) -> str:
    lines = [title] if title else []
    body = _sheet_lines(state, 0)
    lines.extend(body if body else ["(no state defined yet)"])
    return "\n".join(lines)
