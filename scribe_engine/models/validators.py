"""
scribe_engine/models/validators.py -- Value coercion and field validators.

Change payloads travel as text (that is how they are typed into the marker
dialog and how they are stored in a document).  The single coercion policy
that turns a payload into a typed attribute value lives here, in
``coerce_value``; nothing else in the engine sniffs numbers or booleans.

Usage::

    from scribe_engine.models.validators import coerce_value

    coerce_value("10")      # -> 10.0
    coerce_value("true")    # -> True
    coerce_value("learned") # -> "learned"
"""

from __future__ import annotations

import math
import re
from typing import Union

StateValue = Union[float, str, bool]

# Plain decimal or exponent literals only.  float() would also accept
# "inf", "nan", "1_000" and friends, which are names and labels here.
_NUMERIC_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")

_HEX_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


# ------------------------------------------------------------------
# Coercion
# ------------------------------------------------------------------

def parse_number(text: str) -> float | None:
    """Return *text* as a float if it is a numeric literal, else ``None``."""
    candidate = text.strip()
    if not _NUMERIC_RE.match(candidate):
        return None
    value = float(candidate)
    if math.isinf(value):
        return None
    return value


def coerce_value(text: str) -> StateValue:
    """Interpret a textual change payload.

    Numbers first, then the exact literals ``"true"`` / ``"false"``,
    otherwise the text is kept as-is.
    """
    number = parse_number(text)
    if number is not None:
        return number
    if text == "true":
        return True
    if text == "false":
        return False
    return text


def format_number(value: float) -> str:
    """Render a number the way a person would type it (``10`` not ``10.0``)."""
    if math.isfinite(value) and float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def payload_text(value) -> str:
    """Normalise a typed input value to its textual payload.

    Booleans become ``"true"``/``"false"`` and numbers their shortest text,
    so that ``coerce_value(payload_text(v)) == v`` for every value in the
    attribute domain.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_number(float(value))
    if value is None:
        return ""
    return str(value)


# ------------------------------------------------------------------
# Field validators
# ------------------------------------------------------------------

def validate_hex_color(value: str) -> str:
    """Check that *value* is a ``#RGB`` or ``#RRGGBB`` colour string."""
    if not isinstance(value, str) or not _HEX_COLOR_RE.match(value):
        raise ValueError(
            f"'{value}' is not a colour. Use a hex colour such as #FFD700."
        )
    return value


def validate_field_path(value: str) -> str:
    """A dotted attribute path must be non-empty and have no empty segments."""
    if not value or any(segment == "" for segment in value.split(".")):
        raise ValueError(
            f"'{value}' is not a valid field name. Use names like "
            f"'Level' or 'stats.HP' (no leading, trailing or double dots)."
        )
    return value
