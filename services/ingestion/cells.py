"""Typed decoding of raw spreadsheet cell values.

Decoders never raise. Each returns a :class:`Decoded` pair so callers decide
what a missing or malformed cell means for their row.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Generic, TypeVar

from openpyxl.utils.datetime import from_excel

T = TypeVar("T")

_CURRENCY_NOISE = re.compile(r"[\s$,]")
_DATE_FORMATS = ("%m/%d/%Y", "%m/%d/%y", "%d-%b-%Y")


@dataclass(frozen=True, slots=True)
class Decoded(Generic[T]):
    """Result of decoding one cell: ``value`` is meaningful only when ``ok``."""

    value: T
    ok: bool

    def or_default(self, default: T) -> T:
        return self.value if self.ok else default


def is_blank(cell: Any) -> bool:
    return cell is None or (isinstance(cell, str) and not cell.strip())


def decode_text(cell: Any) -> Decoded[str]:
    if is_blank(cell):
        return Decoded("", False)
    if isinstance(cell, float) and cell.is_integer():
        return Decoded(str(int(cell)), True)
    if isinstance(cell, datetime):
        return Decoded(cell.date().isoformat(), True)
    if isinstance(cell, date):
        return Decoded(cell.isoformat(), True)
    return Decoded(str(cell).strip(), True)


def decode_number(cell: Any) -> Decoded[float]:
    """Decode a numeric cell, tolerating currency symbols and thousands separators."""

    if isinstance(cell, bool) or is_blank(cell):
        return Decoded(0.0, False)
    if isinstance(cell, (int, float)):
        return _finite(float(cell))
    text = _CURRENCY_NOISE.sub("", str(cell))
    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]
    try:
        value = float(text)
    except ValueError:
        return Decoded(0.0, False)
    return _finite(-value if negative else value)


def _finite(value: float) -> Decoded[float]:
    # float() accepts "inf" and "nan", which are not amounts.
    if not math.isfinite(value):
        return Decoded(0.0, False)
    return Decoded(value, True)


def decode_date(cell: Any) -> Decoded[date | None]:
    """Decode a date from a datetime, an Excel serial number or common text forms."""

    if isinstance(cell, datetime):
        return Decoded(cell.date(), True)
    if isinstance(cell, date):
        return Decoded(cell, True)
    if isinstance(cell, bool) or is_blank(cell):
        return Decoded(None, False)
    if isinstance(cell, (int, float)):
        try:
            converted = from_excel(cell)
        except (OverflowError, ValueError):
            return Decoded(None, False)
        if isinstance(converted, datetime):
            return Decoded(converted.date(), True)
        return Decoded(None, False)
    text = str(cell).strip()
    try:
        return Decoded(date.fromisoformat(text[:10]), True)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return Decoded(datetime.strptime(text, fmt).date(), True)
        except ValueError:
            continue
    return Decoded(None, False)


def split_full_name(text: str, *, strip_dots: bool = False) -> tuple[str, str]:
    """Split a combined name into ``(first, last)``.

    The first token is the first name and the remainder the last name. A single
    token yields an empty last name. ``strip_dots`` removes periods first so
    initials such as ``"K. Hall"`` become ``("K", "Hall")``.
    """

    if strip_dots:
        text = text.replace(".", "")
    tokens = text.split()
    if not tokens:
        return "", ""
    return tokens[0], " ".join(tokens[1:])


__all__ = [
    "Decoded",
    "decode_date",
    "decode_number",
    "decode_text",
    "is_blank",
    "split_full_name",
]
