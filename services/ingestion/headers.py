"""Header row location and keyword based column resolution."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .errors import IngestionValidationError

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_label(value: Any) -> str:
    """Lower-case ``value`` and drop everything except letters and digits."""

    if value is None:
        return ""
    return _NON_ALNUM.sub("", str(value).lower())


def locate_header_row(rows: Sequence[Sequence[Any]], keywords: Iterable[str]) -> int:
    """Return the index of the first row containing any header keyword.

    Raises :class:`IngestionValidationError` when no row qualifies.
    """

    needles = [normalize_label(keyword) for keyword in keywords]
    for index, row in enumerate(rows):
        for cell in row:
            if not isinstance(cell, str):
                continue
            label = normalize_label(cell)
            if label and any(needle in label for needle in needles):
                return index
    raise IngestionValidationError(
        "Could not find a header row. Expected a column such as: "
        + ", ".join(keywords),
        field="file",
    )


def resolve_columns(
    header: Sequence[Any], fields: Mapping[str, Sequence[str]]
) -> dict[str, int]:
    """Map field names to column indexes by keyword.

    Fields are resolved in mapping order. An exact label match wins over a
    substring match, and a column claimed by an earlier field is not reused.
    Unresolved fields are absent from the result.
    """

    labels = [normalize_label(cell) for cell in header]
    claimed: set[int] = set()
    resolved: dict[str, int] = {}
    for field, keywords in fields.items():
        needles = [normalize_label(keyword) for keyword in keywords]
        index = _find(labels, needles, claimed, exact=True)
        if index is None:
            index = _find(labels, needles, claimed, exact=False)
        if index is not None:
            resolved[field] = index
            claimed.add(index)
    return resolved


def _find(labels: list[str], needles: list[str], claimed: set[int], *, exact: bool) -> int | None:
    for needle in needles:
        for index, label in enumerate(labels):
            if index in claimed or not label:
                continue
            if (label == needle) if exact else (needle in label):
                return index
    return None


__all__ = ["locate_header_row", "normalize_label", "resolve_columns"]
