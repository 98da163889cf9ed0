"""Calendar month arithmetic used by the aggregation engines."""

from __future__ import annotations

from datetime import date, datetime


def month_key(value: date | datetime) -> str:
    """Return the ``YYYY-MM`` grouping key for ``value``."""

    return f"{value.year:04d}-{value.month:02d}"


def month_index(value: date | datetime) -> int:
    return value.year * 12 + (value.month - 1)


def months_between(earlier: date | datetime, later: date | datetime) -> int:
    """Whole calendar months from ``earlier`` to ``later``, never negative."""

    return max(month_index(later) - month_index(earlier), 0)


__all__ = ["month_index", "month_key", "months_between"]
