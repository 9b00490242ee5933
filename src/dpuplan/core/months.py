"""Month label helpers.

Months are identified by "Mon-YY" labels (``"Sep-25"``), used both for display
and for chronological ordering.
"""

from __future__ import annotations

import re

from dpuplan.core.errors import InvalidMetricInput

MONTH_NAMES: tuple[str, ...] = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)
_MONTH_INDEX = {name.lower(): idx for idx, name in enumerate(MONTH_NAMES)}
_LABEL_RE = re.compile(r"^\s*([A-Za-z]{3})-(\d{2}|\d{4})\s*$")


def parse_month_label(label: str) -> tuple[int, int]:
    """Return ``(year, month_index)`` for a "Mon-YY" label (month_index 0-11).

    Two-digit years are read as 20YY.
    """
    m = _LABEL_RE.match(str(label or ""))
    if not m:
        raise InvalidMetricInput(f"invalid month label: {label!r}")
    month_idx = _MONTH_INDEX.get(m.group(1).lower())
    if month_idx is None:
        raise InvalidMetricInput(f"invalid month label: {label!r}")
    year_raw = m.group(2)
    year = int(year_raw) if len(year_raw) == 4 else 2000 + int(year_raw)
    return year, month_idx


def is_month_label(label: str) -> bool:
    try:
        parse_month_label(label)
    except InvalidMetricInput:
        return False
    return True


def format_month_label(year: int, month_index: int) -> str:
    """Inverse of :func:`parse_month_label`; month_index may overflow 0-11."""
    year = int(year) + int(month_index) // 12
    return f"{MONTH_NAMES[int(month_index) % 12]}-{year % 100:02d}"


def month_sort_key(label: str) -> tuple[int, int]:
    return parse_month_label(label)


def shift_month_label(label: str, months: int) -> str:
    year, idx = parse_month_label(label)
    return format_month_label(year, idx + months)


def year_month_labels(year: int) -> list[str]:
    return [format_month_label(year, idx) for idx in range(12)]


def check_month_index(value: int, *, field: str) -> int:
    if isinstance(value, bool) or int(value) != value or not 0 <= int(value) <= 11:
        raise InvalidMetricInput(f"{field}: month index must be 0-11, got {value!r}")
    return int(value)
