"""Calendar-agnostic date helpers for ledger records.

Ledger dates are kept as ``Y/M/D`` strings in whatever calendar the operator
books in. Nothing here converts between calendars: a date is three integers
and "now" must be supplied in the same calendar as the records.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Optional, Tuple

_DIGIT_TABLE = str.maketrans("۰۱۲۳۴۵۶۷۸۹٠١٢٣٤٥٦٧٨٩", "01234567890123456789")
_DATE_RE = re.compile(r"^\s*(\d{1,4})\s*[/-]\s*(\d{1,2})\s*[/-]\s*(\d{1,2})\s*$")


@dataclass(frozen=True, order=True)
class LedgerDate:
    year: int
    month: int
    day: int

    def __str__(self) -> str:
        return f"{self.year:04d}/{self.month:02d}/{self.day:02d}"


def to_latin_digits(value: str) -> str:
    return value.translate(_DIGIT_TABLE)


def parse_ledger_date(value: object) -> Optional[LedgerDate]:
    """Parse ``1403/09/12``-style strings, returning None when malformed."""
    if isinstance(value, LedgerDate):
        return value
    if not isinstance(value, str):
        return None
    match = _DATE_RE.match(to_latin_digits(value))
    if not match:
        return None
    year, month, day = (int(part) for part in match.groups())
    if year < 1 or not 1 <= month <= 12 or not 1 <= day <= 31:
        return None
    return LedgerDate(year, month, day)


def previous_month(year: int, month: int) -> Tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1
