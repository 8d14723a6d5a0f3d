"""Expense aggregation over ledger records.

Every function here is pure: inputs are never mutated and the store is never
consulted. Callers load records and categories once and pass them in.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from taxi_ledger.dates import LedgerDate, parse_ledger_date, previous_month
from taxi_ledger.models import Amount, Category, DATE_RANGES, ExpenseRecord

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY_ID = "unknown"
UNKNOWN_CATEGORY_TITLE = "Unknown"
UNKNOWN_CATEGORY_COLOR = "#9ca3af"


@dataclass(frozen=True)
class Summary:
    total: Amount
    count: int
    average: Amount


@dataclass(frozen=True)
class CategoryBreakdown:
    category_id: str
    title: str
    color: str
    amount: Amount
    count: int
    percentage: Amount


@dataclass(frozen=True)
class ExpenseReport:
    date_range: str
    records: Tuple[ExpenseRecord, ...]
    summary: Summary
    breakdown: Tuple[CategoryBreakdown, ...]
    top_category: Optional[CategoryBreakdown]


def _is_nan(value: Any) -> bool:
    return value != value


def _in_range(parsed: LedgerDate, date_range: str, now: Any) -> bool:
    if date_range == "all":
        return True
    if date_range == "thisYear":
        return parsed.year == now.year
    if date_range == "thisMonth":
        return (parsed.year, parsed.month) == (now.year, now.month)
    return (parsed.year, parsed.month) == previous_month(now.year, now.month)


def filter_by_range(records: Iterable[ExpenseRecord], date_range: str, now: Any) -> List[ExpenseRecord]:
    """Select records whose date falls in the window ``date_range`` names.

    ``now`` only needs integer ``year`` and ``month`` attributes, so a
    ``LedgerDate`` or a ``datetime.date`` both work. Records with dates that
    cannot be parsed are left out of every range, ``all`` included.
    """
    if date_range not in DATE_RANGES:
        raise ValueError(f"Unknown date range {date_range!r}. Expected one of {list(DATE_RANGES)}")

    selected: List[ExpenseRecord] = []
    for record in records:
        parsed = parse_ledger_date(record.date)
        if parsed is None:
            logger.debug("Skipping expense %s with unparsable date %r", record.expense_id, record.date)
            continue
        if _in_range(parsed, date_range, now):
            selected.append(record)
    return selected


def summarize(records: Sequence[ExpenseRecord]) -> Summary:
    total = sum((record.amount for record in records), 0)
    count = len(records)
    average = total / count if count > 0 else 0
    return Summary(total=total, count=count, average=average)


def _percentage(amount: Amount, total: Amount) -> Amount:
    if _is_nan(total) or _is_nan(amount):
        return float("nan")
    if total > 0:
        return amount / total * 100
    return 0


def _sort_key(entry: CategoryBreakdown) -> Tuple[int, Amount]:
    if _is_nan(entry.amount):
        return (1, 0)
    return (0, -entry.amount)


def breakdown_by_category(
    records: Sequence[ExpenseRecord], categories: Iterable[Category]
) -> List[CategoryBreakdown]:
    """Per-category totals, counts and shares, largest first.

    Records pointing at a category that no longer exists are collected in a
    fallback bucket so the breakdown always adds up to the summary total.
    """
    known = {category.category_id: category for category in categories}
    # None keys the fallback bucket so a real category may also be called "unknown".
    totals: Dict[Optional[str], List[Any]] = {}
    for record in records:
        key = record.category_id if record.category_id in known else None
        bucket = totals.setdefault(key, [0, 0])
        bucket[0] += record.amount
        bucket[1] += 1

    total = summarize(records).total
    entries: List[CategoryBreakdown] = []
    for category_id, category in known.items():
        if category_id not in totals:
            continue
        amount, count = totals[category_id]
        if amount == 0:
            continue
        entries.append(
            CategoryBreakdown(
                category_id=category_id,
                title=category.title,
                color=category.color,
                amount=amount,
                count=count,
                percentage=_percentage(amount, total),
            )
        )

    if None in totals:
        amount, count = totals[None]
        if amount != 0:
            entries.append(
                CategoryBreakdown(
                    category_id=UNKNOWN_CATEGORY_ID,
                    title=UNKNOWN_CATEGORY_TITLE,
                    color=UNKNOWN_CATEGORY_COLOR,
                    amount=amount,
                    count=count,
                    percentage=_percentage(amount, total),
                )
            )

    return sorted(entries, key=_sort_key)


def top_category(breakdown: Sequence[CategoryBreakdown]) -> Optional[CategoryBreakdown]:
    return breakdown[0] if breakdown else None


def build_expense_report(
    records: Iterable[ExpenseRecord],
    categories: Iterable[Category],
    date_range: str,
    now: Any,
) -> ExpenseReport:
    selected = filter_by_range(records, date_range, now)
    breakdown = breakdown_by_category(selected, list(categories))
    return ExpenseReport(
        date_range=date_range,
        records=tuple(selected),
        summary=summarize(selected),
        breakdown=tuple(breakdown),
        top_category=top_category(breakdown),
    )


def search_expenses(
    records: Iterable[ExpenseRecord], term: str = "", category_id: Optional[str] = None
) -> List[ExpenseRecord]:
    needle = term.strip().lower()
    matches: List[ExpenseRecord] = []
    for record in records:
        if category_id is not None and record.category_id != category_id:
            continue
        if needle and needle not in record.description.lower() and needle not in str(record.amount):
            continue
        matches.append(record)
    return matches


def sort_by_date_desc(records: Iterable[ExpenseRecord]) -> List[ExpenseRecord]:
    dated: List[Tuple[LedgerDate, ExpenseRecord]] = []
    undated: List[ExpenseRecord] = []
    for record in records:
        parsed = parse_ledger_date(record.date)
        if parsed is None:
            undated.append(record)
        else:
            dated.append((parsed, record))
    dated.sort(key=lambda pair: pair[0], reverse=True)
    return [record for _, record in dated] + undated
