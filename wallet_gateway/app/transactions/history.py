"""
Filtering and sorting for transaction history listings.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, List, Optional, Union

from ..models import Transaction, TransactionStatus, TransactionType

ALL = "all"


class DateRange(str, Enum):
    ALL = "all"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"


class SortBy(str, Enum):
    DATE = "date"
    AMOUNT = "amount"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class HistoryQuery:
    """Filters applied to a history listing; defaults show everything, newest first."""

    search: str = ""
    type: Union[TransactionType, str] = ALL
    status: Union[TransactionStatus, str] = ALL
    date_range: DateRange = DateRange.ALL
    sort_by: SortBy = SortBy.DATE
    sort_order: SortOrder = SortOrder.DESC


def apply_filters(
    transactions: Iterable[Transaction],
    query: HistoryQuery,
    now: Optional[datetime] = None
) -> List[Transaction]:
    """Return the transactions matching ``query`` in the requested order."""
    filtered = list(transactions)

    needle = query.search.strip().lower()
    if needle:
        filtered = [
            t for t in filtered
            if needle in (t.description or "").lower() or needle in (t.reference or "").lower()
        ]

    if _value(query.type) != ALL:
        filtered = [t for t in filtered if t.type.value == _value(query.type)]

    if _value(query.status) != ALL:
        filtered = [t for t in filtered if t.status.value == _value(query.status)]

    since = range_start(DateRange(query.date_range), now)
    if since is not None:
        filtered = [t for t in filtered if _aware(t.created_at) >= since]

    if SortBy(query.sort_by) is SortBy.AMOUNT:
        key = lambda t: t.amount  # noqa: E731
    else:
        key = lambda t: _aware(t.created_at)  # noqa: E731

    return sorted(filtered, key=key, reverse=SortOrder(query.sort_order) is SortOrder.DESC)


def range_start(date_range: DateRange, now: Optional[datetime] = None) -> Optional[datetime]:
    """Earliest timestamp included by ``date_range``; ``None`` means unbounded."""
    if date_range is DateRange.ALL:
        return None

    now = _aware(now) if now is not None else datetime.now().astimezone()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if date_range is DateRange.TODAY:
        return today
    if date_range is DateRange.WEEK:
        return today - timedelta(days=7)
    return _months_before(today, 1)


def active_filters_count(query: HistoryQuery) -> int:
    """Number of filters that narrow the listing (sorting is not a filter)."""
    count = 0
    if _value(query.type) != ALL:
        count += 1
    if _value(query.status) != ALL:
        count += 1
    if DateRange(query.date_range) is not DateRange.ALL:
        count += 1
    if query.search.strip():
        count += 1
    return count


def _months_before(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 - months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _aware(moment: datetime) -> datetime:
    # Naive timestamps from the backend are UTC.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _value(choice: Union[Enum, str]) -> str:
    return choice.value if isinstance(choice, Enum) else str(choice)
