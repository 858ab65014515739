"""
Tests for transaction history filtering.
"""

from datetime import datetime, timezone

import pytest

from shared.test_helpers import test_data_factory

from wallet_gateway.app.models import Transaction, TransactionType
from wallet_gateway.app.transactions.history import (
    DateRange,
    HistoryQuery,
    SortBy,
    SortOrder,
    active_filters_count,
    apply_filters,
    range_start,
)

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def transactions():
    return [Transaction.model_validate(row) for row in test_data_factory.create_test_transactions(NOW)]


def ids(transactions):
    return [t.id for t in transactions]


def test_default_query_newest_first(transactions):
    """Test the default query keeps everything, newest first."""
    result = apply_filters(reversed(transactions), HistoryQuery(), now=NOW)

    assert ids(result) == ["txn-1", "txn-2", "txn-3", "txn-4", "txn-5"]


@pytest.mark.parametrize("search,expected", [
    ("tunde", ["txn-2"]),
    ("FND", ["txn-1", "txn-5"]),
    ("  airtime  ", ["txn-3"]),
    ("nothing matches", []),
])
def test_search_matches_description_or_reference(transactions, search, expected):
    """Test search is case-insensitive over description and reference."""
    assert ids(apply_filters(transactions, HistoryQuery(search=search), now=NOW)) == expected


def test_type_and_status_filters(transactions):
    """Test type and status filters combine."""
    transfers = apply_filters(transactions, HistoryQuery(type=TransactionType.TRANSFER), now=NOW)
    completed_credits = apply_filters(transactions, HistoryQuery(type="credit", status="completed"), now=NOW)

    assert ids(transfers) == ["txn-2", "txn-4"]
    assert ids(completed_credits) == ["txn-1", "txn-5"]


@pytest.mark.parametrize("date_range,expected", [
    (DateRange.TODAY, ["txn-1"]),
    (DateRange.WEEK, ["txn-1", "txn-2"]),
    (DateRange.MONTH, ["txn-1", "txn-2", "txn-3", "txn-4"]),
    (DateRange.ALL, ["txn-1", "txn-2", "txn-3", "txn-4", "txn-5"]),
])
def test_date_ranges(transactions, date_range, expected):
    """Test date ranges count back from the start of the current day."""
    assert ids(apply_filters(transactions, HistoryQuery(date_range=date_range), now=NOW)) == expected


def test_sort_by_amount_ascending(transactions):
    query = HistoryQuery(sort_by=SortBy.AMOUNT, sort_order=SortOrder.ASC)

    assert [t.amount for t in apply_filters(transactions, query, now=NOW)] == [45.0, 60.0, 120.5, 500.0, 980.0]


def test_naive_timestamps_treated_as_utc():
    """Test timestamps without an offset compare as UTC."""
    naive = Transaction(
        id="txn-naive",
        type="credit",
        amount=1.0,
        created_at=datetime(2026, 3, 15, 0, 30)
    )

    assert ids(apply_filters([naive], HistoryQuery(date_range=DateRange.TODAY), now=NOW)) == ["txn-naive"]


def test_range_start_month_clamps_day():
    """Test one month before the 31st lands on the last day of a shorter month."""
    now = datetime(2026, 3, 31, 18, 45, tzinfo=timezone.utc)

    assert range_start(DateRange.MONTH, now) == datetime(2026, 2, 28, tzinfo=timezone.utc)
    assert range_start(DateRange.MONTH, datetime(2026, 1, 10, tzinfo=timezone.utc)) == datetime(
        2025, 12, 10, tzinfo=timezone.utc
    )
    assert range_start(DateRange.ALL, now) is None


def test_active_filters_count():
    """Test sorting does not count as a filter."""
    assert active_filters_count(HistoryQuery()) == 0
    assert active_filters_count(HistoryQuery(sort_by=SortBy.AMOUNT, sort_order=SortOrder.ASC)) == 0
    assert active_filters_count(HistoryQuery(
        search="rent",
        type="transfer",
        status="completed",
        date_range=DateRange.WEEK
    )) == 4
