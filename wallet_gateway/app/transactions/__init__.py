"""
Transaction endpoints and history filtering.
"""

from .history import DateRange, HistoryQuery, SortBy, SortOrder, active_filters_count, apply_filters

__all__ = ["DateRange", "HistoryQuery", "SortBy", "SortOrder", "active_filters_count", "apply_filters"]
