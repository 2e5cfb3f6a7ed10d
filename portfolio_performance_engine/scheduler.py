"""Chronological scheduling of normalized events into per-date buckets.

Both policies hand the ledger one bucket per calendar date, ascending; the
valuation snapshot is always taken after the whole bucket is applied. They
differ only in the order of events inside a bucket:

- ``day_bucket`` keeps chronological source order. Capital inference is
  settled once on the bucket's net shortfall, so the order does not matter.
- ``flat_sort`` orders cashflows, then buys, then sells. This ordering only
  makes output deterministic for display; it says nothing about causality.
"""

from __future__ import annotations

from datetime import date
from itertools import groupby
from typing import Iterable, List, Tuple

from portfolio_performance_engine.config import SCHEDULING_POLICIES
from portfolio_performance_engine.constants import EVENT_SORT_RANK
from portfolio_performance_engine.events import Event


DayBucket = Tuple[date, List[Event]]


def _day_bucket_key(event: Event):
    return (event.date, event.source_index)


def _flat_sort_key(event: Event):
    return (event.date, EVENT_SORT_RANK[event.kind], event.source_index)


def schedule(events: Iterable[Event], policy: str = "day_bucket") -> List[DayBucket]:
    """Group events into ``(date, events)`` buckets ordered by date."""
    if policy not in SCHEDULING_POLICIES:
        raise ValueError(f"Unknown scheduling policy: {policy}")

    key = _day_bucket_key if policy == "day_bucket" else _flat_sort_key
    ordered = sorted(events, key=key)
    return [(day, list(group)) for day, group in groupby(ordered, key=lambda e: e.date)]
