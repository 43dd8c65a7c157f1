"""Record transforms for the bookmark pipeline.

Provides functions to:
- remove duplicate bookmarks by url
- filter bookmarks by url prefix
- sort bookmarks newest first
- convert between Chrome epoch timestamps and datetimes

Chrome stores `date_added` as microseconds since 1601-01-01 UTC. These functions
are small and composable so the cursor, processors and scripts can share them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from models import BookmarkRecord

logger = logging.getLogger("transform")

# microseconds between 1601-01-01 and 1970-01-01
CHROME_EPOCH_OFFSET = 11644473600000000
MICROSECONDS_PER_HOUR = 60 * 60 * 1000 * 1000

_CHROME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)


def dedupe_by_url(records: Iterable[BookmarkRecord]) -> List[BookmarkRecord]:
    """Remove duplicate urls, keeping the copy with the greatest added_at.

    Surviving records stay in the position of their first occurrence.

    Returns:
        list of unique records
    """
    best: Dict[str, BookmarkRecord] = {}
    order: List[str] = []
    total = 0
    for r in records:
        total += 1
        current = best.get(r.url)
        if current is None:
            order.append(r.url)
            best[r.url] = r
        elif r.added_at > current.added_at:
            best[r.url] = r
    removed = total - len(order)
    if removed:
        logger.info("Removed %d duplicate bookmarks (from %d to %d)", removed, total, len(order))
    return [best[u] for u in order]


def filter_url_prefix(records: Iterable[BookmarkRecord], prefix: Optional[str]) -> List[BookmarkRecord]:
    if not prefix:
        return list(records)
    return [r for r in records if r.url.startswith(prefix)]


def sort_newest_first(records: Sequence[BookmarkRecord]) -> List[BookmarkRecord]:
    # sorted() is stable, ties keep input order
    return sorted(records, key=lambda r: r.added_at, reverse=True)


def chrome_to_datetime(value: int) -> datetime:
    """Convert a Chrome epoch timestamp to an aware UTC datetime."""
    return _CHROME_EPOCH + timedelta(microseconds=value)


def datetime_to_chrome(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = dt - _CHROME_EPOCH
    return (delta.days * 86400 + delta.seconds) * 1000000 + delta.microseconds


def hours_to_ticks(hours: int) -> int:
    return hours * MICROSECONDS_PER_HOUR


def readable_date(value: int) -> str:
    """Format a Chrome timestamp like 'Mar 7, 2025'."""
    dt = chrome_to_datetime(value)
    return f"{dt:%b} {dt.day}, {dt.year}"


__all__ = [
    "CHROME_EPOCH_OFFSET",
    "dedupe_by_url",
    "filter_url_prefix",
    "sort_newest_first",
    "chrome_to_datetime",
    "datetime_to_chrome",
    "hours_to_ticks",
    "readable_date",
]
