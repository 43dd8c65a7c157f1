"""Plain data types shared by the source adapter, cursor, runner and processors."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

BACKFILL = "backfill"
INCREMENTAL = "incremental"


@dataclass(frozen=True)
class BookmarkRecord:
    url: str
    title: str
    added_at: int  # Chrome epoch microseconds


@dataclass(frozen=True)
class Batch:
    """Newest-first group of records handed to a processor as one unit of work."""

    index: int
    records: Tuple[BookmarkRecord, ...]
    timestamp: datetime

    def __len__(self) -> int:
        return len(self.records)

    @property
    def newest(self) -> int:
        return max(r.added_at for r in self.records)

    @property
    def oldest(self) -> int:
        return min(r.added_at for r in self.records)


@dataclass
class RunPlan:
    mode: str
    previous: int
    batches: List[Batch] = field(default_factory=list)
    commit_value: Optional[int] = None
    dropped: int = 0
    deferred: int = 0

    @property
    def record_count(self) -> int:
        return sum(len(b) for b in self.batches)


__all__ = ["BACKFILL", "INCREMENTAL", "BookmarkRecord", "Batch", "RunPlan"]
