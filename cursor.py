"""Ingestion cursor: decides which bookmarks are new and how they are batched.

`plan_run` is pure. It reads nothing and writes nothing; the runner passes in the
watermark it read and commits `RunPlan.commit_value` after processing.

Two modes:
- Backfill (no watermark yet): the newest `numerator` bookmarks are split into
  `ceiling` sized batches, newest chunk first. Each batch is labelled with the
  time of its oldest bookmark. One commit at the end covers the whole backfill.
- Incremental: bookmarks newer than the watermark form a single batch of at most
  `ceiling` records, labelled with the current time.

When more than `ceiling` bookmarks arrived since the last run, the overflow policy
decides what happens to the excess:
- 'drop': keep the newest `ceiling`. The older excess sits below the new watermark
  and is never processed.
- 'defer': keep the oldest `ceiling`. The watermark only advances to their max, so
  the newer excess is picked up by the following runs. Records sharing an
  added_at stay in the same run, even when that pushes one batch past `ceiling`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import transform
from models import BACKFILL, INCREMENTAL, Batch, BookmarkRecord, RunPlan

logger = logging.getLogger("cursor")

OVERFLOW_POLICIES = ("drop", "defer")


@dataclass(frozen=True)
class CursorConfig:
    numerator: int = 300
    ceiling: int = 15
    overflow_policy: str = "drop"

    def __post_init__(self):
        if self.numerator < 1:
            raise ValueError(f"numerator must be >= 1, got {self.numerator}")
        if self.ceiling < 1:
            raise ValueError(f"ceiling must be >= 1, got {self.ceiling}")
        if self.overflow_policy not in OVERFLOW_POLICIES:
            raise ValueError(f"overflow_policy must be one of {OVERFLOW_POLICIES}, got {self.overflow_policy!r}")

    @classmethod
    def from_settings(cls, settings) -> "CursorConfig":
        return cls(numerator=settings.numerator, ceiling=settings.ceiling, overflow_policy=settings.overflow_policy)


def chunk(records: List[BookmarkRecord], size: int) -> List[List[BookmarkRecord]]:
    return [records[i:i + size] for i in range(0, len(records), size)]


def _defer_selection(fresh: List[BookmarkRecord], ceiling: int) -> List[BookmarkRecord]:
    """Oldest `ceiling` records of `fresh` (newest first), never splitting an added_at tie.

    The watermark is compared with `>`, so a tie group cut at the boundary would
    leave its deferred half at or below the committed value forever.
    """
    selected = fresh[-ceiling:]
    boundary = selected[0].added_at
    if fresh[-ceiling - 1].added_at != boundary:
        return selected
    below = [r for r in selected if r.added_at != boundary]
    if below:
        return below
    group = [r for r in fresh if r.added_at == boundary]
    logger.warning("%d bookmarks share added_at %d, processing them together above the ceiling of %d", len(group), boundary, ceiling)
    return group


def _plan_incremental(ordered: List[BookmarkRecord], watermark: int, config: CursorConfig, now: datetime) -> RunPlan:
    plan = RunPlan(mode=INCREMENTAL, previous=watermark)
    fresh = [r for r in ordered if r.added_at > watermark]
    if not fresh:
        return plan

    excess = len(fresh) - config.ceiling
    if excess > 0:
        if config.overflow_policy == "defer":
            selected = _defer_selection(fresh, config.ceiling)
            plan.deferred = len(fresh) - len(selected)
        else:
            selected = fresh[:config.ceiling]
            plan.dropped = excess
    else:
        selected = fresh

    batch = Batch(index=0, records=tuple(selected), timestamp=now)
    plan.batches.append(batch)
    plan.commit_value = batch.newest
    return plan


def _plan_backfill(ordered: List[BookmarkRecord], config: CursorConfig) -> RunPlan:
    plan = RunPlan(mode=BACKFILL, previous=0)
    selected = ordered[:config.numerator]
    plan.dropped = len(ordered) - len(selected)
    if not selected:
        return plan

    for i, part in enumerate(chunk(selected, config.ceiling)):
        oldest = min(r.added_at for r in part)
        plan.batches.append(Batch(index=i, records=tuple(part), timestamp=transform.chrome_to_datetime(oldest)))

    # one terminal commit for the whole backfill, not per chunk
    plan.commit_value = max(r.added_at for r in selected)
    return plan


def plan_run(
    records: Iterable[BookmarkRecord],
    watermark_present: bool,
    watermark_value: int,
    config: CursorConfig,
    now: Optional[datetime] = None,
) -> RunPlan:
    """Plan one run over the candidate bookmarks.

    Args:
        records: flattened bookmarks in any order
        watermark_present: False on the first run (selects Backfill Mode)
        watermark_value: added_at of the newest processed bookmark (ignored when absent)
        config: batch sizes and overflow policy
        now: timestamp for the Incremental Mode batch (defaults to current UTC time)

    Returns:
        RunPlan with batches in processing order and the value to commit afterwards
    """
    unique = transform.dedupe_by_url(records)
    ordered = transform.sort_newest_first(unique)

    if watermark_present:
        plan = _plan_incremental(ordered, watermark_value, config, now or datetime.now(timezone.utc))
    else:
        plan = _plan_backfill(ordered, config)

    logger.info(
        "Planned %s run: %d candidates, %d batches, %d records, dropped=%d deferred=%d",
        plan.mode,
        len(ordered),
        len(plan.batches),
        plan.record_count,
        plan.dropped,
        plan.deferred,
    )
    return plan


__all__ = ["CursorConfig", "OVERFLOW_POLICIES", "chunk", "plan_run"]
