"""Run orchestration: load -> plan -> process batches -> commit watermark.

One invocation is one run, processed sequentially to completion. Runs must not
overlap on the same watermark; scheduling (cron, the Airflow DAG with
max_active_runs=1) is responsible for that.

Failure handling:
- source and watermark errors propagate before any batch is processed
- Backfill Mode: a failing batch is logged and skipped, the rest still run, and the
  watermark is committed once at the end
- Incremental Mode: a failing batch aborts the run and the watermark is left as is
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

import loader
import source
from cursor import CursorConfig, plan_run
from errors import ProcessError
from models import BACKFILL, RunPlan
from processor import BatchProcessor, build_processor
from watermark import WatermarkStore, store_from_settings

logger = logging.getLogger("runner")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")


@dataclass
class RunReport:
    mode: str
    previous: int
    planned_batches: int = 0
    processed_batches: int = 0
    failed_batches: int = 0
    processed_records: int = 0
    skipped_records: int = 0
    committed: bool = False
    watermark: Optional[int] = None
    dropped: int = 0
    deferred: int = 0
    artifacts: List[str] = field(default_factory=list)

    def summary(self) -> str:
        if self.planned_batches == 0:
            if self.mode == BACKFILL:
                return "No bookmarks available to process"
            return f"No new bookmarks since last run (watermark {self.watermark})"
        status = "committed" if self.committed else "not committed"
        text = (
            f"{self.mode}: processed {self.processed_records} bookmarks in {self.processed_batches}/{self.planned_batches} batches, "
            f"skipped {self.skipped_records}, watermark {self.watermark} ({status})"
        )
        if self.dropped:
            text += f", dropped {self.dropped} over the limit"
        if self.deferred:
            text += f", deferred {self.deferred} to later runs"
        return text


def execute_plan(plan: RunPlan, store: WatermarkStore, processor: BatchProcessor) -> RunReport:
    """Process the planned batches in order and commit the watermark when allowed."""
    report = RunReport(
        mode=plan.mode,
        previous=plan.previous,
        planned_batches=len(plan.batches),
        watermark=plan.previous if plan.mode != BACKFILL else None,
        dropped=plan.dropped,
        deferred=plan.deferred,
    )
    if not plan.batches:
        return report

    if plan.dropped and plan.mode != BACKFILL:
        logger.warning(
            "%d new bookmarks exceed the batch ceiling and will not be processed; raise the ceiling or use the 'defer' overflow policy",
            plan.dropped,
        )

    for batch in plan.batches:
        try:
            ref = processor.process(batch, batch.timestamp)
        except ProcessError:
            report.failed_batches += 1
            report.skipped_records += len(batch)
            if plan.mode == BACKFILL:
                logger.exception("Batch %d (%d bookmarks) failed, continuing", batch.index, len(batch))
                continue
            logger.exception("Batch failed, watermark left at %s", plan.previous)
            return report
        report.processed_batches += 1
        report.processed_records += len(batch)
        report.artifacts.append(ref)

    store.write(plan.commit_value)
    report.committed = True
    report.watermark = plan.commit_value
    return report


def _load_and_plan(settings, store: WatermarkStore, now: Optional[datetime] = None) -> RunPlan:
    config = CursorConfig.from_settings(settings)
    records = source.load_records(settings.bookmarks_file, roots=settings.bookmark_roots or None, url_prefix=settings.url_prefix)
    value, present = store.read()
    if present:
        logger.info("Watermark %s read from %s", value, store.describe())
    else:
        logger.info("No watermark in %s, running backfill", store.describe())
    return plan_run(records, present, value, config, now=now)


def preview(settings, store: Optional[WatermarkStore] = None, now: Optional[datetime] = None) -> Tuple[RunPlan, WatermarkStore]:
    """Plan a run without processing anything or touching the watermark."""
    store = store or store_from_settings(settings)
    return _load_and_plan(settings, store, now=now), store


def run_pipeline(
    settings,
    store: Optional[WatermarkStore] = None,
    processor: Optional[BatchProcessor] = None,
    now: Optional[datetime] = None,
) -> RunReport:
    plan, store = preview(settings, store=store, now=now)
    processor = processor or build_processor(settings)
    report = execute_plan(plan, store, processor)
    logger.info(report.summary())

    if settings.database_url:
        try:
            loader.record_run(settings.database_url, report)
        except SQLAlchemyError:
            logger.exception("Failed recording run history")
    return report


__all__ = ["RunReport", "execute_plan", "preview", "run_pipeline"]
