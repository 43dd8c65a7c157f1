"""Database helpers for watermark state and run history.

Uses SQLAlchemy engines (psycopg2 driver for Postgres). Configure the connection via
DATABASE_URL, or PG_HOST, PG_PORT, PG_DB, PG_USER, PG_PASSWORD (see settings.database_url).

Functions:
  - get_engine(url)
  - get_session(url)
  - record_run(url, report)
  - recent_runs(url, limit)

Tables are created on first use of an engine.
"""
from __future__ import annotations

import functools
import logging
from typing import Any, Dict, List

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from orm_models import Base, RunRecord

logger = logging.getLogger("loader")


@functools.lru_cache(maxsize=None)
def get_engine(url: str) -> Engine:
    engine = create_engine(url, future=True, pool_pre_ping=True)
    Base.metadata.create_all(engine)
    return engine


def get_session(url: str) -> Session:
    return sessionmaker(bind=get_engine(url), future=True, expire_on_commit=False)()


def record_run(url: str, report) -> int:
    """Insert one row into bookmark_runs for a finished RunReport and return its id."""
    row = RunRecord(
        mode=report.mode,
        planned_batches=report.planned_batches,
        processed_batches=report.processed_batches,
        failed_batches=report.failed_batches,
        processed_records=report.processed_records,
        skipped_records=report.skipped_records,
        committed=report.committed,
        watermark=report.watermark,
    )
    with get_session(url) as session:
        session.add(row)
        session.commit()
        logger.info("Recorded run %s (%s)", row.id, report.mode)
        return row.id


def recent_runs(url: str, limit: int = 20) -> List[Dict[str, Any]]:
    with get_session(url) as session:
        rows = (
            session.query(RunRecord)
            .order_by(RunRecord.finished_at.desc(), RunRecord.id.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "id": r.id,
                "finished_at": r.finished_at,
                "mode": r.mode,
                "planned_batches": r.planned_batches,
                "processed_batches": r.processed_batches,
                "failed_batches": r.failed_batches,
                "processed_records": r.processed_records,
                "skipped_records": r.skipped_records,
                "committed": r.committed,
                "watermark": r.watermark,
            }
            for r in rows
        ]


__all__ = [
    "get_engine",
    "get_session",
    "record_run",
    "recent_runs",
]
