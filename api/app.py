"""FastAPI app exposing pipeline state for dashboards and scripts.

Endpoints:
 - GET /watermark -> current watermark value, presence and its UTC time
 - GET /plan      -> dry run of the next run (mode, batches, value to commit)
 - GET /runs      -> recent run history (requires a configured database)

Settings are read from the environment on every request (see settings.py).
"""
from __future__ import annotations

import os
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

import loader
import runner
import watermark
from errors import PipelineError
from settings import load_settings

app = FastAPI(title="bookmark-pipeline-api")


class WatermarkOut(BaseModel):
    store: str
    present: bool
    value: Optional[int]
    added_at: Optional[str]


class BatchOut(BaseModel):
    index: int
    size: int
    timestamp: datetime
    newest: int
    oldest: int
    urls: List[str]


class PlanOut(BaseModel):
    mode: str
    previous: int
    commit_value: Optional[int]
    dropped: int
    deferred: int
    batches: List[BatchOut]


class RunOut(BaseModel):
    id: int
    finished_at: Optional[datetime]
    mode: Optional[str]
    planned_batches: Optional[int]
    processed_batches: Optional[int]
    failed_batches: Optional[int]
    processed_records: Optional[int]
    skipped_records: Optional[int]
    committed: Optional[bool]
    watermark: Optional[int]


@app.get("/watermark", response_model=WatermarkOut)
def get_watermark():
    settings = load_settings()
    store = watermark.store_from_settings(settings)
    try:
        value, present = store.read()
    except PipelineError as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    return WatermarkOut(
        store=store.describe(),
        present=present,
        value=value if present else None,
        added_at=watermark.describe_value(value) if present else None,
    )


@app.get("/plan", response_model=PlanOut)
def get_plan():
    settings = load_settings()
    try:
        plan, _ = runner.preview(settings)
    except PipelineError as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    return PlanOut(
        mode=plan.mode,
        previous=plan.previous,
        commit_value=plan.commit_value,
        dropped=plan.dropped,
        deferred=plan.deferred,
        batches=[
            BatchOut(
                index=b.index,
                size=len(b),
                timestamp=b.timestamp,
                newest=b.newest,
                oldest=b.oldest,
                urls=[r.url for r in b.records],
            )
            for b in plan.batches
        ],
    )


@app.get("/runs", response_model=List[RunOut])
def get_runs(limit: int = 20):
    settings = load_settings()
    if not settings.database_url:
        raise HTTPException(status_code=404, detail="Run history needs DATABASE_URL or PG_HOST")
    return loader.recent_runs(settings.database_url, limit=limit)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("API_PORT", 8000)))
