"""Airflow DAG: periodic bookmark curation run (load -> plan -> process -> commit).

The DAG is the periodic trigger for `runner.run_pipeline`. It allows one active run
at a time because the watermark has a single writer. Source and watermark errors
fail the task (and are retried); per-batch failures are handled inside the run.

Configure via environment variables (see settings.py for the pipeline itself):
  - SCHEDULE (cron or preset, default '@daily')
  - ALERT_EMAIL (optional failure notifications)
"""
from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict

from airflow import DAG
from airflow.operators.python import PythonOperator
from airflow.utils import timezone
from airflow.utils.email import send_email

import runner
from settings import load_settings

logger = logging.getLogger("bookmark_dag")
logging.basicConfig(level=logging.INFO)

SCHEDULE = os.environ.get("SCHEDULE", "@daily")


def _notify_failure(context: Dict[str, Any]) -> None:
    """Failure notifier. Uses Airflow's send_email if SMTP configured, else logs."""
    task = context.get("task_instance")
    msg = f"DAG {context.get('dag').dag_id} failed on task {task.task_id} at {datetime.utcnow().isoformat()}\n"
    msg += f"Log: {context.get('exception')}\n"

    to = os.environ.get("ALERT_EMAIL")
    if to:
        try:
            send_email(to=to, subject=f"Bookmark pipeline failure: {context.get('dag').dag_id}", html_content=msg)
        except Exception:
            logger.exception("Failed sending failure email; logging instead")
            logger.error(msg)
    else:
        logger.error(msg)


def run_bookmarks(**kwargs) -> Dict[str, Any]:
    report = runner.run_pipeline(load_settings())
    # returned dict is pushed to XCom
    return {
        "mode": report.mode,
        "processed_batches": report.processed_batches,
        "failed_batches": report.failed_batches,
        "processed_records": report.processed_records,
        "committed": report.committed,
        "watermark": report.watermark,
        "artifacts": report.artifacts,
    }


default_args = {
    "owner": "bookmarks",
    "depends_on_past": False,
    "retries": 2,
    "retry_delay": timedelta(minutes=5),
    "on_failure_callback": _notify_failure,
}


with DAG(
    dag_id="bookmark_pipeline",
    default_args=default_args,
    description="Incremental bookmark curation: ingest -> batch -> publish",
    schedule=SCHEDULE,
    start_date=timezone.utcnow() - timedelta(days=1),
    catchup=False,
    max_active_runs=1,
) as dag:

    t_run = PythonOperator(task_id="run_bookmarks", python_callable=run_bookmarks)
