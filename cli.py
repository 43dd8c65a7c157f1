"""Command line entry point for the bookmark pipeline.

Commands:
  run      process new bookmarks and advance the watermark
  plan     show what `run` would do, without processing or writing anything
  status   print the current watermark
  reset    move the watermark back by --hours (default RESET_HOURS) after backing it up
  check    list export entries that would be skipped (missing url or date_added),
           exiting 1 on any with --strict

Exit status is 0 for every completed run, including "nothing new" and a failed
incremental batch (reported in the status line), and 1 on source or watermark errors.
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

import runner
import source
import validate
import watermark
from errors import PipelineError
from settings import load_settings

logger = logging.getLogger("cli")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")


def cmd_run(settings, args) -> int:
    report = runner.run_pipeline(settings)
    print(report.summary())
    return 0


def cmd_plan(settings, args) -> int:
    plan, _ = runner.preview(settings)
    print(f"mode: {plan.mode}")
    for b in plan.batches:
        print(f"batch {b.index}: {len(b)} bookmarks, {b.timestamp.isoformat()}, newest {b.newest}, oldest {b.oldest}")
    if not plan.batches:
        print("nothing to process")
    print(f"commit: {plan.commit_value}")
    if plan.dropped:
        print(f"dropped: {plan.dropped}")
    if plan.deferred:
        print(f"deferred: {plan.deferred}")
    return 0


def cmd_status(settings, args) -> int:
    store = watermark.store_from_settings(settings)
    value, present = store.read()
    if not present:
        print(f"{store.describe()}: no watermark (next run is a backfill)")
    else:
        print(f"{store.describe()}: {value} ({watermark.describe_value(value)})")
    return 0


def cmd_reset(settings, args) -> int:
    hours = args.hours if args.hours is not None else settings.reset_hours
    store = watermark.store_from_settings(settings)
    old, new = watermark.reset_watermark(store, hours=hours)
    print(f"Reset watermark: {old} -> {new} ({hours} hours earlier)")
    return 0


def cmd_check(settings, args) -> int:
    path = args.path or settings.bookmarks_file
    leaves = source.leaf_nodes(source.load(path))
    results = validate.validate_leaf_nodes(leaves)
    bad = [i for i in results if i[1]]
    for ident, issues in bad:
        print(f"{ident}: {', '.join(issues)}")
    print(f"{len(leaves)} entries, {len(bad)} with issues")
    if args.strict:
        validate.raise_if_issues(results, name="bookmark")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="bookmark-pipeline", description="Incremental bookmark curation pipeline")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="process new bookmarks").set_defaults(func=cmd_run)
    sub.add_parser("plan", help="dry run: show planned batches").set_defaults(func=cmd_plan)
    sub.add_parser("status", help="show the current watermark").set_defaults(func=cmd_status)

    reset = sub.add_parser("reset", help="move the watermark back in time")
    reset.add_argument("--hours", type=int, default=None)
    reset.set_defaults(func=cmd_reset)

    check = sub.add_parser("check", help="validate the bookmark export")
    check.add_argument("path", nargs="?", default=None)
    check.add_argument("--strict", action="store_true", help="exit 1 when any entry has issues")
    check.set_defaults(func=cmd_check)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
        return args.func(settings, args)
    except (PipelineError, ValueError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
