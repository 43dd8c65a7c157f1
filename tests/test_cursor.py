from datetime import datetime, timezone

import pytest

import cursor
import transform
from conftest import make_records
from models import BACKFILL, INCREMENTAL, BookmarkRecord

NOW = datetime(2025, 3, 7, 12, 0, tzinfo=timezone.utc)


def _values(batch):
    return [r.added_at for r in batch.records]


def test_backfill_scenario_chunks_newest_first():
    records = make_records([60, 80, 100, 70, 90])
    plan = cursor.plan_run(records, False, 0, cursor.CursorConfig(numerator=300, ceiling=2))
    assert plan.mode == BACKFILL
    assert [_values(b) for b in plan.batches] == [[100, 90], [80, 70], [60]]
    assert plan.commit_value == 100


def test_incremental_scenario_single_batch():
    records = make_records([100, 90, 80, 70, 60])
    plan = cursor.plan_run(records, True, 80, cursor.CursorConfig(numerator=300, ceiling=2), now=NOW)
    assert plan.mode == INCREMENTAL
    assert len(plan.batches) == 1
    assert _values(plan.batches[0]) == [100, 90]
    assert plan.batches[0].timestamp == NOW
    assert plan.commit_value == 100


def test_empty_delta_yields_no_batches():
    records = make_records([100, 90, 80])
    plan = cursor.plan_run(records, True, 100, cursor.CursorConfig())
    assert plan.batches == []
    assert plan.commit_value is None


def test_backfill_chunk_count_for_42_records():
    records = make_records(range(1000, 1042))
    plan = cursor.plan_run(records, False, 0, cursor.CursorConfig(numerator=300, ceiling=15))
    assert [len(b) for b in plan.batches] == [15, 15, 12]


def test_every_batch_respects_ceiling():
    records = make_records(range(1, 200))
    for present in (False, True):
        plan = cursor.plan_run(records, present, 5, cursor.CursorConfig(numerator=150, ceiling=7))
        assert all(len(b) <= 7 for b in plan.batches)


def test_backfill_truncates_to_numerator_and_commits_max():
    records = make_records(range(1, 51))
    plan = cursor.plan_run(records, False, 0, cursor.CursorConfig(numerator=10, ceiling=4))
    assert plan.record_count == 10
    assert [len(b) for b in plan.batches] == [4, 4, 2]
    assert plan.commit_value == 50
    assert plan.dropped == 40
    assert min(r.added_at for b in plan.batches for r in b.records) == 41


def test_backfill_batch_timestamp_is_oldest_record():
    base = transform.datetime_to_chrome(datetime(2025, 1, 1, tzinfo=timezone.utc))
    hour = transform.hours_to_ticks(1)
    records = make_records([base + 3 * hour, base + 2 * hour, base + hour, base])
    plan = cursor.plan_run(records, False, 0, cursor.CursorConfig(ceiling=2))
    assert plan.batches[0].timestamp == datetime(2025, 1, 1, 2, tzinfo=timezone.utc)
    assert plan.batches[1].timestamp == datetime(2025, 1, 1, 0, tzinfo=timezone.utc)


def test_incremental_never_includes_records_at_or_below_watermark():
    records = make_records([5, 10, 10, 15, 20, 25])
    plan = cursor.plan_run(records, True, 10, cursor.CursorConfig(ceiling=50))
    assert all(r.added_at > 10 for b in plan.batches for r in b.records)


def test_committed_watermark_is_monotonic():
    records = make_records([100, 90, 80])
    plan = cursor.plan_run(records, True, 85, cursor.CursorConfig())
    assert plan.commit_value >= 85


def test_no_redelivery_after_backfill_commit():
    records = make_records([100, 90, 80, 70, 60])
    config = cursor.CursorConfig(ceiling=2)
    first = cursor.plan_run(records, False, 0, config)
    second = cursor.plan_run(records, True, first.commit_value, config)
    assert second.batches == []


def test_absent_watermark_with_no_records():
    plan = cursor.plan_run([], False, 0, cursor.CursorConfig())
    assert plan.mode == BACKFILL
    assert plan.batches == []
    assert plan.commit_value is None


def test_drop_policy_keeps_newest_and_reports_loss():
    records = make_records(range(1, 11))
    plan = cursor.plan_run(records, True, 0, cursor.CursorConfig(ceiling=3))
    assert _values(plan.batches[0]) == [10, 9, 8]
    assert plan.dropped == 7
    assert plan.commit_value == 10


def test_defer_policy_processes_everything_over_several_runs():
    records = make_records(range(1, 11))
    config = cursor.CursorConfig(ceiling=3, overflow_policy="defer")
    seen = []
    value = 0
    for _ in range(10):
        plan = cursor.plan_run(records, True, value, config)
        if not plan.batches:
            break
        seen.extend(_values(plan.batches[0]))
        value = plan.commit_value
    assert sorted(seen) == list(range(1, 11))
    assert len(seen) == len(set(seen))
    assert value == 10


def test_defer_policy_keeps_tie_across_boundary_for_next_run():
    records = [
        BookmarkRecord("https://a", "a", 5),
        BookmarkRecord("https://b", "b", 4),
        BookmarkRecord("https://c", "c", 4),
        BookmarkRecord("https://d", "d", 3),
    ]
    config = cursor.CursorConfig(ceiling=2, overflow_policy="defer")
    first = cursor.plan_run(records, True, 0, config)
    assert [r.url for r in first.batches[0].records] == ["https://d"]
    assert first.deferred == 3
    assert first.commit_value == 3

    seen = []
    value = 0
    for _ in range(10):
        plan = cursor.plan_run(records, True, value, config)
        if not plan.batches:
            break
        seen.extend(r.url for r in plan.batches[0].records)
        value = plan.commit_value
    assert sorted(seen) == ["https://a", "https://b", "https://c", "https://d"]
    assert value == 5


def test_defer_policy_tie_group_larger_than_ceiling_runs_together():
    records = [BookmarkRecord(f"https://{c}", c, 7) for c in "abc"] + [BookmarkRecord("https://z", "z", 9)]
    plan = cursor.plan_run(records, True, 0, cursor.CursorConfig(ceiling=2, overflow_policy="defer"))
    assert [r.url for r in plan.batches[0].records] == ["https://a", "https://b", "https://c"]
    assert plan.deferred == 1
    assert plan.commit_value == 7


def test_defer_policy_batch_stays_newest_first():
    records = make_records(range(1, 11))
    plan = cursor.plan_run(records, True, 0, cursor.CursorConfig(ceiling=3, overflow_policy="defer"))
    assert _values(plan.batches[0]) == [3, 2, 1]
    assert plan.deferred == 7
    assert plan.commit_value == 3


def test_ties_keep_input_order():
    records = [
        BookmarkRecord("https://a", "a", 50),
        BookmarkRecord("https://b", "b", 50),
        BookmarkRecord("https://c", "c", 60),
    ]
    plan = cursor.plan_run(records, False, 0, cursor.CursorConfig(ceiling=10))
    assert [r.url for r in plan.batches[0].records] == ["https://c", "https://a", "https://b"]


def test_duplicate_urls_are_removed_before_planning():
    records = [
        BookmarkRecord("https://dup", "old", 10),
        BookmarkRecord("https://other", "other", 20),
        BookmarkRecord("https://dup", "new", 30),
    ]
    plan = cursor.plan_run(records, False, 0, cursor.CursorConfig(ceiling=10))
    batch = plan.batches[0]
    assert [r.url for r in batch.records] == ["https://dup", "https://other"]
    assert batch.records[0].title == "new"


def test_batches_are_disjoint_and_exhaustive():
    records = make_records(range(1, 23))
    plan = cursor.plan_run(records, False, 0, cursor.CursorConfig(numerator=300, ceiling=5))
    urls = [r.url for b in plan.batches for r in b.records]
    assert len(urls) == len(set(urls)) == 22


@pytest.mark.parametrize("kwargs", [{"ceiling": 0}, {"numerator": 0}, {"overflow_policy": "queue"}])
def test_invalid_config(kwargs):
    with pytest.raises(ValueError):
        cursor.CursorConfig(**kwargs)
