from fastapi.testclient import TestClient

import loader
from api.app import app
from runner import RunReport

client = TestClient(app)


def test_watermark_absent(pipeline_env):
    resp = client.get("/watermark")
    assert resp.status_code == 200
    body = resp.json()
    assert body["present"] is False
    assert body["value"] is None


def test_watermark_present(pipeline_env, tmp_path):
    (tmp_path / "last-bookmark-timestamp.txt").write_text("11644473600000000")
    body = client.get("/watermark").json()
    assert body["value"] == 11644473600000000
    assert body["added_at"].startswith("1970-01-01T00:00:00")


def test_plan_preview(pipeline_env, tmp_path):
    pipeline_env([50, 40, 30])
    body = client.get("/plan").json()
    assert body["mode"] == "backfill"
    assert [b["size"] for b in body["batches"]] == [2, 1]
    assert body["batches"][0]["urls"] == ["https://example.com/50", "https://example.com/40"]
    assert body["commit_value"] == 50
    assert not (tmp_path / "last-bookmark-timestamp.txt").exists()


def test_plan_missing_export(pipeline_env, monkeypatch, tmp_path):
    monkeypatch.setenv("BOOKMARKS_FILE", str(tmp_path / "missing"))
    assert client.get("/plan").status_code == 500


def test_runs_requires_database(pipeline_env):
    assert client.get("/runs").status_code == 404


def test_runs_lists_history(pipeline_env, monkeypatch, tmp_path):
    url = f"sqlite:///{tmp_path / 'runs.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    loader.record_run(url, RunReport(mode="incremental", previous=1, planned_batches=1, processed_batches=1, processed_records=4, committed=True, watermark=9))
    body = client.get("/runs").json()
    assert len(body) == 1
    assert body[0]["processed_records"] == 4
    assert body[0]["watermark"] == 9
