import json

import pytest

from models import BookmarkRecord


def make_records(values, prefix="https://example.com/"):
    return [BookmarkRecord(url=f"{prefix}{v}", title=f"page {v}", added_at=v) for v in values]


def export_payload(values, prefix="https://example.com/"):
    """Chrome style export with the leaves split across a nested folder and a root."""
    leaves = [
        {"type": "url", "url": f"{prefix}{v}", "name": f"page {v}", "date_added": str(v)}
        for v in values
    ]
    half = len(leaves) // 2
    return {
        "roots": {
            "bookmark_bar": {"type": "folder", "name": "Bar", "children": leaves[:half]},
            "other": {
                "type": "folder",
                "name": "Other",
                "children": [{"type": "folder", "name": "Nested", "children": leaves[half:]}],
            },
        }
    }


@pytest.fixture
def write_export(tmp_path):
    def _write(values, prefix="https://example.com/"):
        path = tmp_path / "Bookmarks"
        path.write_text(json.dumps(export_payload(values, prefix)), encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def pipeline_env(tmp_path, monkeypatch, write_export):
    """Point settings at temp files; returns a function that writes the export."""
    monkeypatch.setenv("WATERMARK_FILE", str(tmp_path / "last-bookmark-timestamp.txt"))
    monkeypatch.setenv("POSTS_DIR", str(tmp_path / "posts"))
    monkeypatch.setenv("PROCESSOR", "music")
    monkeypatch.setenv("BACKFILL_NUMERATOR", "300")
    monkeypatch.setenv("BATCH_CEILING", "2")
    for name in ("DATABASE_URL", "PG_HOST", "URL_PREFIX", "BOOKMARK_ROOTS", "S3_BUCKET", "OVERFLOW_POLICY"):
        monkeypatch.delenv(name, raising=False)

    def _export(values):
        path = write_export(values)
        monkeypatch.setenv("BOOKMARKS_FILE", path)
        return path

    return _export
