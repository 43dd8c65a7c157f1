import json

import pytest

import source
import transform
from errors import SourceNotFoundError, SourceParseError


def test_flatten_walks_nested_folders():
    tree = {
        "type": "folder",
        "children": [
            {"type": "url", "url": "https://a", "name": "A", "date_added": "3"},
            {
                "type": "folder",
                "children": [
                    {"type": "folder", "children": [{"type": "url", "url": "https://deep", "name": "Deep", "date_added": "1"}]},
                    {"type": "url", "url": "https://b", "name": "B", "date_added": "2"},
                ],
            },
        ],
    }
    records = source.flatten(tree)
    assert [(r.url, r.added_at) for r in records] == [("https://a", 3), ("https://deep", 1), ("https://b", 2)]


def test_flatten_skips_entries_missing_url_or_date():
    nodes = [
        {"type": "url", "url": "https://ok", "name": "ok", "date_added": "10"},
        {"type": "url", "name": "no url", "date_added": "11"},
        {"type": "url", "url": "https://nodate", "name": "no date"},
        {"type": "url", "url": "https://bad", "name": "bad", "date_added": "soon"},
        {"type": "folder", "name": "empty", "children": []},
    ]
    records = source.flatten(nodes)
    assert [r.url for r in records] == ["https://ok"]


def test_flatten_skips_non_string_urls_and_out_of_range_dates():
    nodes = [
        {"type": "url", "url": 12345, "name": "number", "date_added": "10"},
        {"type": "url", "url": "https://far", "name": "far", "date_added": str(10**20)},
        {"type": "url", "url": "https://ok", "name": "ok", "date_added": "10"},
    ]
    records = source.flatten(nodes)
    assert [r.url for r in records] == ["https://ok"]
    assert transform.filter_url_prefix(records, "https://") == records


def test_flatten_defaults_missing_title_to_empty():
    records = source.flatten([{"url": "https://x", "date_added": "5"}])
    assert records[0].title == ""


def test_load_records_reads_every_root(write_export):
    path = write_export([1, 2, 3, 4])
    records = source.load_records(path)
    assert sorted(r.added_at for r in records) == [1, 2, 3, 4]


def test_load_records_restricted_to_root(write_export):
    path = write_export([1, 2, 3, 4])
    records = source.load_records(path, roots=["other"])
    assert sorted(r.added_at for r in records) == [3, 4]


def test_load_records_url_prefix(tmp_path):
    payload = {
        "roots": {
            "other": {
                "type": "folder",
                "children": [
                    {"type": "url", "url": "https://music.youtube.com/watch?v=abc", "name": "song", "date_added": "2"},
                    {"type": "url", "url": "https://example.com", "name": "page", "date_added": "1"},
                ],
            }
        }
    }
    path = tmp_path / "Bookmarks"
    path.write_text(json.dumps(payload))
    records = source.load_records(str(path), url_prefix="https://music.youtube.com/")
    assert [r.title for r in records] == ["song"]


def test_load_missing_file(tmp_path):
    with pytest.raises(SourceNotFoundError):
        source.load(str(tmp_path / "nope.json"))


def test_load_invalid_json(tmp_path):
    path = tmp_path / "Bookmarks"
    path.write_text("{not json")
    with pytest.raises(SourceParseError):
        source.load(str(path))


def test_load_without_roots(tmp_path):
    path = tmp_path / "Bookmarks"
    path.write_text(json.dumps({"version": 1}))
    with pytest.raises(SourceParseError):
        source.load(str(path))


def test_load_path_below_a_file(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    with pytest.raises(SourceNotFoundError):
        source.load(str(blocker / "Bookmarks"))
