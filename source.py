"""Bookmark source adapter for Chrome-style `Bookmarks` JSON exports.

The export is a tree: `roots` holds named containers (bookmark_bar, other, synced),
each container and folder has `children`, and leaves carry `url`, `name` and
`date_added` (Chrome epoch microseconds as a decimal string).

Usage:
    from source import load_records

    records = load_records("~/.config/google-chrome/Default/Bookmarks", roots=["other"])
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import transform
import validate
from errors import SourceNotFoundError, SourceParseError
from models import BookmarkRecord

logger = logging.getLogger("source")

RawNode = Dict[str, Any]


def load(source_path: str, roots: Optional[Sequence[str]] = None) -> List[RawNode]:
    """Read an export file and return its root containers.

    Args:
        source_path: path to the export
        roots: restrict to these root names (None = every root)

    Raises:
        SourceNotFoundError: the path is missing or unreadable
        SourceParseError: the file is not valid JSON or has no `roots` object
    """
    path = os.path.expanduser(source_path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except (FileNotFoundError, PermissionError, IsADirectoryError) as exc:
        raise SourceNotFoundError(f"Bookmark export not accessible: {path} ({exc})") from exc
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SourceParseError(f"Bookmark export is not valid JSON: {path} ({exc})") from exc
    except OSError as exc:
        raise SourceNotFoundError(f"Bookmark export could not be read: {path} ({exc})") from exc

    container = payload.get("roots") if isinstance(payload, dict) else None
    if not isinstance(container, dict):
        raise SourceParseError(f"Bookmark export has no 'roots' object: {path}")

    names = list(roots) if roots else list(container.keys())
    missing = [n for n in names if n not in container]
    if missing:
        logger.warning("Bookmark roots not present in export: %s", ", ".join(missing))

    out = [container[n] for n in names if isinstance(container.get(n), dict)]
    logger.info("Loaded %d bookmark roots from %s", len(out), path)
    return out


def _is_folder(node: RawNode) -> bool:
    return node.get("type") == "folder" or isinstance(node.get("children"), list)


def leaf_nodes(tree: Union[RawNode, Iterable[RawNode]]) -> List[RawNode]:
    """Collect leaf nodes from a node or list of nodes, descending folders of any depth."""
    stack: List[RawNode] = [tree] if isinstance(tree, dict) else list(tree)
    stack.reverse()
    leaves: List[RawNode] = []
    while stack:
        node = stack.pop()
        if not isinstance(node, dict):
            continue
        if _is_folder(node):
            # keep document order when popping
            stack.extend(reversed(node.get("children") or []))
        else:
            leaves.append(node)
    return leaves


def flatten(tree: Union[RawNode, Iterable[RawNode]]) -> List[BookmarkRecord]:
    """Flatten an export tree into BookmarkRecords.

    Folders are never emitted; leaves without a url or a usable date_added are dropped.
    """
    leaves = leaf_nodes(tree)
    records: List[BookmarkRecord] = []
    skipped = 0
    for node, (ident, issues) in zip(leaves, validate.validate_leaf_nodes(leaves)):
        if issues:
            skipped += 1
            logger.debug("Skipping bookmark %s: %s", ident, ", ".join(issues))
            continue
        records.append(
            BookmarkRecord(
                url=node["url"],
                title=node.get("name") or "",
                added_at=validate.parse_date_added(node["date_added"]),
            )
        )
    if skipped:
        logger.info("Skipped %d bookmark entries missing a url or date_added", skipped)
    return records


def load_records(source_path: str, roots: Optional[Sequence[str]] = None, url_prefix: Optional[str] = None) -> List[BookmarkRecord]:
    records = flatten(load(source_path, roots=roots))
    if url_prefix:
        records = transform.filter_url_prefix(records, url_prefix)
        logger.info("%d bookmarks match url prefix %s", len(records), url_prefix)
    return records


__all__ = ["RawNode", "load", "leaf_nodes", "flatten", "load_records"]
