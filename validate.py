"""Validation utilities for bookmark export nodes.

Provides functions to validate leaf nodes of a Chrome bookmark export before they
become BookmarkRecords. `cli.py check` runs these checks over an export file.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Tuple

from errors import SourceParseError

# latest Chrome timestamp that still maps to a datetime (9999-12-31)
MAX_DATE_ADDED = (datetime.max - datetime(1601, 1, 1)) // timedelta(microseconds=1)


def parse_date_added(value: Any) -> int | None:
    """Return date_added as an int, or None when it is missing or not an integer."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    s = str(value).strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        return None


def validate_leaf_nodes(nodes: List[Dict[str, Any]]) -> List[Tuple[str, List[str]]]:
    """Validate a list of bookmark leaf nodes.

    Returns list of tuples (url_or_index, list_of_issues).
    """
    results: List[Tuple[str, List[str]]] = []

    for idx, n in enumerate(nodes):
        issues: List[str] = []
        url = n.get("url")
        has_url = isinstance(url, str) and url.strip() != ""
        ident = url if has_url else f"idx:{idx}"
        if url is None or (isinstance(url, str) and not has_url):
            issues.append("missing_url")
        elif not has_url:
            issues.append("invalid_url")

        raw = n.get("date_added")
        if raw is None or (isinstance(raw, str) and raw.strip() == ""):
            issues.append("missing_date_added")
        else:
            parsed = parse_date_added(raw)
            if parsed is None:
                issues.append("invalid_date_added")
            elif parsed < 0:
                issues.append("negative_date_added")
            elif parsed > MAX_DATE_ADDED:
                issues.append("invalid_date_added")

        results.append((str(ident), issues))

    return results


def raise_if_issues(issues: List[Tuple[str, List[str]]], name: str = "bookmarks") -> None:
    """Raise SourceParseError naming every entry that has issues."""
    bad = [(ident, iss) for ident, iss in issues if iss]
    if bad:
        lines = [f"{ident}: {', '.join(iss)}" for ident, iss in bad]
        raise SourceParseError(f"{len(bad)} of {len(issues)} {name} entries failed validation:\n" + "\n".join(lines))

