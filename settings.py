"""Environment-driven configuration for the bookmark pipeline.

Configure via environment variables:
  - BOOKMARKS_FILE (Chrome `Bookmarks` JSON export)
  - BOOKMARK_ROOTS (comma separated root names, default: all roots)
  - URL_PREFIX (only keep bookmarks whose url starts with this)
  - WATERMARK_FILE (default ./last-bookmark-timestamp.txt)
  - BACKFILL_NUMERATOR (default 300), BATCH_DENOMINATOR (default 20), BATCH_CEILING (overrides the derived ceiling)
  - OVERFLOW_POLICY ('drop' or 'defer')
  - PROCESSOR ('blog' or 'music'), POSTS_DIR, POST_AUTHOR
  - S3_BUCKET, S3_PREFIX (optional artifact upload)
  - ENRICH_WORKERS, ENRICH_TIMEOUT, ENRICH_TRANSCRIPTS (fetch YouTube transcripts, default 1)
  - RESET_HOURS (default 24)
  - DATABASE_URL, or PG_HOST / PG_PORT / PG_DB / PG_USER / PG_PASSWORD for Postgres
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_BOOKMARKS_FILE = "~/.config/google-chrome/Default/Bookmarks"


@dataclass
class Settings:
    bookmarks_file: str = DEFAULT_BOOKMARKS_FILE
    bookmark_roots: List[str] = field(default_factory=list)
    url_prefix: Optional[str] = None
    watermark_file: str = "./last-bookmark-timestamp.txt"
    numerator: int = 300
    ceiling: int = 15
    overflow_policy: str = "drop"
    processor: str = "blog"
    posts_dir: str = "./posts"
    post_author: str = "Author"
    s3_bucket: Optional[str] = None
    s3_prefix: Optional[str] = None
    enrich_workers: int = 4
    enrich_timeout: float = 30.0
    enrich_transcripts: bool = True
    reset_hours: int = 24
    database_url: Optional[str] = None


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def database_url() -> Optional[str]:
    """Return DATABASE_URL, or a psycopg2 Postgres URL when PG_HOST is set."""
    url = os.environ.get("DATABASE_URL")
    if url:
        return url
    host = os.environ.get("PG_HOST")
    if not host:
        return None
    return "postgresql+psycopg2://{user}:{password}@{host}:{port}/{db}".format(
        user=os.environ.get("PG_USER", "postgres"),
        password=os.environ.get("PG_PASSWORD", "postgres"),
        host=host,
        port=int(os.environ.get("PG_PORT", 5432)),
        db=os.environ.get("PG_DB", "bookmarks"),
    )


def load_settings() -> Settings:
    numerator = _int_env("BACKFILL_NUMERATOR", 300)
    denominator = _int_env("BATCH_DENOMINATOR", 20)
    if denominator < 1:
        raise ValueError("BATCH_DENOMINATOR must be >= 1")
    # an explicit ceiling wins over numerator // denominator
    ceiling = _int_env("BATCH_CEILING", max(1, numerator // denominator))

    roots = [r.strip() for r in os.environ.get("BOOKMARK_ROOTS", "").split(",") if r.strip()]

    return Settings(
        bookmarks_file=os.path.expanduser(os.environ.get("BOOKMARKS_FILE", DEFAULT_BOOKMARKS_FILE)),
        bookmark_roots=roots,
        url_prefix=os.environ.get("URL_PREFIX") or None,
        watermark_file=os.environ.get("WATERMARK_FILE", "./last-bookmark-timestamp.txt"),
        numerator=numerator,
        ceiling=ceiling,
        overflow_policy=os.environ.get("OVERFLOW_POLICY", "drop"),
        processor=os.environ.get("PROCESSOR", "blog"),
        posts_dir=os.environ.get("POSTS_DIR", "./posts"),
        post_author=os.environ.get("POST_AUTHOR", "Author"),
        s3_bucket=os.environ.get("S3_BUCKET") or None,
        s3_prefix=os.environ.get("S3_PREFIX") or None,
        enrich_workers=_int_env("ENRICH_WORKERS", 4),
        enrich_timeout=float(os.environ.get("ENRICH_TIMEOUT", 30)),
        enrich_transcripts=os.environ.get("ENRICH_TRANSCRIPTS", "1").strip().lower() not in ("0", "false", "no"),
        reset_hours=_int_env("RESET_HOURS", 24),
        database_url=database_url(),
    )


__all__ = ["Settings", "load_settings", "database_url"]
