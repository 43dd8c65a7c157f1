"""Batch processors: turn one batch of bookmarks into one artifact.

A processor receives a Batch and a representative timestamp and returns a
reference to what it wrote (a file path). It raises ProcessError when the artifact
cannot be produced. Output names are keyed by the timestamp, so processing the
same batch twice overwrites the same artifact.

Processors:
- MarkdownPostProcessor: blog post with a favicon/details table per bookmark,
  enriched with Open Graph metadata.
- MusicListProcessor: plain list of links, newest on top.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

import transform
from enrich import Metadata, OpenGraphEnricher
from errors import ProcessError
from models import Batch, BookmarkRecord

logger = logging.getLogger("processor")

TRANSCRIPT_PREVIEW_CHARS = 1000


def artifact_stamp(ts: datetime) -> str:
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    # backfill chunks must never share a name
    return ts.strftime("%Y%m%dT%H%M%S.%fZ")


class Storage:
    def __init__(self, output_dir: str = "./posts", s3_bucket: Optional[str] = None, s3_prefix: Optional[str] = None):
        self.output_dir = output_dir
        self.s3_bucket = s3_bucket
        self.s3_prefix = s3_prefix or ""
        self.s3 = boto3.client("s3") if self.s3_bucket else None

    def save_text(self, content: str, filename: str) -> str:
        """Write `content` to output_dir/filename, replacing any previous version."""
        os.makedirs(self.output_dir, exist_ok=True)
        path = os.path.join(self.output_dir, filename)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        logger.info("Wrote artifact to %s", path)

        if self.s3 and self.s3_bucket:
            key = "/".join(p for p in (self.s3_prefix.strip("/"), filename) if p)
            try:
                self.s3.upload_file(path, self.s3_bucket, key)
                logger.info("Uploaded %s to s3://%s/%s", path, self.s3_bucket, key)
            except (BotoCoreError, ClientError) as exc:
                logger.exception("Failed uploading to S3: %s", exc)

        return path


class BatchProcessor:
    """Contract for the per-batch collaborator."""

    def process(self, batch: Batch, batch_timestamp: datetime) -> str:
        raise NotImplementedError

    def _save(self, storage: Storage, content: str, filename: str) -> str:
        try:
            return storage.save_text(content, filename)
        except OSError as exc:
            raise ProcessError(f"Could not write {filename}: {exc}") from exc


def _iso(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat()


def _front_matter(title: str, author: str, tag: str) -> str:
    return f"---\ntitle: {title}\nauthor: {author}\ntags:\n  - {tag}\n---\n"


def _transcript_cell(text: str) -> str:
    if len(text) > TRANSCRIPT_PREVIEW_CHARS:
        text = text[:TRANSCRIPT_PREVIEW_CHARS].rstrip() + "..."
    # a bare pipe would end the table cell
    return text.replace("|", "\\|")


class MarkdownPostProcessor(BatchProcessor):
    def __init__(self, storage: Storage, enricher: Optional[OpenGraphEnricher] = None, author: str = "Author", max_workers: int = 4):
        self.storage = storage
        self.enricher = enricher or OpenGraphEnricher()
        self.author = author
        self.max_workers = max(1, max_workers)

    def _enrich_all(self, records: List[BookmarkRecord]) -> List[Metadata]:
        # map() keeps the batch order even though fetches overlap
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            return list(pool.map(self.enricher.enrich, records))

    def render_row(self, record: BookmarkRecord, meta: Metadata) -> str:
        details = f"[{record.title}]({record.url})<br>{transform.readable_date(record.added_at)}"
        favicon = ""
        if not meta.error:
            favicon = f"![Favicon]({meta.favicon})" if meta.favicon else ""
            if meta.title:
                details += f"<br>**{meta.title}**"
            if meta.site_name:
                details += f"<br>{meta.site_name}"
            if meta.description:
                details += f"<br>{meta.description}"
            if meta.article_body:
                details += f"<br><blockquote>{meta.article_body}</blockquote>"
        if meta.transcript:
            details += f"<br><details><summary>Transcript</summary>{_transcript_cell(meta.transcript)}</details>"

        row = f"| {favicon} | {details} |\n"
        if meta.image and not meta.error:
            row += f"![{record.title}]({meta.image})\n\n"
        else:
            row += "\n"
        return row

    def render(self, batch: Batch, batch_timestamp: datetime, metadata: List[Metadata]) -> str:
        content = _front_matter(f"Bookmarks {_iso(batch_timestamp)}", self.author, "Bookmarks")
        content += f"### {len(batch)} New Bookmarks\n\n| Favicon | Details |\n|---------|---------|\n"
        for record, meta in zip(batch.records, metadata):
            content += self.render_row(record, meta)
        return content

    def process(self, batch: Batch, batch_timestamp: datetime) -> str:
        metadata = self._enrich_all(list(batch.records))
        content = self.render(batch, batch_timestamp, metadata)
        path = self._save(self.storage, content, f"bookmarks-{artifact_stamp(batch_timestamp)}.md")
        logger.info("Wrote %d bookmarks to %s", len(batch), path)
        return path


class MusicListProcessor(BatchProcessor):
    def __init__(self, storage: Storage, author: str = "Author"):
        self.storage = storage
        self.author = author

    def process(self, batch: Batch, batch_timestamp: datetime) -> str:
        stamp = artifact_stamp(batch_timestamp)
        content = _front_matter(f"Youtube Music {_iso(batch_timestamp)}", self.author, "Music")
        content += f"### Latest {len(batch)} Youtube Music bookmarks - most recent on top\n\n"
        content += "".join(f"[{r.title}]({r.url})\n" for r in batch.records)
        return self._save(self.storage, content, f"music-{stamp}.md")


def build_processor(settings) -> BatchProcessor:
    storage = Storage(settings.posts_dir, s3_bucket=settings.s3_bucket, s3_prefix=settings.s3_prefix)
    if settings.processor == "music":
        return MusicListProcessor(storage, author=settings.post_author)
    if settings.processor == "blog":
        enricher = OpenGraphEnricher(timeout=settings.enrich_timeout, fetch_transcripts=settings.enrich_transcripts)
        return MarkdownPostProcessor(storage, enricher=enricher, author=settings.post_author, max_workers=settings.enrich_workers)
    raise ValueError(f"Unknown processor {settings.processor!r} (expected 'blog' or 'music')")


__all__ = [
    "Storage",
    "BatchProcessor",
    "MarkdownPostProcessor",
    "MusicListProcessor",
    "artifact_stamp",
    "build_processor",
]
