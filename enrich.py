"""Link enrichment for bookmark batches.

Features:
- Open Graph metadata (title, site name, description, image, favicon) via requests
- JSON-LD `articleBody` when the page embeds one
- YouTube video id extraction for watch / shorts / live / youtu.be links, and the
  video transcript via youtube-transcript-api
- Retry and rate-limit handling via decorator

Usage:
    from enrich import OpenGraphEnricher

    meta = OpenGraphEnricher(timeout=20).enrich(record)

Failures never raise: they are logged and reported in `Metadata.error`, so one dead
link does not fail a whole batch.
"""

from __future__ import annotations

import functools
import json
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup
from youtube_transcript_api import CouldNotRetrieveTranscript, YouTubeTranscriptApi

from models import BookmarkRecord

logger = logging.getLogger("enrich")

USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) bookmark-curation/0.1"

_YOUTUBE_RE = re.compile(r"(?:v=|shorts/|live/|youtu\.be/)([a-zA-Z0-9_-]{11})")


def youtube_video_id(url: str) -> Optional[str]:
    match = _YOUTUBE_RE.search(url or "")
    return match.group(1) if match else None


def _retry_after_seconds(resp: requests.Response, fallback: float) -> float:
    retry_after = resp.headers.get("Retry-After")
    if not retry_after:
        return fallback
    try:
        return float(retry_after)
    except ValueError:
        return fallback


def retry_rate_limit(
    max_retries: int = 3,
    backoff_factor: float = 2.0,
    min_interval: float = 0.0,
    status_forcelist: Optional[Iterable[int]] = (429, 500, 502, 503, 504),
):
    """Decorator adding retry and simple rate-limit spacing to a function returning a Response.

    - Retries on requests exceptions and on responses with status codes in status_forcelist.
    - Honors a `Retry-After` header before retrying.
    - Ensures at least `min_interval` seconds between calls to the decorated function,
      also when it is called from several threads.

    `max_retries` may be an int or the name of an instance attribute holding one.
    """
    retry_statuses = set(status_forcelist or [])

    def decorator(func: Callable[..., requests.Response]):
        last_called = {"t": 0.0}
        lock = threading.Lock()

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            limit = max_retries
            if isinstance(limit, str):
                limit = getattr(args[0], limit)
            attempts = 0
            while True:
                # reserve the next slot so parallel callers stay min_interval apart
                with lock:
                    now = time.time()
                    wait = max(0.0, last_called["t"] + min_interval - now)
                    last_called["t"] = now + wait
                if wait > 0:
                    time.sleep(wait)

                try:
                    resp = func(*args, **kwargs)
                except requests.RequestException as exc:
                    attempts += 1
                    if attempts > limit:
                        raise
                    sleep = backoff_factor ** attempts
                    logger.warning("Request exception, retrying in %.1fs (%s)", sleep, exc)
                    time.sleep(sleep)
                    continue

                if resp.status_code not in retry_statuses:
                    return resp

                attempts += 1
                if attempts > limit:
                    logger.error("Max retries reached, last status=%s", resp.status_code)
                    resp.raise_for_status()
                    return resp

                sleep = _retry_after_seconds(resp, backoff_factor ** attempts)
                logger.warning(
                    "Received status %s, sleeping %.1fs before retry (%s/%s)",
                    resp.status_code,
                    sleep,
                    attempts,
                    limit,
                )
                time.sleep(sleep)

        return wrapper

    return decorator


@dataclass
class Metadata:
    url: str
    title: Optional[str] = None
    site_name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    favicon: Optional[str] = None
    article_body: Optional[str] = None
    video_id: Optional[str] = None
    transcript: Optional[str] = None
    error: Optional[str] = None


def _meta_content(soup: BeautifulSoup, prop: str) -> Optional[str]:
    tag = soup.find("meta", property=prop) or soup.find("meta", attrs={"name": prop})
    if tag and tag.get("content"):
        return tag["content"].strip() or None
    return None


def _article_body(soup: BeautifulSoup) -> Optional[str]:
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data: Any = json.loads(script.string or "")
        except ValueError:
            continue
        items = data if isinstance(data, list) else [data]
        for item in items:
            if isinstance(item, dict) and item.get("articleBody"):
                return str(item["articleBody"])
    return None


def _favicon(url: str, soup: BeautifulSoup) -> Optional[str]:
    for link in soup.find_all("link"):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "icon" in [r.lower() for r in rel] and link.get("href"):
            return urljoin(url, link["href"])
    return None


def parse_open_graph(url: str, html: str) -> Dict[str, Optional[str]]:
    soup = BeautifulSoup(html, "html.parser")
    favicon = _favicon(url, soup)
    image = _meta_content(soup, "og:image")
    return {
        "title": _meta_content(soup, "og:title"),
        "site_name": _meta_content(soup, "og:site_name"),
        "description": _meta_content(soup, "og:description"),
        "image": urljoin(url, image) if image else None,
        "favicon": favicon,
        "article_body": _article_body(soup),
    }


class OpenGraphEnricher:
    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        transcripts: Optional[YouTubeTranscriptApi] = None,
        fetch_transcripts: bool = True,
    ):
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})
        self.timeout = timeout
        self.max_retries = max_retries
        self.transcripts = None
        if fetch_transcripts:
            self.transcripts = transcripts or YouTubeTranscriptApi()

    @retry_rate_limit(max_retries="max_retries", backoff_factor=2.0, min_interval=0.2)
    def _get(self, url: str) -> requests.Response:
        return self.session.get(url, timeout=self.timeout)

    def fetch_transcript(self, video_id: str) -> Optional[str]:
        """Return the transcript as one line of text, or None when YouTube has none."""
        try:
            fetched = self.transcripts.fetch(video_id)
        except (CouldNotRetrieveTranscript, requests.RequestException) as exc:
            logger.warning("No transcript for video %s: %s", video_id, exc)
            return None
        text = " ".join(snippet.text for snippet in fetched)
        return " ".join(text.split()) or None

    def enrich(self, record: BookmarkRecord) -> Metadata:
        meta = Metadata(url=record.url, video_id=youtube_video_id(record.url))
        if meta.video_id and self.transcripts is not None:
            meta.transcript = self.fetch_transcript(meta.video_id)
        try:
            resp = self._get(record.url)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.error("Error scraping %s: %s", record.url, exc)
            meta.error = str(exc)
            return meta

        for key, value in parse_open_graph(record.url, resp.text).items():
            setattr(meta, key, value)
        return meta


__all__ = ["Metadata", "OpenGraphEnricher", "parse_open_graph", "retry_rate_limit", "youtube_video_id"]
