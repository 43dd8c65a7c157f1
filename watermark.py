"""Watermark stores that remember the newest fully processed bookmark.

A watermark is a single Chrome epoch integer. The file store keeps it as a base-10
integer in a text file (default ./last-bookmark-timestamp.txt); the SQL store keeps
it as a row in bookmark_watermarks. Both assume a single writer per watermark.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

import loader
import transform
from errors import WatermarkIOError, WatermarkNotFoundError
from orm_models import WatermarkState

logger = logging.getLogger("watermark")


class WatermarkStore:
    """Read/write contract the cursor runner depends on."""

    def read(self) -> Tuple[int, bool]:
        """Return (value, present). An absent watermark is (0, False), not an error."""
        raise NotImplementedError

    def write(self, value: int) -> None:
        raise NotImplementedError

    def backup(self) -> None:
        """Keep a copy of the current value before a maintenance rewrite."""
        raise NotImplementedError

    def describe(self) -> str:
        return self.__class__.__name__


class FileWatermarkStore(WatermarkStore):
    def __init__(self, path: str = "./last-bookmark-timestamp.txt"):
        self.path = path

    @property
    def backup_path(self) -> str:
        return f"{self.path}.bak"

    def _ensure_dir(self) -> None:
        d = os.path.dirname(self.path)
        if d and not os.path.exists(d):
            os.makedirs(d, exist_ok=True)

    def read(self) -> Tuple[int, bool]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = f.read().strip()
        except FileNotFoundError:
            return 0, False
        except UnicodeDecodeError:
            logger.warning("Watermark file %s is not text, treating it as 0", self.path)
            return 0, True
        except OSError as exc:
            raise WatermarkIOError(f"Cannot read watermark {self.path}: {exc}") from exc

        try:
            return int(raw), True
        except ValueError:
            logger.warning("Watermark file %s holds %r, treating it as 0", self.path, raw[:40])
            return 0, True

    def write(self, value: int) -> None:
        try:
            self._ensure_dir()
            # write beside the target so os.replace stays on one filesystem
            fd, tmp = tempfile.mkstemp(prefix=".watermark-", dir=os.path.dirname(self.path) or ".")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(str(int(value)))
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as exc:
            raise WatermarkIOError(f"Cannot write watermark {self.path}: {exc}") from exc
        logger.info("Wrote watermark %s to %s", value, self.path)

    def backup(self) -> None:
        try:
            shutil.copyfile(self.path, self.backup_path)
        except FileNotFoundError as exc:
            raise WatermarkNotFoundError(f"Watermark file not found: {self.path}") from exc
        except OSError as exc:
            raise WatermarkIOError(f"Cannot back up watermark {self.path}: {exc}") from exc
        logger.info("Backed up watermark to %s", self.backup_path)

    def describe(self) -> str:
        return f"file:{self.path}"


class SqlWatermarkStore(WatermarkStore):
    """Watermark kept as one named row, so several pipelines can share a database."""

    def __init__(self, url: str, name: str = "bookmarks"):
        self.url = url
        self.name = name

    def read(self) -> Tuple[int, bool]:
        try:
            with loader.get_session(self.url) as session:
                row = session.get(WatermarkState, self.name)
                if row is None:
                    return 0, False
                return int(row.value), True
        except SQLAlchemyError as exc:
            raise WatermarkIOError(f"Cannot read watermark {self.name}: {exc}") from exc

    def write(self, value: int) -> None:
        try:
            with loader.get_session(self.url) as session:
                row = session.get(WatermarkState, self.name)
                if row is None:
                    session.add(WatermarkState(name=self.name, value=int(value)))
                else:
                    row.value = int(value)
                session.commit()
        except SQLAlchemyError as exc:
            raise WatermarkIOError(f"Cannot write watermark {self.name}: {exc}") from exc
        logger.info("Wrote watermark %s to table row %s", value, self.name)

    def backup(self) -> None:
        try:
            with loader.get_session(self.url) as session:
                row = session.get(WatermarkState, self.name)
                if row is None:
                    raise WatermarkNotFoundError(f"No watermark row named {self.name}")
                row.previous_value = row.value
                session.commit()
        except SQLAlchemyError as exc:
            raise WatermarkIOError(f"Cannot back up watermark {self.name}: {exc}") from exc

    def describe(self) -> str:
        return f"sql:{self.name}"


def store_from_settings(settings) -> WatermarkStore:
    if settings.database_url:
        return SqlWatermarkStore(settings.database_url)
    return FileWatermarkStore(settings.watermark_file)


def reset_watermark(store: WatermarkStore, hours: int = 24) -> Tuple[int, int]:
    """Move the watermark back by `hours` so recent bookmarks are processed again.

    Backs up the current value first. Running this twice moves the watermark back twice.

    Returns:
        (old_value, new_value)
    """
    old, present = store.read()
    if not present:
        raise WatermarkNotFoundError(f"No watermark to reset in {store.describe()}")
    store.backup()
    new = old - transform.hours_to_ticks(hours)
    store.write(new)
    logger.info("Reset watermark from %s to %s (%s hours earlier)", old, new, hours)
    return old, new


def describe_value(value: Optional[int]) -> Optional[str]:
    if value is None:
        return None
    return transform.chrome_to_datetime(value).isoformat()


__all__ = [
    "WatermarkStore",
    "FileWatermarkStore",
    "SqlWatermarkStore",
    "store_from_settings",
    "reset_watermark",
    "describe_value",
]
