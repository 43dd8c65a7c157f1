"""Exceptions raised by the bookmark pipeline.

Source and watermark errors are fatal to a run. ProcessError is contained per batch.
"""
from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline failures."""


class WatermarkIOError(PipelineError):
    """Watermark storage could not be read or written (not raised for a missing watermark)."""


class WatermarkNotFoundError(PipelineError):
    """No watermark exists; only the reset operation treats this as an error."""


class SourceNotFoundError(PipelineError):
    pass


class SourceParseError(PipelineError):
    pass


class ProcessError(PipelineError):
    """A batch processor failed to produce its artifact."""


__all__ = [
    "PipelineError",
    "WatermarkIOError",
    "WatermarkNotFoundError",
    "SourceNotFoundError",
    "SourceParseError",
    "ProcessError",
]
