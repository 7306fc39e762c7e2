"""Exception hierarchy for report-writer."""

from __future__ import annotations

from pathlib import Path


class ReportWriterError(Exception):
    """Base class for every error raised by report-writer."""


class CacheUnreadableError(ReportWriterError, ValueError):
    """Cache storage is missing, or a cached line does not decode to a record."""

    def __init__(self, path: Path, reason: str, *, line_no: int | None = None) -> None:
        self.path = Path(path)
        self.line_no = line_no
        where = f"{self.path}:{line_no}" if line_no is not None else str(self.path)
        super().__init__(f"Cannot read row cache {where}: {reason}")


class CacheAlreadyConsumedError(CacheUnreadableError):
    """Cache was already drained; its storage no longer exists."""

    def __init__(self, path: Path) -> None:
        super().__init__(path, "cache was already drained")


class InvalidRecordError(ReportWriterError, TypeError):
    """A value does not have the shape a record requires.

    Projection never raises this; mismatched cells render empty. Input loaders
    raise it when a file does not decode to mapping records at all.
    """


class RenderTargetError(ReportWriterError, OSError):
    """The rendered workbook could not be persisted."""
