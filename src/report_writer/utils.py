"""Shared helpers — hashing, timestamps, column addressing."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path

from openpyxl.utils import column_index_from_string, get_column_letter


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def increment_column(column: str, count: int = 1) -> str:
    """Advance a column letter by *count*: ``A + 1 = B``, ``Z + 1 = AA``."""
    if count < 0:
        raise ValueError("count must be >= 0")
    return get_column_letter(column_index_from_string(column.upper()) + count)


def cell_ref(row: int, column: int) -> str:
    """Return the A1-style address of a 1-based (*row*, *column*) pair."""
    return f"{get_column_letter(column)}{row}"
