"""Row cache — append-only JSON Lines staging file, drained exactly once."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any

from report_writer.errors import CacheAlreadyConsumedError, CacheUnreadableError
from report_writer.io import json_default
from report_writer.models import Record

logger = logging.getLogger(__name__)


def _encode(record: Record) -> str:
    # ASCII-only output escapes every line separator, so one record is one line
    return json.dumps(record, default=json_default) + "\n"


class RowCache:
    """Durable, append-only sequence of records backed by a text file.

    Records may be appended across many calls or processes. Draining reads
    every record back in append order and deletes the file afterwards, so a
    cache is single-use.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._consumed = False

    def __repr__(self) -> str:
        return f"RowCache({str(self._path)!r})"

    @property
    def path(self) -> Path:
        return self._path

    @property
    def consumed(self) -> bool:
        return self._consumed

    def exists(self) -> bool:
        return self._path.is_file()

    def append(self, record: Record) -> None:
        """Append one record. Existing content is never truncated."""
        self.extend([record])

    def extend(self, records: Iterable[Record]) -> int:
        """Append *records* in order and return how many were written."""
        if self._consumed:
            raise CacheAlreadyConsumedError(self._path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        count = 0
        with open(self._path, "a", encoding="utf-8", newline="\n") as fh:
            for record in records:
                fh.write(_encode(record))
                count += 1
        logger.debug("Appended %d record(s) to %s", count, self._path)
        return count

    @contextmanager
    def _open_for_drain(self) -> Iterator[IO[str]]:
        if self._consumed:
            raise CacheAlreadyConsumedError(self._path)
        try:
            fh = open(self._path, encoding="utf-8", newline="\n")
        except FileNotFoundError as exc:
            raise CacheUnreadableError(self._path, "storage does not exist") from exc
        except OSError as exc:
            raise CacheUnreadableError(self._path, str(exc)) from exc
        try:
            with fh:
                yield fh
        finally:
            self._consumed = True
            self._path.unlink(missing_ok=True)
            logger.debug("Deleted drained row cache %s", self._path)

    def drain_into(self, consumer: Callable[[dict[str, Any]], object]) -> int:
        """Feed every cached record to *consumer* in append order, then delete storage.

        Returns the number of records delivered.

        Raises
        ------
        CacheUnreadableError
            If storage is missing or a line is not a JSON object.
        CacheAlreadyConsumedError
            If this cache was drained before.
        """
        count = 0
        with self._open_for_drain() as fh:
            for line_no, line in enumerate(fh, start=1):
                if not line.strip():
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError as exc:
                    raise CacheUnreadableError(
                        self._path, f"malformed record ({exc.msg})", line_no=line_no
                    ) from exc
                if not isinstance(record, dict):
                    raise CacheUnreadableError(
                        self._path, "line does not hold a record object", line_no=line_no
                    )
                consumer(record)
                count += 1
        logger.debug("Drained %d record(s) from %s", count, self._path)
        return count

    def drain(self) -> list[dict[str, Any]]:
        """Drain into a list. Convenience for small caches and tests."""
        records: list[dict[str, Any]] = []
        self.drain_into(records.append)
        return records
