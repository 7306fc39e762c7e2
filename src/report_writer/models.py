"""Data models used across the package: header schema, settings, manifest."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field, fields
from numbers import Integral
from pathlib import Path
from typing import Any, Union

Scalar = Union[str, int, float, bool, None]
Record = Mapping[str, Any]


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_name_list(values: Iterable[Any] | None, field_name: str) -> list[str]:
    """Return *values* as a list of unique strings, first occurrence wins."""
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        if item not in normalized:
            normalized.append(item)
    return normalized


# ── Header schema ────────────────────────────────────────────────


@dataclass(frozen=True)
class FlatHeader:
    """A single column holding one scalar per record."""

    name: str

    @property
    def width(self) -> int:
        return 1

    def to_dict(self) -> dict[str, Any]:
        return {"kind": "flat", "name": self.name}


@dataclass
class GroupHeader:
    """One label spanning several child sub-columns.

    Contract invariant: ``children`` is duplicate-free and keeps first-seen
    order across merges.
    """

    name: str
    children: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.children = _to_name_list(self.children, "children")

    @property
    def width(self) -> int:
        return len(self.children)

    def merge(self, children: Iterable[str]) -> None:
        """Union *children* into this group, appending unseen names at the end."""
        for child in children:
            if child not in self.children:
                self.children.append(child)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": "group", "name": self.name, "children": list(self.children)}


HeaderEntry = Union[FlatHeader, GroupHeader]


class HeaderSchema:
    """Ordered, caller-owned sequence of header entries."""

    def __init__(self, entries: Iterable[HeaderEntry] | None = None) -> None:
        self._entries: list[HeaderEntry] = []
        for entry in entries or ():
            self.append(entry)

    def __iter__(self) -> Iterator[HeaderEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> HeaderEntry:
        return self._entries[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HeaderSchema):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"HeaderSchema({self._entries!r})"

    @property
    def entries(self) -> list[HeaderEntry]:
        return list(self._entries)

    @property
    def has_groups(self) -> bool:
        """True when rendering needs a second header row for group children."""
        return any(isinstance(entry, GroupHeader) for entry in self._entries)

    @property
    def width(self) -> int:
        """Number of column slots a projected row occupies."""
        return sum(entry.width for entry in self._entries)

    def append(self, entry: HeaderEntry) -> None:
        if not isinstance(entry, (FlatHeader, GroupHeader)):
            raise TypeError(f"Unsupported header entry: {entry!r}")
        self._entries.append(entry)

    def find_flat(self, name: str) -> FlatHeader | None:
        for entry in self._entries:
            if isinstance(entry, FlatHeader) and entry.name == name:
                return entry
        return None

    def find_group(self, name: str) -> GroupHeader | None:
        for entry in self._entries:
            if isinstance(entry, GroupHeader) and entry.name == name:
                return entry
        return None

    def copy(self) -> HeaderSchema:
        """Return an independent snapshot; later accretion does not leak into it."""
        return HeaderSchema(
            entry if isinstance(entry, FlatHeader) else GroupHeader(entry.name, list(entry.children))
            for entry in self._entries
        )

    def to_dict(self) -> dict[str, Any]:
        return {"headers": [entry.to_dict() for entry in self._entries]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HeaderSchema:
        raw_entries = data.get("headers")
        if not isinstance(raw_entries, Sequence) or isinstance(raw_entries, str):
            raise ValueError("Header schema must contain a 'headers' list")
        schema = cls()
        for raw in raw_entries:
            if not isinstance(raw, Mapping):
                raise ValueError(f"Invalid header entry: {raw!r}")
            kind = raw.get("kind")
            name = raw.get("name")
            if not isinstance(name, str):
                raise ValueError(f"Header entry name must be a string: {raw!r}")
            if kind == "flat":
                schema.append(FlatHeader(name))
            elif kind == "group":
                schema.append(GroupHeader(name, list(raw.get("children") or [])))
            else:
                raise ValueError(f"Unknown header kind: {kind!r}")
        return schema


# ── Settings / manifest ──────────────────────────────────────────

_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off"}


def _to_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
    raise ValueError(f"{field_name} must be a boolean (true/false), got {value!r}")


@dataclass
class ReportSettings:
    """Presentation options for one rendered report."""

    author: str = ""
    title: str = ""
    sheet_title: str = "Report"
    freeze_headers: bool = True
    page_break: bool = False
    landscape: bool = True

    def __post_init__(self) -> None:
        self.freeze_headers = _to_bool(self.freeze_headers, "freeze_headers")
        self.page_break = _to_bool(self.page_break, "page_break")
        self.landscape = _to_bool(self.landscape, "landscape")
        if not self.sheet_title:
            raise ValueError("sheet_title must not be empty")

    @classmethod
    def from_profile(cls, path: Path) -> ReportSettings:
        """Load settings from a ``key=value`` profile file."""
        return cls(**parse_profile(path))


def parse_profile(path: Path) -> dict[str, str]:
    """Return ``{key: value}`` pairs from a profile file (``#`` starts a comment)."""
    path = Path(path)
    if not path.exists():
        raise ValueError(f"Profile not found: {path} (expected lines like title=Weekly Sales)")
    if path.is_dir():
        raise ValueError(f"Profile is a directory, not a file: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read profile {path}: {exc}") from exc

    known = {f.name for f in fields(ReportSettings)}
    values: dict[str, str] = {}
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if "=" not in stripped:
            raise ValueError(f"Invalid profile line: {stripped!r}  (expected key=value)")
        key, value = (part.strip() for part in stripped.split("=", 1))
        key = key.lower().replace("-", "_")
        if key not in known:
            raise ValueError(f"Unknown profile key: {key!r}")
        values[key] = value
    return values


@dataclass
class ReportManifest:
    """Audit-trail manifest written next to every rendered workbook."""

    tool: str = "report-writer"
    version: str = ""
    cache_path: str = ""
    output_path: str = ""
    created_at_utc: str = ""
    rows_out: int = 0
    header_columns: int = 0
    sha256: str = ""
    status: str = "success"
    error_message: str = ""

    def __post_init__(self) -> None:
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.header_columns = _to_non_negative_int(self.header_columns, "header_columns")
        if self.status not in ("success", "failed"):
            raise ValueError("status must be 'success' or 'failed'")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "cache_path": self.cache_path,
            "output_path": self.output_path,
            "created_at_utc": self.created_at_utc,
            "rows_out": self.rows_out,
            "header_columns": self.header_columns,
            "sha256": self.sha256,
            "status": self.status,
            "error_message": self.error_message,
        }
