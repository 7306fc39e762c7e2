"""I/O helpers — load input records, write JSON artifacts, persist schemas."""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, cast

import pandas as pd

from report_writer import SCHEMA_SUFFIX
from report_writer.errors import InvalidRecordError
from report_writer.models import HeaderSchema

# ── Loading ──────────────────────────────────────────────────────


def _frame_to_records(df: pd.DataFrame) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    for row in df.to_dict(orient="records"):
        records.append(
            {str(key): value for key, value in row.items() if not _is_missing(value)}
        )
    return records


def _is_missing(value: Any) -> bool:
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _require_record(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise InvalidRecordError(f"{where}: expected a JSON object, got {type(value).__name__}")
    return dict(value)


def _load_json_lines(path: Path) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    with open(path, encoding="utf-8") as fh:
        for line_no, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                value = json.loads(line)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid JSON on line {line_no} of {path}: {exc.msg}") from exc
            records.append(_require_record(value, f"{path}:{line_no}"))
    return records


def _load_json_document(path: Path) -> list[dict[str, Any]]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc.msg}") from exc
    if isinstance(payload, Mapping):
        return [dict(payload)]
    if isinstance(payload, list):
        return [_require_record(item, f"{path}[{idx}]") for idx, item in enumerate(payload)]
    raise InvalidRecordError(f"{path}: expected a JSON object or a list of objects")


def _load_csv(path: Path) -> list[dict[str, Any]]:
    last_exc: Exception | None = None
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            df = pd.read_csv(
                path,
                dtype="string",
                sep=None,
                engine="python",
                encoding=encoding,
                encoding_errors="strict",
            )
        except (UnicodeDecodeError, pd.errors.ParserError) as exc:
            last_exc = exc
            continue
        return _frame_to_records(df)
    raise ValueError(f"Could not read CSV {path} (decode or parse failed)") from last_exc


def load_records(path: Path) -> list[dict[str, Any]]:
    """Load records from a JSON, JSON Lines, CSV or Excel file.

    CSV and Excel rows become flat records; empty cells are left out of the
    record rather than stored as nulls. JSON inputs may carry one level of
    nested objects, which render as grouped columns.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If the extension is not supported or the content cannot be parsed.
    InvalidRecordError
        If the content parses but does not hold mapping records.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if not path.is_file():
        raise ValueError(f"Input path is not a file: {path}")

    suffix = path.suffix.lower()
    if suffix in (".jsonl", ".ndjson"):
        return _load_json_lines(path)
    if suffix == ".json":
        return _load_json_document(path)
    if suffix == ".csv":
        return _load_csv(path)
    if suffix in (".xlsx", ".xlsm"):
        read_excel = cast(Callable[..., pd.DataFrame], getattr(pd, "read_excel"))
        return _frame_to_records(read_excel(path, engine="openpyxl", dtype=object))

    raise ValueError(f"Unsupported file type: {suffix!r}. Use .jsonl, .json, .csv, or .xlsx")


# ── Writing ──────────────────────────────────────────────────────


def json_default(obj: Any) -> Any:
    """``json.dumps`` hook for paths, dates and numpy/pandas scalars."""
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path


# ── Schema sidecar ───────────────────────────────────────────────


def schema_path_for(cache_path: Path) -> Path:
    """Return the sidecar file that holds the schema accreted for *cache_path*."""
    cache_path = Path(cache_path)
    return cache_path.with_name(cache_path.name + SCHEMA_SUFFIX)


def load_schema(path: Path) -> HeaderSchema:
    """Load a persisted schema; a missing file yields an empty schema."""
    path = Path(path)
    if not path.exists():
        return HeaderSchema()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid header schema file {path}: {exc.msg}") from exc
    if not isinstance(payload, Mapping):
        raise ValueError(f"Invalid header schema file {path}: expected an object")
    return HeaderSchema.from_dict(payload)


def save_schema(path: Path, schema: HeaderSchema) -> Path:
    # sort_keys only orders keys inside each entry; entry order is preserved
    return write_json(path, schema.to_dict())
