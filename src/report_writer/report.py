"""Excel sheet renderer — the openpyxl side of report assembly."""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import pandas as pd
from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.pagebreak import Break
from openpyxl.worksheet.worksheet import Worksheet

from report_writer.errors import RenderTargetError
from report_writer.utils import cell_ref, increment_column

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

# Excel displays DATEVALUE/TIMEVALUE results as serial numbers unless the
# cell carries a date or time format.
DATE_FMT = "yyyy-m-d"
TIME_FMT = "hh:mm:ss"
_FORMULA_FORMATS: tuple[tuple[str, str], ...] = (
    ("DATEVALUE", DATE_FMT),
    ("TIMEVALUE", TIME_FMT),
)

_AUTO_WIDTH_SAMPLE_ROWS = 300
_AUTO_WIDTH_PADDING = 4
_AUTO_WIDTH_MAX = 50


# ── Value helpers ────────────────────────────────────────────────


def formula_number_format(value: Any) -> str | None:
    """Return the number format a formula cell needs, or ``None``.

    ``"=DATEVALUE(A1)&TIMEVALUE(B1)"`` yields ``"yyyy-m-d hh:mm:ss"``.
    """
    if not isinstance(value, str) or not value.startswith("="):
        return None
    formats = [fmt for marker, fmt in _FORMULA_FORMATS if marker in value]
    return " ".join(formats) or None


def excel_value(val: Any) -> Any:
    """Convert *val* into something openpyxl can store in a cell."""
    if isinstance(val, (Mapping, list, tuple)):
        return json.dumps(val, ensure_ascii=False, default=str)

    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        return val

    if isinstance(val, pd.Timestamp):
        dt = val.to_pydatetime()
        return dt.replace(tzinfo=None) if dt.tzinfo else dt

    if isinstance(val, datetime) and val.tzinfo:
        return val.replace(tzinfo=None)

    if isinstance(val, str):
        # control characters are not allowed in worksheet XML
        return ILLEGAL_CHARACTERS_RE.sub("", val)

    return val


# ── Renderer ─────────────────────────────────────────────────────


class SheetRenderer(Protocol):
    """What the assembler needs from a spreadsheet backend. Rows/columns are 1-based."""

    def create_sheet(self, index: int | None, title: str) -> None: ...

    def set_properties(self, author: str = "", title: str = "") -> None: ...

    def set_value(self, row: int, column: int, value: Any) -> None: ...

    def merge(self, first_row: int, first_col: int, last_row: int, last_col: int) -> None: ...

    def style_header_cell(self, row: int, column: int) -> None: ...

    def set_number_format(self, row: int, column: int, fmt: str) -> None: ...

    def auto_size(self, column: int) -> None: ...

    def insert_rows(self, row: int, amount: int = 1) -> None: ...

    def freeze_rows(self, count: int) -> None: ...

    def add_page_break(self, row: int) -> None: ...

    def save(self, path: Path) -> Path: ...


class ExcelRenderer:
    """:class:`SheetRenderer` backed by an in-memory openpyxl workbook.

    Nothing touches the disk until :meth:`save`.
    """

    def __init__(self, workbook: Workbook | None = None, *, landscape: bool = True) -> None:
        self._landscape = landscape
        self._owns_default_sheet = workbook is None
        self._wb = workbook if workbook is not None else Workbook()
        self._auto_columns: dict[str, set[int]] = {}
        active = self._wb.active
        if active is None:
            active = self._wb.create_sheet()
        self._ws: Worksheet = active
        self._apply_page_setup(self._ws)

    @property
    def workbook(self) -> Workbook:
        return self._wb

    @property
    def worksheet(self) -> Worksheet:
        return self._ws

    def _apply_page_setup(self, ws: Worksheet) -> None:
        if self._landscape:
            ws.page_setup.orientation = Worksheet.ORIENTATION_LANDSCAPE

    def create_sheet(self, index: int | None, title: str) -> None:
        """Create a sheet at *index* (``None`` appends) and make it the active one."""
        if self._owns_default_sheet:
            # first explicit sheet replaces the blank one Workbook() starts with
            self._wb.remove(self._ws)
            self._owns_default_sheet = False
        ws = self._wb.create_sheet(title=title, index=index)
        self._wb.active = ws
        self._apply_page_setup(ws)
        self._ws = ws

    def set_properties(self, author: str = "", title: str = "") -> None:
        self._wb.properties.creator = author
        self._wb.properties.title = title

    def set_value(self, row: int, column: int, value: Any) -> None:
        self._ws.cell(row=row, column=column, value=excel_value(value))

    def merge(self, first_row: int, first_col: int, last_row: int, last_col: int) -> None:
        if (first_row, first_col) == (last_row, last_col):
            return
        start = get_column_letter(first_col)
        end = increment_column(start, last_col - first_col)
        self._ws.merge_cells(f"{start}{first_row}:{end}{last_row}")

    def style_header_cell(self, row: int, column: int) -> None:
        cell = self._ws.cell(row=row, column=column)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN

    def set_number_format(self, row: int, column: int, fmt: str) -> None:
        self._ws.cell(row=row, column=column).number_format = fmt

    def auto_size(self, column: int) -> None:
        """Mark *column* for width fitting; widths are measured on save."""
        self._auto_columns.setdefault(self._ws.title, set()).add(column)

    def insert_rows(self, row: int, amount: int = 1) -> None:
        self._ws.insert_rows(row, amount)

    def freeze_rows(self, count: int) -> None:
        self._ws.freeze_panes = cell_ref(count + 1, 1) if count > 0 else None

    def add_page_break(self, row: int) -> None:
        """Start a new printed page at *row*."""
        if row < 2:
            raise ValueError("A page break needs at least one row above it")
        self._ws.row_breaks.append(Break(id=row - 1))

    def _fit_widths(self) -> None:
        for title, columns in self._auto_columns.items():
            if title not in self._wb.sheetnames:
                continue
            ws = self._wb[title]
            max_row = min(ws.max_row, _AUTO_WIDTH_SAMPLE_ROWS)
            for c_idx in sorted(columns):
                width = 0
                for row in ws.iter_rows(min_row=1, max_row=max_row, min_col=c_idx, max_col=c_idx):
                    width = max(width, len(str(row[0].value or "")))
                width += _AUTO_WIDTH_PADDING
                ws.column_dimensions[get_column_letter(c_idx)].width = min(width, _AUTO_WIDTH_MAX)

    def save(self, path: Path) -> Path:
        """Write the workbook to *path* atomically and return the path.

        Raises
        ------
        RenderTargetError
            If the file cannot be written.
        """
        path = Path(path)
        self._fit_widths()
        # Excel opens on the active sheet
        self._wb.active = 0
        tmp_path = path.with_name(f"{path.stem}.tmp{path.suffix}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._wb.save(tmp_path)
            tmp_path.replace(path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise RenderTargetError(f"Cannot write workbook {path}: {exc}") from exc
        return path
