"""Sheet assembly — headers, cached rows and layout pushed into a renderer."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from report_writer.cache import RowCache
from report_writer.models import FlatHeader, HeaderSchema, ReportSettings
from report_writer.projector import project
from report_writer.report import ExcelRenderer, SheetRenderer, formula_number_format

logger = logging.getLogger(__name__)


class SheetAssembler:
    """Write header blocks and data rows into a :class:`SheetRenderer`.

    Keeps a 1-based row cursor pointing at the next empty row of the active
    sheet.
    """

    def __init__(self, renderer: SheetRenderer | None = None) -> None:
        self.renderer: SheetRenderer = renderer if renderer is not None else ExcelRenderer()
        self.current_row = 1
        self.header_rows = 0
        self._header_start = 1

    def set_worksheet(self, index: int | None, title: str) -> None:
        """Create a new sheet, make it active and rewind the cursor."""
        self.renderer.create_sheet(index, title)
        self.reset_current_row(1)

    def reset_current_row(self, row: int = 1) -> None:
        if row < 1:
            raise ValueError("row must be >= 1")
        self.current_row = row

    # ── Headers ──────────────────────────────────────────────────

    def write_headers(self, schema: HeaderSchema, init_row: int | None = None) -> int:
        """Render the header block for *schema* and return its height in rows.

        Grouped schemas take two rows: group labels merged across their
        children on the first, child labels on the second, and flat labels
        merged down over both. With *init_row*, the header rows are inserted
        above that row instead of written at the cursor.
        """
        height = 2 if schema.has_groups else 1
        if init_row is not None:
            self.renderer.insert_rows(init_row, height)
            top = init_row
        else:
            top = self.current_row

        column = 1
        for entry in schema:
            if isinstance(entry, FlatHeader):
                self.renderer.set_value(top, column, entry.name)
                self.renderer.style_header_cell(top, column)
                if height == 2:
                    self.renderer.merge(top, column, top + 1, column)
                self.renderer.auto_size(column)
                column += 1
                continue

            if not entry.children:
                # a group without children has no columns to label
                logger.debug("Skipping header for empty group %r", entry.name)
                continue
            last = column + len(entry.children) - 1
            self.renderer.set_value(top, column, entry.name)
            self.renderer.style_header_cell(top, column)
            self.renderer.merge(top, column, top, last)
            for child in entry.children:
                self.renderer.set_value(top + 1, column, child)
                self.renderer.style_header_cell(top + 1, column)
                self.renderer.auto_size(column)
                column += 1

        self._header_start = top
        self.header_rows = height
        if init_row is None:
            self.current_row = top + height
        else:
            # rows at or below init_row moved down by the inserted header block
            self.current_row = max(self.current_row, init_row) + height
        return height

    def freeze_headers(self) -> None:
        """Keep every row down to the header block fixed while scrolling."""
        self.renderer.freeze_rows(self._header_start + self.header_rows - 1)

    # ── Rows ─────────────────────────────────────────────────────

    def write_row(self, record: Any, schema: HeaderSchema | None = None) -> bool:
        """Write one row at the cursor; return False if the row was skipped.

        Without a schema (or with an empty one), a mapping's values (or a plain
        sequence) are written as-is. Otherwise the record is projected onto the
        schema; anything that is not a mapping is skipped.
        """
        if not schema:
            if isinstance(record, Mapping):
                values: Sequence[Any] = list(record.values())
            elif isinstance(record, Sequence) and not isinstance(record, str):
                values = record
            else:
                logger.debug("Skipping non-row value %r", record)
                return False
        elif isinstance(record, Mapping):
            values = project(record, schema)
        else:
            logger.debug("Skipping non-mapping record %r", record)
            return False

        self._write_values(values)
        return True

    def write_rows(self, records: Iterable[Any], schema: HeaderSchema | None = None) -> int:
        return sum(1 for record in records if self.write_row(record, schema))

    def _write_values(self, values: Sequence[Any]) -> None:
        row = self.current_row
        for column, value in enumerate(values, start=1):
            self.renderer.set_value(row, column, value)
            fmt = formula_number_format(value)
            if fmt:
                self.renderer.set_number_format(row, column, fmt)
        self.current_row += 1

    def prepare(
        self, cache: RowCache, schema: HeaderSchema, *, freeze_headers: bool = False
    ) -> int:
        """Write headers, then drain *cache* into rows. Returns the data row count."""
        snapshot = schema.copy()
        self.write_headers(snapshot)
        if freeze_headers:
            self.freeze_headers()
        rows = 0

        def _consume(record: dict[str, Any]) -> None:
            nonlocal rows
            if self.write_row(record, snapshot):
                rows += 1

        cache.drain_into(_consume)
        logger.debug("Wrote %d data row(s) below %d header row(s)", rows, self.header_rows)
        return rows

    # ── Layout / output ──────────────────────────────────────────

    def add_page_break(self, row: int | None = None) -> None:
        """Start a new printed page at *row* (default: the next empty row)."""
        self.renderer.add_page_break(row if row is not None else self.current_row)

    def finalize(self, path: Path) -> Path:
        return self.renderer.save(path)


def assemble_report(
    cache: RowCache,
    schema: HeaderSchema,
    out_path: Path,
    settings: ReportSettings | None = None,
) -> tuple[Path, int]:
    """Render *cache* under *schema* into an ``.xlsx`` file at *out_path*.

    Returns the written path and the number of data rows.
    """
    if settings is None:
        settings = ReportSettings()
    assembler = SheetAssembler(ExcelRenderer(landscape=settings.landscape))
    assembler.renderer.set_properties(author=settings.author, title=settings.title)
    assembler.set_worksheet(0, settings.sheet_title)
    rows = assembler.prepare(cache, schema, freeze_headers=settings.freeze_headers)
    if settings.page_break and rows:
        assembler.add_page_break()
    return assembler.finalize(out_path), rows
