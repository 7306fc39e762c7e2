"""Tests for sheet assembly against the openpyxl renderer and a recording fake."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from openpyxl import load_workbook

from report_writer.assembler import SheetAssembler, assemble_report
from report_writer.cache import RowCache
from report_writer.errors import CacheAlreadyConsumedError
from report_writer.headers import resolve
from report_writer.models import FlatHeader, GroupHeader, HeaderSchema, ReportSettings
from report_writer.report import DATE_FMT, TIME_FMT, ExcelRenderer

GROUPED = HeaderSchema([
    FlatHeader("name"),
    GroupHeader("scores", ["math", "art", "sci"]),
    FlatHeader("grade"),
])


class RecordingRenderer:
    """Keeps every renderer call so tests can assert on the render contract."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.values: dict[tuple[int, int], Any] = {}

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))

    def create_sheet(self, index: int | None, title: str) -> None:
        self._record("create_sheet", index, title)

    def set_properties(self, author: str = "", title: str = "") -> None:
        self._record("set_properties", author, title)

    def set_value(self, row: int, column: int, value: Any) -> None:
        self.values[(row, column)] = value
        self._record("set_value", row, column, value)

    def merge(self, first_row: int, first_col: int, last_row: int, last_col: int) -> None:
        self._record("merge", first_row, first_col, last_row, last_col)

    def style_header_cell(self, row: int, column: int) -> None:
        self._record("style_header_cell", row, column)

    def set_number_format(self, row: int, column: int, fmt: str) -> None:
        self._record("set_number_format", row, column, fmt)

    def auto_size(self, column: int) -> None:
        self._record("auto_size", column)

    def insert_rows(self, row: int, amount: int = 1) -> None:
        self._record("insert_rows", row, amount)

    def freeze_rows(self, count: int) -> None:
        self._record("freeze_rows", count)

    def add_page_break(self, row: int) -> None:
        self._record("add_page_break", row)

    def save(self, path: Path) -> Path:
        self._record("save", path)
        return path

    def named(self, name: str) -> list[tuple[Any, ...]]:
        return [args for call, args in self.calls if call == name]


def _merged(assembler: SheetAssembler) -> set[str]:
    renderer = assembler.renderer
    assert isinstance(renderer, ExcelRenderer)
    return {str(r) for r in renderer.worksheet.merged_cells.ranges}


def test_grouped_headers_span_two_rows() -> None:
    assembler = SheetAssembler()

    height = assembler.write_headers(GROUPED)

    ws = assembler.renderer.worksheet  # type: ignore[attr-defined]
    assert height == 2
    assert assembler.current_row == 3
    assert [ws.cell(row=1, column=c).value for c in (1, 2, 5)] == ["name", "scores", "grade"]
    assert [ws.cell(row=2, column=c).value for c in (2, 3, 4)] == ["math", "art", "sci"]
    assert _merged(assembler) == {"A1:A2", "B1:D1", "E1:E2"}
    assert ws["B1"].font.bold and ws["C2"].font.bold


def test_flat_headers_take_one_row_without_merges() -> None:
    assembler = SheetAssembler()

    height = assembler.write_headers(HeaderSchema([FlatHeader("a"), FlatHeader("b")]))

    assert height == 1
    assert assembler.current_row == 2
    assert _merged(assembler) == set()


def test_headers_auto_size_every_leaf_column() -> None:
    renderer = RecordingRenderer()

    SheetAssembler(renderer).write_headers(GROUPED)

    assert [args[0] for args in renderer.named("auto_size")] == [1, 2, 3, 4, 5]


def test_single_child_group_is_not_merged_across_columns() -> None:
    renderer = RecordingRenderer()

    SheetAssembler(renderer).write_headers(HeaderSchema([GroupHeader("g", ["only"])]))

    assert renderer.named("merge") == [(1, 1, 1, 1)]
    assert renderer.values[(1, 1)] == "g"
    assert renderer.values[(2, 1)] == "only"


def test_empty_group_header_is_skipped() -> None:
    renderer = RecordingRenderer()

    SheetAssembler(renderer).write_headers(HeaderSchema([GroupHeader("empty"), FlatHeader("a")]))

    assert renderer.values == {(1, 1): "a"}


def test_prepare_drains_cache_below_headers(tmp_path: Path) -> None:
    records = [
        {"name": "Alice", "scores": {"math": 90, "art": 70}},
        {"name": "Bob", "scores": {"math": 85, "sci": 60}},
    ]
    cache = RowCache(tmp_path / "rows.jsonl")
    cache.extend(records)
    schema = resolve(records)
    assembler = SheetAssembler()

    rows = assembler.prepare(cache, schema, freeze_headers=True)

    ws = assembler.renderer.worksheet  # type: ignore[attr-defined]
    assert rows == 2
    assert [c.value for c in ws[3]] == ["Alice", 90, 70, None]
    assert [c.value for c in ws[4]] == ["Bob", 85, None, 60]
    assert ws.freeze_panes == "A3"
    assert assembler.current_row == 5
    assert not cache.path.exists()

    with pytest.raises(CacheAlreadyConsumedError):
        assembler.prepare(cache, schema)


def test_prepare_renders_against_a_snapshot_of_the_schema(tmp_path: Path) -> None:
    schema = HeaderSchema([FlatHeader("a")])
    cache = RowCache(tmp_path / "rows.jsonl")
    cache.extend([{"a": 1, "b": 2}])
    renderer = RecordingRenderer()
    assembler = SheetAssembler(renderer)

    def _mutating_write_row(record: Any, snapshot: HeaderSchema | None = None) -> bool:
        resolve([record], schema)
        return SheetAssembler.write_row(assembler, record, snapshot)

    assembler.write_row = _mutating_write_row  # type: ignore[method-assign]
    assembler.prepare(cache, schema)

    assert renderer.values == {(1, 1): "a", (2, 1): 1}
    assert [entry.name for entry in schema] == ["a", "b"]


def test_formula_cells_request_date_and_time_formats() -> None:
    renderer = RecordingRenderer()
    assembler = SheetAssembler(renderer)

    assembler.write_row(["=DATEVALUE(A1)&TIMEVALUE(B1)", "=SUM(A1:A2)", "=TIMEVALUE(C1)", "plain"])

    assert renderer.named("set_number_format") == [
        (1, 1, f"{DATE_FMT} {TIME_FMT}"),
        (1, 3, TIME_FMT),
    ]


def test_formula_formats_apply_to_projected_rows_too() -> None:
    renderer = RecordingRenderer()
    assembler = SheetAssembler(renderer)
    schema = HeaderSchema([FlatHeader("when")])
    assembler.reset_current_row(4)

    assembler.write_row({"when": "=DATEVALUE(\"2024-01-02\")"}, schema)

    assert renderer.named("set_number_format") == [(4, 1, DATE_FMT)]


def test_write_row_without_schema_writes_mapping_values_in_order() -> None:
    renderer = RecordingRenderer()
    assembler = SheetAssembler(renderer)

    assert assembler.write_row({"b": 2, "a": 1}) is True

    assert renderer.values == {(1, 1): 2, (1, 2): 1}
    assert assembler.current_row == 2


def test_write_row_skips_values_that_are_not_rows() -> None:
    renderer = RecordingRenderer()
    assembler = SheetAssembler(renderer)

    assert assembler.write_row("not a row") is False
    assert assembler.write_row(["x"], GROUPED) is False
    assert assembler.write_rows([{"name": "A"}, 5, {"name": "B"}], GROUPED) == 2
    assert assembler.current_row == 3
    assert renderer.values[(1, 1)] == "A"
    assert renderer.values[(2, 1)] == "B"


def test_write_headers_with_init_row_inserts_above_existing_rows() -> None:
    assembler = SheetAssembler()
    assembler.write_rows([[1], [2]])

    assembler.write_headers(HeaderSchema([FlatHeader("n")]), init_row=1)

    ws = assembler.renderer.worksheet  # type: ignore[attr-defined]
    assert [ws.cell(row=r, column=1).value for r in (1, 2, 3)] == ["n", 1, 2]
    assert assembler.current_row == 4


def test_freeze_headers_covers_header_block_at_its_position() -> None:
    renderer = RecordingRenderer()
    assembler = SheetAssembler(renderer)
    assembler.reset_current_row(3)

    assembler.write_headers(GROUPED)
    assembler.freeze_headers()

    assert renderer.named("freeze_rows") == [(4,)]


def test_add_page_break_defaults_to_cursor() -> None:
    renderer = RecordingRenderer()
    assembler = SheetAssembler(renderer)
    assembler.write_rows([[1], [2], [3]])

    assembler.add_page_break()
    assembler.add_page_break(2)

    assert renderer.named("add_page_break") == [(4,), (2,)]


def test_set_worksheet_rewinds_cursor() -> None:
    renderer = RecordingRenderer()
    assembler = SheetAssembler(renderer)
    assembler.write_rows([[1], [2]])

    assembler.set_worksheet(1, "Second")

    assert renderer.named("create_sheet") == [(1, "Second")]
    assert assembler.current_row == 1

    with pytest.raises(ValueError, match="row"):
        assembler.reset_current_row(0)


def test_assemble_report_writes_xlsx(tmp_path: Path) -> None:
    cache = RowCache(tmp_path / "rows.jsonl")
    records = [
        {"name": "Alice", "scores": {"math": 90, "art": 70}, "taken": "=DATEVALUE(\"2024-03-01\")"},
        {"name": "Bob", "scores": {"math": 85, "sci": 60}},
        {"name": "Carol"},
    ]
    cache.extend(records)
    settings = ReportSettings(title="Scores", author="Ops", sheet_title="Term 1", page_break=True)

    out, rows = assemble_report(cache, resolve(records), tmp_path / "report.xlsx", settings)

    assert rows == 3
    wb = load_workbook(out)
    assert wb.sheetnames == ["Term 1"]
    ws = wb["Term 1"]
    assert [c.value for c in ws[1]][:3] == ["name", "scores", None]
    assert [c.value for c in ws[2]][1:4] == ["math", "art", "sci"]
    assert ws["E1"].value == "taken"
    assert ws["E3"].number_format == DATE_FMT
    assert [c.value for c in ws[5]] == ["Carol", None, None, None, None]
    assert ws.freeze_panes == "A3"
    assert [brk.id for brk in ws.row_breaks.brk] == [5]
    assert wb.properties.title == "Scores"
    assert not cache.path.exists()


def test_assemble_report_respects_disabled_freeze(tmp_path: Path) -> None:
    cache = RowCache(tmp_path / "rows.jsonl")
    cache.append({"a": 1})

    out, rows = assemble_report(
        cache, resolve([{"a": 1}]), tmp_path / "plain.xlsx", ReportSettings(freeze_headers=False)
    )

    ws = load_workbook(out)["Report"]
    assert rows == 1
    assert ws.freeze_panes is None
    assert ws["A1"].value == "a"
    assert ws["A2"].value == 1


def test_empty_schema_writes_raw_values() -> None:
    renderer = RecordingRenderer()
    assembler = SheetAssembler(renderer)

    assert assembler.write_row({"a": 1, "b": 2}, HeaderSchema()) is True
    assert assembler.write_row([3], HeaderSchema()) is True

    assert renderer.values == {(1, 1): 1, (1, 2): 2, (2, 1): 3}


def test_assemble_report_strips_control_characters(tmp_path: Path) -> None:
    records = [{"name": "ok"}, {"name": "bad\x01value\x1f"}]
    cache = RowCache(tmp_path / "rows.jsonl")
    cache.extend(records)

    out, rows = assemble_report(cache, resolve(records), tmp_path / "report.xlsx")

    ws = load_workbook(out)["Report"]
    assert rows == 2
    assert ws["A2"].value == "ok"
    assert ws["A3"].value == "badvalue"
