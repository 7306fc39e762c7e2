"""CLI entry point for report-writer."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table as RichTable

from report_writer import __version__
from report_writer.assembler import assemble_report
from report_writer.cache import RowCache
from report_writer.errors import CacheUnreadableError, InvalidRecordError, RenderTargetError
from report_writer.headers import resolve
from report_writer.io import load_records, load_schema, save_schema, schema_path_for, write_json
from report_writer.models import GroupHeader, HeaderSchema, ReportManifest, ReportSettings, parse_profile
from report_writer.utils import sha256_file, utcnow_iso

app = typer.Typer(
    name="rwrite",
    help="report-writer — Assemble grouped-header spreadsheet reports from cached rows.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

_LOAD_ERRORS = (FileNotFoundError, ValueError, InvalidRecordError, OSError)


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"report-writer v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    logger = logging.getLogger("report_writer")
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(console=console, show_path=False))
    logger.setLevel(logging.DEBUG)


def _manifest_path_for(out_path: Path) -> Path:
    return out_path.with_name(out_path.name + ".manifest.json")


def _build_settings(profile: Path | None, **overrides: object) -> ReportSettings:
    """Profile values first, then any CLI flag that was actually given."""
    values: dict[str, object] = dict(parse_profile(profile)) if profile else {}
    for key, value in overrides.items():
        if value is not None:
            values[key] = value
    return ReportSettings(**values)  # type: ignore[arg-type]


def _write_manifest(
    cache_path: Path,
    out_path: Path,
    created_at: str,
    *,
    rows_out: int = 0,
    header_columns: int = 0,
    status: str = "success",
    error_message: str = "",
) -> Path:
    sha256 = sha256_file(out_path) if status == "success" else ""

    manifest = ReportManifest(
        version=__version__,
        cache_path=str(cache_path.resolve()),
        output_path=str(out_path.resolve()),
        created_at_utc=created_at,
        rows_out=rows_out,
        header_columns=header_columns,
        sha256=sha256,
        status=status,
        error_message=error_message,
    )
    return write_json(_manifest_path_for(out_path), manifest.to_dict())


def _fail(
    cache_path: Path,
    out_path: Path,
    created_at: str,
    message: str,
    *,
    code: int,
    header_columns: int = 0,
) -> typer.Exit:
    manifest_path = _write_manifest(
        cache_path,
        out_path,
        created_at,
        header_columns=header_columns,
        status="failed",
        error_message=message,
    )
    _err(message)
    console.print(f"  Manifest -> {manifest_path}")
    return typer.Exit(code=code)


def _schema_table(schema: HeaderSchema) -> RichTable:
    tbl = RichTable(title="Header Schema", show_lines=True)
    tbl.add_column("#", justify="right")
    tbl.add_column("Header", style="bold")
    tbl.add_column("Kind")
    tbl.add_column("Columns")
    for idx, entry in enumerate(schema, start=1):
        if isinstance(entry, GroupHeader):
            tbl.add_row(str(idx), entry.name, "group", ", ".join(entry.children) or "[dim]none[/dim]")
        else:
            tbl.add_row(str(idx), entry.name, "flat", entry.name)
    return tbl


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug logging from the cache and assembler.",
    ),
) -> None:
    """report-writer CLI."""
    _configure_logging(verbose)


# ── append command ───────────────────────────────────────────────


@app.command()
def append(
    cache_path: Path = typer.Option(
        ..., "--cache", "-c",
        help="Row cache file (JSON Lines); created if missing.",
    ),
    input_file: Path = typer.Option(
        ..., "--input", "-i",
        help="Records to add: .jsonl, .json, .csv or .xlsx.",
        exists=True, readable=True,
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output.",
    ),
) -> None:
    """Append records to a row cache and accrete its header schema."""
    echo = _printer(quiet)
    schema_path = schema_path_for(cache_path)
    try:
        records = load_records(input_file)
        schema = load_schema(schema_path)
    except _LOAD_ERRORS as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    resolve(records, schema)
    try:
        count = RowCache(cache_path).extend(records)
    except OSError as exc:
        _err(f"Cannot append to row cache {cache_path}: {exc}")
        raise typer.Exit(code=2)
    try:
        save_schema(schema_path, schema)
    except OSError as exc:
        _err(f"Cannot save header schema {schema_path}: {exc}")
        raise typer.Exit(code=2)

    echo(f"[green]+[/green] Appended {count} record(s) -> {cache_path}")
    echo(f"  Headers: {len(schema)} entries, {schema.width} columns -> {schema_path}")


# ── headers command ──────────────────────────────────────────────


@app.command()
def headers(
    cache_path: Path | None = typer.Option(
        None, "--cache", "-c",
        help="Show the schema accreted for this row cache.",
    ),
    input_file: Path | None = typer.Option(
        None, "--input", "-i",
        help="Resolve the schema of a records file instead.",
        exists=True, readable=True,
    ),
    as_json: bool = typer.Option(
        False, "--json",
        help="Print the schema as JSON.",
    ),
) -> None:
    """Show a header schema without touching the cached rows."""
    if (cache_path is None) == (input_file is None):
        _err("Pass exactly one of --cache or --input")
        raise typer.Exit(code=2)

    try:
        if input_file is not None:
            schema = resolve(load_records(input_file))
        elif cache_path is not None:
            schema = load_schema(schema_path_for(cache_path))
    except _LOAD_ERRORS as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    if as_json:
        console.print_json(data=schema.to_dict())
        return
    if not len(schema):
        console.print("[yellow]![/yellow] No headers resolved yet")
        return
    console.print(_schema_table(schema))
    console.print(f"  {len(schema)} entries, {schema.width} columns")


# ── render command ───────────────────────────────────────────────


@app.command()
def render(
    cache_path: Path = typer.Option(
        ..., "--cache", "-c",
        help="Row cache to drain. It is deleted after rendering.",
    ),
    out_path: Path = typer.Option(
        Path("report.xlsx"), "--out", "-o",
        help="Workbook to write.",
    ),
    sample: Path | None = typer.Option(
        None, "--sample",
        help="Extra records file used only to extend the header schema.",
        exists=True, readable=True,
    ),
    profile: Path | None = typer.Option(
        None, "--profile",
        help="Profile file with report settings (key=value lines).",
    ),
    title: str | None = typer.Option(None, "--title", help="Workbook title property."),
    author: str | None = typer.Option(None, "--author", help="Workbook author property."),
    sheet_title: str | None = typer.Option(None, "--sheet-title", help="Name of the report sheet."),
    freeze: bool | None = typer.Option(
        None, "--freeze/--no-freeze",
        help="Freeze the header rows (default: freeze).",
    ),
    page_break: bool | None = typer.Option(
        None, "--page-break/--no-page-break",
        help="Add a print page break after the last row.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes the manifest.",
    ),
) -> None:
    """Drain a row cache into an .xlsx report."""
    echo = _printer(quiet)
    created_at = utcnow_iso()
    try:
        settings = _build_settings(
            profile,
            title=title,
            author=author,
            sheet_title=sheet_title,
            freeze_headers=freeze,
            page_break=page_break,
        )
    except (ValueError, TypeError) as exc:
        raise _fail(cache_path, out_path, created_at, str(exc), code=2)

    cache = RowCache(cache_path)
    if not cache.exists():
        raise _fail(cache_path, out_path, created_at, f"Row cache not found: {cache_path}", code=2)

    schema_path = schema_path_for(cache_path)
    try:
        schema = load_schema(schema_path)
        if sample is not None:
            resolve(load_records(sample), schema)
    except _LOAD_ERRORS as exc:
        raise _fail(cache_path, out_path, created_at, str(exc), code=2)

    if not len(schema):
        message = (
            f"No header schema for {cache_path}. "
            "Append through 'rwrite append' or pass --sample."
        )
        raise _fail(cache_path, out_path, created_at, message, code=2)

    if not quiet:
        console.print(Panel(
            f"[bold]report-writer[/bold] v{__version__}\n"
            f"Cache:  {cache_path}\nOutput: {out_path}",
            title="Render Start", border_style="blue",
        ))
        console.print(f"  Headers: {len(schema)} entries, {schema.width} columns")

    echo("[blue]>[/blue] Draining row cache …")
    try:
        report_path, rows = assemble_report(cache, schema, out_path, settings)
    except CacheUnreadableError as exc:
        raise _fail(cache_path, out_path, created_at, str(exc), code=2, header_columns=schema.width)
    except RenderTargetError as exc:
        raise _fail(cache_path, out_path, created_at, str(exc), code=1, header_columns=schema.width)
    except Exception as exc:
        message = f"Unexpected internal error: {exc}"
        raise _fail(cache_path, out_path, created_at, message, code=1, header_columns=schema.width)
    finally:
        # the cache is gone once a drain starts, so its schema is stale either way
        if not cache.exists():
            schema_path.unlink(missing_ok=True)

    manifest_path = _write_manifest(
        cache_path,
        report_path,
        created_at,
        rows_out=rows,
        header_columns=schema.width,
    )
    echo(f"  Report   -> {report_path}")
    echo(f"  Manifest -> {manifest_path}")

    if not quiet:
        console.print(Panel(
            f"[green]Done[/green] — {rows} rows -> {report_path}",
            title="Render Complete", border_style="green",
        ))
