"""CLI entry point for voucher-rescue."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table as RichTable

from voucher_rescue import __version__
from voucher_rescue.aggregate import monthly_frame
from voucher_rescue.batch import BatchContext, BatchReport, extract_grid, process_paths
from voucher_rescue.classify import CONTENT_SAMPLE_ROWS
from voucher_rescue.config import DEFAULT_MAX_FILE_BYTES, ExtractionSettings
from voucher_rescue.errors import BatchLimitExceeded, ExtractionError, GridDecodeError
from voucher_rescue.io import load_grid, write_json
from voucher_rescue.report import write_report
from voucher_rescue.utils import setup_logging

app = typer.Typer(
    name="vrescue",
    help="voucher-rescue — Recover monthly voucher totals from messy accounting exports.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

_MONTH_NAMES = ("Ene", "Feb", "Mar", "Abr", "May", "Jun", "Jul", "Ago", "Sep", "Oct", "Nov", "Dic")


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {msg}")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"voucher-rescue v{__version__}")
        raise typer.Exit()


def _build_settings(
    *,
    scan_rows: int,
    min_year: int,
    max_year: int,
    max_files: int,
    max_file_mb: float,
) -> ExtractionSettings:
    return ExtractionSettings(
        scan_rows=scan_rows,
        min_year=min_year,
        max_year=max_year,
        max_files=max_files,
        max_file_bytes=int(max_file_mb * 1024 * 1024),
    )


def _money(value: float) -> str:
    return f"{value:,.2f}"


def _print_files_table(report: BatchReport) -> None:
    tbl = RichTable(title="Files", show_lines=False)
    tbl.add_column("File", style="bold")
    tbl.add_column("Status")
    tbl.add_column("Type")
    tbl.add_column("Period")
    tbl.add_column("Total", justify="right")
    tbl.add_column("Rows", justify="right")
    tbl.add_column("Skipped", justify="right")
    for outcome in report.outcomes:
        result = outcome.result
        if result is None:
            tbl.add_row(
                outcome.filename,
                f"[red]{outcome.error_kind}[/red]",
                "-", "-", "-", "-", "-",
            )
            continue
        tbl.add_row(
            outcome.filename,
            "[green]ok[/green]",
            result.document_category.value,
            f"{_MONTH_NAMES[result.fiscal_month]} {result.fiscal_year}",
            _money(result.total_amount),
            str(result.processed_row_count),
            str(result.skipped_row_count),
        )
    console.print(tbl)


def _print_monthly_table(report: BatchReport) -> None:
    frame = monthly_frame(report.reducer.series)
    frame = frame[frame["rows"] > 0]
    if frame.empty:
        return
    tbl = RichTable(title="Monthly totals", show_lines=False)
    tbl.add_column("Type", style="bold")
    for name in _MONTH_NAMES:
        tbl.add_column(name, justify="right")
    tbl.add_column("Total", justify="right", style="bold")
    tbl.add_column("Avg/row", justify="right")
    for record in frame.itertuples(index=False):
        months = list(record[2:14])
        tbl.add_row(
            str(record.category),
            *[_money(value) if value else "-" for value in months],
            _money(record.total),
            _money(record.average),
        )
    console.print(tbl)


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """voucher-rescue CLI."""


# ── run command ──────────────────────────────────────────────────


@app.command()
def run(
    files: list[Path] = typer.Argument(
        ...,
        help="Spreadsheet exports (.xlsx, .xls, .csv) belonging to one batch.",
        exists=True, readable=True, dir_okay=False,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for batch_report.json + Monthly_Report.xlsx.",
    ),
    scan_rows: int = typer.Option(
        1000, "--scan-rows", envvar="VRESCUE_SCAN_ROWS",
        help="Rows scanned per file while detecting the data region.",
    ),
    min_year: int = typer.Option(
        2020, "--min-year", envvar="VRESCUE_MIN_YEAR",
        help="Earliest plausible year for ambiguous date formats.",
    ),
    max_year: int = typer.Option(
        2030, "--max-year", envvar="VRESCUE_MAX_YEAR",
        help="Latest plausible year for ambiguous date formats.",
    ),
    max_files: int = typer.Option(
        12, "--max-files", envvar="VRESCUE_MAX_FILES",
        help="Maximum number of files accepted in one batch.",
    ),
    max_file_mb: float = typer.Option(
        DEFAULT_MAX_FILE_BYTES / 1024 / 1024, "--max-file-mb", envvar="VRESCUE_MAX_FILE_MB",
        help="Maximum size of a single file in MiB.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log parsing decisions.",
    ),
) -> None:
    """Extract monthly totals from a batch of spreadsheet exports."""
    echo = _printer(quiet)
    setup_logging(verbose, console=console)
    try:
        settings = _build_settings(
            scan_rows=scan_rows,
            min_year=min_year,
            max_year=max_year,
            max_files=max_files,
            max_file_mb=max_file_mb,
        )
    except (TypeError, ValueError) as exc:
        _err(f"Invalid settings: {exc}")
        raise typer.Exit(code=2)

    if not quiet:
        console.print(Panel(
            f"[bold]voucher-rescue[/bold] v{__version__}\n"
            f"Files:  {len(files)}\nOutput: {out_dir}",
            title="Batch Start", border_style="blue",
        ))

    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        echo("[blue]>[/blue] Extracting …")
        report = process_paths(files, settings)
    except BatchLimitExceeded as exc:
        _err(str(exc))
        write_json(
            out_dir / "batch_report.json",
            {"tool": "voucher-rescue", "version": __version__, "error": str(exc)},
        )
        raise typer.Exit(code=2)
    except OSError as exc:
        _err(f"Cannot read input: {exc}")
        raise typer.Exit(code=2)

    try:
        json_path = write_json(out_dir / "batch_report.json", report.to_dict())
        echo(f"  Batch report -> {json_path}")
        report_path = write_report(out_dir, report)
        echo(f"  Report       -> {report_path}")
    except Exception as exc:
        _err(f"Unexpected internal error: {exc}")
        raise typer.Exit(code=1)

    if not quiet:
        _print_files_table(report)
        _print_monthly_table(report)
        console.print(Panel(
            f"{report.files_succeeded} ok, {report.files_failed} failed — "
            f"grand total {_money(float(report.grand_total))} "
            f"in {report.elapsed_seconds:.2f}s",
            title="Batch Complete",
            border_style="green" if report.files_succeeded else "red",
        ))

    if report.files_succeeded == 0:
        _err("No file could be extracted")
        raise typer.Exit(code=2)


# ── inspect command ──────────────────────────────────────────────


@app.command()
def inspect(
    input_file: Path = typer.Argument(
        ..., help="Spreadsheet export to analyse.",
        exists=True, readable=True, dir_okay=False,
    ),
    scan_rows: int = typer.Option(
        1000, "--scan-rows", envvar="VRESCUE_SCAN_ROWS",
        help="Rows scanned while detecting the data region.",
    ),
    top: int = typer.Option(5, "--top", help="Number of candidates to show."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log parsing decisions."),
) -> None:
    """Show ranked structure candidates and the detected document type."""
    setup_logging(verbose, console=console)
    try:
        grid = load_grid(input_file.read_bytes(), input_file.name)
    except (GridDecodeError, OSError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    ctx = BatchContext(settings=ExtractionSettings(scan_rows=scan_rows))
    category, source = ctx.classifier.explain(input_file.name, grid[:CONTENT_SAMPLE_ROWS])
    console.print(f"  {len(grid)} rows x {len(grid[0]) if grid else 0} columns")
    console.print(f"  Document type: [bold]{category.value}[/bold] ({category.label}) via {source}")

    candidates = ctx.detector.detect(grid)
    if not candidates:
        _err("No structure candidate found")
        raise typer.Exit(code=2)

    tbl = RichTable(title="Structure candidates", show_lines=False)
    for column in ("Header", "Data rows", "Value", "Date", "Doc", "Supplier", "Valid", "Confidence"):
        tbl.add_column(column, justify="right")
    for candidate in candidates[:top]:
        tbl.add_row(
            str(candidate.header_row_index),
            f"{candidate.data_start_row}-{candidate.data_end_row}",
            str(candidate.value_column),
            str(candidate.date_column if candidate.date_column is not None else "-"),
            str(candidate.document_ref_column if candidate.document_ref_column is not None else "-"),
            str(candidate.supplier_column if candidate.supplier_column is not None else "-"),
            str(candidate.valid_data_row_count),
            f"{candidate.confidence:.3f}",
        )
    console.print(tbl)

    try:
        result = extract_grid(grid, input_file.name, ctx)
    except ExtractionError as exc:
        _err(f"{exc.kind}: {exc.message}")
        raise typer.Exit(code=2)
    console.print(
        f"  {_MONTH_NAMES[result.fiscal_month]} {result.fiscal_year}: "
        f"{_money(result.total_amount)} from {result.processed_row_count} rows "
        f"({result.skipped_row_count} skipped)"
    )
