"""Excel report writer — produces Monthly_Report.xlsx."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

from voucher_rescue.aggregate import MONTH_COLUMNS, monthly_frame
from voucher_rescue.batch import BatchReport

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

TITLE_FONT = Font(name="Calibri", bold=True, size=14, color="2F5496")
SUBTITLE_FONT = Font(name="Calibri", bold=False, size=10, color="808080")
FAIL_FONT = Font(name="Calibri", italic=True, size=10, color="CC6600")

CURRENCY_FMT = '#,##0.00'
INT_FMT = '#,##0'

_COL_FORMATS: dict[str, str] = {
    **{name: CURRENCY_FMT for name in MONTH_COLUMNS},
    "total": CURRENCY_FMT,
    "total_amount": CURRENCY_FMT,
    "average": CURRENCY_FMT,
    "rows": INT_FMT,
    "processed_rows": INT_FMT,
    "skipped_rows": INT_FMT,
}

_AUTO_WIDTH_SAMPLE_ROWS = 300
_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")
REPORT_NAME = "Monthly_Report.xlsx"


# ── Helpers ──────────────────────────────────────────────────────


def _style_header(ws: Worksheet, row: int, ncols: int) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=row, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _auto_width(ws: Worksheet) -> None:
    max_row = min(ws.max_row, _AUTO_WIDTH_SAMPLE_ROWS + 1)
    for c_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(c_idx)
        width = 0
        for row in ws.iter_rows(min_row=1, max_row=max_row, min_col=c_idx, max_col=c_idx):
            width = max(width, len(str(row[0].value or "")))
        ws.column_dimensions[letter].width = min(width + 4, 40)


def _excel_value(val: Any) -> Any:
    if val is None:
        return None
    if isinstance(val, str):
        stripped = val.lstrip()
        if stripped and stripped[0] in _EXCEL_FORMULA_PREFIXES:
            return f"'{val}"
    return val


def _df_to_sheet(ws: Worksheet, df: pd.DataFrame, *, first_row: int, table_name: str) -> None:
    col_names = list(df.columns)
    for c_idx, col_name in enumerate(col_names, 1):
        ws.cell(row=first_row, column=c_idx, value=col_name)
    for r_idx, row_vals in enumerate(df.itertuples(index=False, name=None), first_row + 1):
        for c_idx, val in enumerate(row_vals, 1):
            cell = ws.cell(row=r_idx, column=c_idx, value=_excel_value(val))
            fmt = _COL_FORMATS.get(col_names[c_idx - 1])
            if fmt:
                cell.number_format = fmt
    _style_header(ws, first_row, len(col_names))
    ws.freeze_panes = ws.cell(row=first_row + 1, column=1)
    if len(df) > 0:
        end_col = get_column_letter(len(col_names))
        table = Table(
            displayName=table_name,
            ref=f"A{first_row}:{end_col}{first_row + len(df)}",
        )
        table.tableStyleInfo = TableStyleInfo(
            name="TableStyleMedium9", showFirstColumn=False,
            showLastColumn=False, showRowStripes=True, showColumnStripes=False,
        )
        ws.add_table(table)
    _auto_width(ws)


def files_frame(report: BatchReport) -> pd.DataFrame:
    """One line per processed file, successful or not."""
    records = []
    for outcome in report.outcomes:
        payload = outcome.to_dict()
        month = payload["fiscal_month"]
        records.append(
            {
                "filename": outcome.filename,
                "status": "ok" if outcome.success else "failed",
                "category": payload["document_category"] or "",
                "period": (
                    f"{payload['fiscal_year']}-{month + 1:02d}" if month is not None else ""
                ),
                "total_amount": payload["total_amount"],
                "processed_rows": payload["processed_row_count"],
                "skipped_rows": payload["skipped_row_count"],
                "error": payload.get("error_kind", ""),
                "message": payload.get("message", ""),
            }
        )
    columns = [
        "filename", "status", "category", "period", "total_amount",
        "processed_rows", "skipped_rows", "error", "message",
    ]
    return pd.DataFrame(records, columns=columns)


# ── Public API ───────────────────────────────────────────────────


def write_report(out_dir: Path, report: BatchReport) -> Path:
    """Write ``Monthly_Report.xlsx`` and return the path."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_path = out_dir / REPORT_NAME

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)

    monthly = wb.create_sheet(title="Monthly")
    monthly.cell(row=1, column=1, value="voucher-rescue — Monthly totals").font = TITLE_FONT
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    summary = (
        f"Generated {generated} · {report.files_succeeded} files ok, "
        f"{report.files_failed} failed"
    )
    monthly.cell(row=2, column=1, value=summary).font = SUBTITLE_FONT
    _df_to_sheet(
        monthly, monthly_frame(report.reducer.series), first_row=4, table_name="MonthlyTotals"
    )

    files = wb.create_sheet(title="Files")
    frame = files_frame(report)
    _df_to_sheet(files, frame, first_row=1, table_name="FileOutcomes")
    for r_idx, status in enumerate(frame["status"], 2):
        if status == "failed":
            for c_idx in range(1, len(frame.columns) + 1):
                files.cell(row=r_idx, column=c_idx).font = FAIL_FONT

    tmp_path = out_dir / "Monthly_Report.tmp.xlsx"
    wb.save(tmp_path)
    tmp_path.replace(report_path)
    return report_path
