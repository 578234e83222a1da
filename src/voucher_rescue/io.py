"""I/O helpers — turn uploaded bytes into a raw grid, write JSON artifacts."""

from __future__ import annotations

import csv
import io
import json
import logging
import math
from collections.abc import Callable, Iterable, Sequence
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Literal, cast

import pandas as pd
from openpyxl import load_workbook

from voucher_rescue.errors import GridDecodeError

logger = logging.getLogger(__name__)

Cell = Any
RawGrid = tuple[tuple[Cell, ...], ...]

_EXCEL_SUFFIXES = (".xlsx", ".xlsm", ".xltx", ".xltm")
_TEXT_SUFFIXES = (".csv", ".txt", ".tsv")
_TEXT_ENCODINGS = ("utf-8-sig", "utf-8", "latin-1")


# ── Grid normalisation ───────────────────────────────────────────


def _normalize_cell(value: Any) -> Cell:
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        dt = value.to_pydatetime()
        return dt.replace(tzinfo=None) if dt.tzinfo else dt
    if isinstance(value, datetime) and value.tzinfo:
        return value.replace(tzinfo=None)
    if isinstance(value, (str, bool, date, Decimal)):
        return value
    item = getattr(value, "item", None)
    if callable(item):
        value = item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def make_grid(rows: Iterable[Sequence[Any]]) -> RawGrid:
    """Normalise cells and pad *rows* into an immutable rectangle."""
    normalized = [tuple(_normalize_cell(cell) for cell in row) for row in rows]
    width = max((len(row) for row in normalized), default=0)
    return tuple(row + (None,) * (width - len(row)) for row in normalized)


def grid_from_frame(df: pd.DataFrame) -> RawGrid:
    """Build a grid from a header-less frame (``header=None``)."""
    frame = df.astype(object).where(pd.notna(df), None)
    return make_grid(frame.itertuples(index=False, name=None))


# ── Read strategies ──────────────────────────────────────────────


def _read_plain(data: bytes, suffix: str) -> RawGrid:
    engine: Literal["openpyxl", "xlrd"] = "xlrd" if suffix == ".xls" else "openpyxl"
    read_excel = cast(Callable[..., pd.DataFrame], getattr(pd, "read_excel"))
    try:
        df = read_excel(io.BytesIO(data), sheet_name=0, header=None, dtype=object, engine=engine)
    except ImportError as exc:
        raise GridDecodeError(
            "Reading .xls input requires 'xlrd'. "
            "Either convert to .xlsx or add dependency: pip install xlrd"
        ) from exc
    return grid_from_frame(df)


def _read_raw(data: bytes, suffix: str) -> RawGrid:
    del suffix
    workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        if not workbook.worksheets:
            raise GridDecodeError("Workbook has no sheets")
        sheet = workbook.worksheets[0]
        return make_grid(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()


def _read_text(data: bytes, suffix: str) -> RawGrid:
    sep = "\t" if suffix == ".tsv" else None
    last_exc: Exception | None = None
    for encoding in _TEXT_ENCODINGS:
        try:
            text = data.decode(encoding)
        except UnicodeDecodeError as exc:
            last_exc = exc
            continue
        if "\x00" in text:
            raise GridDecodeError("Binary content is not delimited text")
        try:
            df = pd.read_csv(
                io.StringIO(text),
                header=None,
                dtype=object,
                sep=sep,
                engine="python",
                skip_blank_lines=False,
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError, csv.Error) as exc:
            last_exc = exc
            continue
        return grid_from_frame(df)
    raise GridDecodeError("Could not decode delimited text") from last_exc


_STRATEGIES: dict[str, Callable[[bytes, str], RawGrid]] = {
    "plain": _read_plain,
    "raw": _read_raw,
    "text": _read_text,
}


def _strategy_order(suffix: str) -> tuple[str, ...]:
    if suffix in _TEXT_SUFFIXES:
        return ("text",)
    if suffix == ".xls":
        return ("plain", "text")
    return ("plain", "raw", "text")


def load_grid(data: bytes, filename: str) -> RawGrid:
    """Parse *data* into the first sheet's grid of raw cell values.

    Raises
    ------
    GridDecodeError
        If the file is empty, the extension is unsupported, or every read
        strategy fails.
    """
    if not data:
        raise GridDecodeError(f"File {filename!r} is empty")

    suffix = Path(filename).suffix.lower()
    if suffix not in (*_EXCEL_SUFFIXES, *_TEXT_SUFFIXES, ".xls"):
        raise GridDecodeError(
            f"Unsupported file type: {suffix!r}. Use .xlsx, .xls, or .csv"
        )

    errors: list[str] = []
    for name in _strategy_order(suffix):
        try:
            grid = _STRATEGIES[name](data, suffix)
        except Exception as exc:  # each reader fails in its own way
            errors.append(f"{name}: {exc}")
            logger.debug("read strategy %s failed for %s: %s", name, filename, exc)
            continue
        logger.debug("read %s with %s strategy: %d rows", filename, name, len(grid))
        return grid

    raise GridDecodeError(f"Could not read {filename!r} ({'; '.join(errors)})")


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
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
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path
