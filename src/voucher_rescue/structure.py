"""Heuristic header/data-region detection over a raw grid.

Only the first ``header_rows`` rows are considered as header candidates. That
bound is a deliberate cost limit: a header further down is simply not found.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from voucher_rescue.config import ExtractionSettings
from voucher_rescue.currency import CurrencyParser
from voucher_rescue.models import StructureCandidate
from voucher_rescue.utils import is_blank, is_blank_row, normalize_text

logger = logging.getLogger(__name__)

HEADER_SCORE_SCALE = 15
VALID_ROWS_SCALE = 100
DATA_CONFIDENCE_FLOOR = 0.3

VALUE_KEYWORDS = ("valor", "total", "importe", "monto", "amount", "value", "saldo", "neto")
DATE_KEYWORDS = ("fecha", "date", "emision", "elaboracion", "creacion")
DOCUMENT_KEYWORDS = ("comprobante", "factura", "documento", "nro", "numero")
SUPPLIER_KEYWORDS = (
    "proveedor",
    "cliente",
    "tercero",
    "vendedor",
    "nombre",
    "supplier",
    "customer",
    "razon social",
)

# (role, weight, keywords) checked in this order; a cell counts once.
_BUCKETS: tuple[tuple[str, int, tuple[str, ...]], ...] = (
    ("value", 4, VALUE_KEYWORDS),
    ("date", 3, DATE_KEYWORDS),
    ("document_ref", 3, DOCUMENT_KEYWORDS),
    ("supplier", 2, SUPPLIER_KEYWORDS),
)


@dataclass(frozen=True)
class HeaderScore:
    score: int
    columns: dict[str, int]

    @property
    def value_column(self) -> int | None:
        return self.columns.get("value")


def score_structure(
    header_score: float, valid_rows: int, rows_scanned: int, columns_found: int
) -> float:
    """Weighted confidence of a structure hypothesis, clamped to ``[0, 1]``."""
    data_ratio = valid_rows / rows_scanned if rows_scanned > 0 else 0.0
    confidence = (
        0.4 * (header_score / HEADER_SCORE_SCALE)
        + 0.3 * data_ratio
        + 0.2 * min(1.0, valid_rows / VALID_ROWS_SCALE)
        + 0.1 * (columns_found / 3)
    )
    return max(0.0, min(1.0, confidence))


def score_header_row(row: Sequence[Any]) -> HeaderScore:
    """Score one row as a potential header and record column roles."""
    score = 0
    columns: dict[str, int] = {}
    for index, cell in enumerate(row):
        text = normalize_text(cell)
        if not text:
            continue
        for role, weight, keywords in _BUCKETS:
            if any(keyword in text for keyword in keywords):
                score += weight
                columns.setdefault(role, index)
                break
        if 3 <= len(text) <= 30:
            score += 1
    return HeaderScore(score, columns)


class StructureDetector:
    """Rank header/data hypotheses for a grid by confidence."""

    def __init__(
        self,
        currency: CurrencyParser | None = None,
        settings: ExtractionSettings | None = None,
    ) -> None:
        self.currency = currency or CurrencyParser()
        self.settings = settings or ExtractionSettings()

    def detect(
        self, grid: Sequence[Sequence[Any]], scan_rows: int | None = None
    ) -> list[StructureCandidate]:
        bound = min(len(grid), scan_rows or self.settings.scan_rows)
        header_limit = min(self.settings.header_rows, bound)

        candidates: list[StructureCandidate] = []
        for header_index in range(header_limit):
            header = score_header_row(grid[header_index])
            if header.score < self.settings.min_header_score or header.value_column is None:
                continue
            candidate = self._scan_data(grid, header_index, header, bound)
            if candidate is None:
                logger.debug("header row %d has no valid data below it", header_index)
                continue
            candidates.append(candidate)

        # sorted() is stable, so ties keep scan order.
        ranked = sorted(candidates, key=lambda c: -c.confidence)
        if ranked:
            best = ranked[0]
            logger.debug(
                "best structure: header=%d rows=[%d, %d) confidence=%.3f",
                best.header_row_index,
                best.data_start_row,
                best.data_end_row,
                best.confidence,
            )
        return ranked

    def _is_valid_data_cell(self, value: Any) -> bool:
        parsed = self.currency.parse(value)
        return bool(parsed.value) and parsed.confidence > DATA_CONFIDENCE_FLOOR

    def _scan_data(
        self,
        grid: Sequence[Sequence[Any]],
        header_index: int,
        header: HeaderScore,
        bound: int,
    ) -> StructureCandidate | None:
        value_column = header.value_column
        if value_column is None:
            return None

        data_start: int | None = None
        data_end = 0
        valid_rows = 0
        rows_scanned = 0
        filled_cells = 0

        for index in range(header_index + 1, bound):
            row = grid[index]
            if is_blank_row(row):
                if valid_rows:
                    break
                rows_scanned += 1
                continue
            rows_scanned += 1
            cell = row[value_column] if value_column < len(row) else None
            if not self._is_valid_data_cell(cell):
                continue
            valid_rows += 1
            filled_cells += sum(not is_blank(item) for item in row)
            if data_start is None:
                data_start = index
            data_end = index + 1

        if data_start is None:
            return None

        columns_found = sum(
            role in header.columns for role in ("value", "date", "document_ref")
        )
        confidence = score_structure(header.score, valid_rows, rows_scanned, columns_found)
        return StructureCandidate(
            header_row_index=header_index,
            data_start_row=data_start,
            data_end_row=data_end,
            value_column=value_column,
            date_column=header.columns.get("date"),
            document_ref_column=header.columns.get("document_ref"),
            supplier_column=header.columns.get("supplier"),
            confidence=confidence,
            header_score=header.score,
            column_count=len(grid[header_index]),
            valid_data_row_count=valid_rows,
            rows_scanned=rows_scanned,
            average_row_length=filled_cells / valid_rows,
        )
