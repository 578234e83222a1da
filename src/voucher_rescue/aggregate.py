"""Batch-scoped monthly accumulation per document category."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Context, Decimal
from typing import Any

import pandas as pd

from voucher_rescue import MONTHS_PER_YEAR
from voucher_rescue.models import DocumentCategory, FileExtractionResult

MONTH_COLUMNS: list[str] = [f"m{month:02d}" for month in range(1, MONTHS_PER_YEAR + 1)]

_CENTS = Decimal("0.01")
# Enough digits to quantize any finite double to cents.
_WIDE = Context(prec=400)


def _exact(amount: float) -> Decimal:
    # repr() round-trips the float, so Decimal sums stay order independent.
    return Decimal(repr(float(amount)))


def _cents(value: Decimal) -> float:
    return float(value.quantize(_CENTS, context=_WIDE))


@dataclass
class MonthlySeries:
    """Twelve month buckets plus a running total and row count.

    Only ever grows by addition.
    """

    months: list[Decimal] = field(default_factory=lambda: [Decimal(0)] * MONTHS_PER_YEAR)
    total: Decimal = Decimal(0)
    row_count: int = 0

    def add(self, result: FileExtractionResult) -> None:
        amount = _exact(result.total_amount)
        self.total = _WIDE.add(self.total, amount)
        if 0 <= result.fiscal_month < MONTHS_PER_YEAR:
            month = result.fiscal_month
            self.months[month] = _WIDE.add(self.months[month], amount)
        self.row_count += result.processed_row_count

    @property
    def average_per_row(self) -> Decimal:
        if self.row_count == 0:
            return Decimal(0)
        return _WIDE.divide(self.total, self.row_count)

    def to_dict(self) -> dict[str, Any]:
        return {
            "months": [_cents(value) for value in self.months],
            "total": _cents(self.total),
            "row_count": self.row_count,
            "average_per_row": _cents(self.average_per_row),
        }


def empty_series() -> dict[DocumentCategory, MonthlySeries]:
    return {category: MonthlySeries() for category in DocumentCategory}


class AggregationReducer:
    """Fold file results into per-category monthly series.

    One reducer per batch; results are merged only once complete.
    """

    def __init__(self) -> None:
        self.series = empty_series()

    def add(self, result: FileExtractionResult) -> None:
        self.series[result.document_category].add(result)

    def extend(self, results: Iterable[FileExtractionResult]) -> None:
        for result in results:
            self.add(result)

    @property
    def grand_total(self) -> Decimal:
        total = Decimal(0)
        for series in self.series.values():
            total = _WIDE.add(total, series.total)
        return total

    def to_dict(self) -> dict[str, Any]:
        return {category.value: series.to_dict() for category, series in self.series.items()}


def reduce_results(
    results: Iterable[FileExtractionResult],
) -> dict[DocumentCategory, MonthlySeries]:
    reducer = AggregationReducer()
    reducer.extend(results)
    return reducer.series


def monthly_frame(series: dict[DocumentCategory, MonthlySeries]) -> pd.DataFrame:
    """Tabulate series as one row per category with month columns."""
    columns = ["category", "name", *MONTH_COLUMNS, "total", "rows", "average"]
    records = []
    for category, item in series.items():
        payload = item.to_dict()
        records.append(
            [
                category.value,
                category.label,
                *payload["months"],
                payload["total"],
                payload["row_count"],
                payload["average_per_row"],
            ]
        )
    return pd.DataFrame(records, columns=columns)
