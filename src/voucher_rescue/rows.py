"""Walk the detected data region and fold amounts into month buckets."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from datetime import date
from typing import Any

from voucher_rescue import MONTHS_PER_YEAR
from voucher_rescue.config import ExtractionSettings
from voucher_rescue.currency import CurrencyParser
from voucher_rescue.dates import DateParser
from voucher_rescue.errors import NoValidRows
from voucher_rescue.models import (
    DiagnosticSamples,
    DocumentCategory,
    FileExtractionResult,
    StructureCandidate,
)
from voucher_rescue.utils import is_blank_row

logger = logging.getLogger(__name__)

MIN_ROW_CONFIDENCE = 0.2
MAX_SUCCESS_SAMPLES = 10
MAX_FAILURE_SAMPLES = 5


def _cell(row: Sequence[Any], column: int | None) -> Any:
    if column is None or column >= len(row):
        return None
    return row[column]


def _sample_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class RowProcessor:
    """Turn the rows of one structure candidate into a file result.

    Rows are visited in fixed-size batches purely to pace memory; batching
    never changes the outcome.
    """

    def __init__(
        self,
        currency: CurrencyParser | None = None,
        dates: DateParser | None = None,
        settings: ExtractionSettings | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.currency = currency or CurrencyParser()
        self.dates = dates or DateParser(self.settings.min_year, self.settings.max_year)
        self.today = today

    def _batches(self, start: int, end: int) -> list[range]:
        size = self.settings.row_batch_size
        return [range(lo, min(lo + size, end)) for lo in range(start, end, size)]

    def process(
        self,
        grid: Sequence[Sequence[Any]],
        candidate: StructureCandidate,
        category: DocumentCategory,
    ) -> FileExtractionResult:
        end = min(candidate.data_end_row, len(grid))
        monthly = [0.0] * MONTHS_PER_YEAR
        total = 0.0
        processed = 0
        skipped = 0
        date_fallbacks = 0
        fiscal: tuple[int, int] | None = None
        successes: list[dict[str, Any]] = []
        failures: list[dict[str, Any]] = []

        for batch in self._batches(candidate.data_start_row, end):
            for index in batch:
                row = grid[index]
                if is_blank_row(row):
                    skipped += 1
                    continue

                raw_value = _cell(row, candidate.value_column)
                amount = self.currency.parse(raw_value)
                overflow = bool(amount.value) and not math.isfinite(total + amount.value)
                if not amount.value or amount.confidence < MIN_ROW_CONFIDENCE or overflow:
                    skipped += 1
                    if len(failures) < MAX_FAILURE_SAMPLES:
                        failures.append(
                            {
                                "row": index,
                                "raw_value": _sample_value(raw_value),
                                "method": "total_overflow" if overflow else amount.method,
                                "confidence": amount.confidence,
                            }
                        )
                    continue

                raw_date = _cell(row, candidate.date_column)
                parsed_date = self.dates.parse(raw_date)
                when = parsed_date.value
                if when is None:
                    when = self.today()
                    date_fallbacks += 1

                value = amount.value
                monthly[when.month - 1] += value
                total += value
                processed += 1
                if fiscal is None:
                    fiscal = (when.month - 1, when.year)

                if len(successes) < MAX_SUCCESS_SAMPLES:
                    successes.append(
                        {
                            "row": index,
                            "raw_value": _sample_value(raw_value),
                            "amount": value,
                            "amount_method": amount.method,
                            "raw_date": _sample_value(raw_date),
                            "date": when.isoformat(),
                            "date_method": parsed_date.method,
                            "document_ref": _sample_value(
                                _cell(row, candidate.document_ref_column)
                            ),
                        }
                    )

        samples = DiagnosticSamples(tuple(successes), tuple(failures))
        if fiscal is None:
            raise NoValidRows(
                f"None of the {skipped} rows in the data region held a usable amount",
                {
                    "skipped_row_count": skipped,
                    "structure": candidate.to_dict(),
                    "samples": samples.to_dict(),
                },
            )

        logger.debug(
            "processed %d rows, skipped %d, total %.2f", processed, skipped, total
        )
        return FileExtractionResult(
            document_category=category,
            fiscal_month=fiscal[0],
            fiscal_year=fiscal[1],
            total_amount=total,
            processed_row_count=processed,
            skipped_row_count=skipped,
            monthly_amounts=tuple(monthly),
            date_fallback_count=date_fallbacks,
            diagnostic_samples=samples,
            structure=candidate,
        )
