"""Data models used across the package."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from numbers import Integral, Real
from typing import Any, Generic, TypeVar

from voucher_rescue import MONTHS_PER_YEAR

T = TypeVar("T")

FAILED_METHOD = "parsing_failed"


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_confidence(value: Any, field_name: str = "confidence") -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise TypeError(f"{field_name} must be a number")
    result = float(value)
    if not 0.0 <= result <= 1.0:
        raise ValueError(f"{field_name} must be within [0, 1]")
    return result


class DocumentCategory(str, Enum):
    """Closed set of accounting voucher types, keyed by their short code."""

    FC = "FC"
    ND = "ND"
    DS = "DS"
    RP = "RP"

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS[self]


_CATEGORY_LABELS: dict[DocumentCategory, str] = {
    DocumentCategory.FC: "Factura de Compra",
    DocumentCategory.ND: "Nota Débito",
    DocumentCategory.DS: "Documento Soporte",
    DocumentCategory.RP: "Recibo de Pago",
}


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    """Outcome of one value-parsing attempt.

    Contract invariant: ``confidence == 0`` implies a sentinel value
    (``None`` for dates, ``0.0`` for amounts).
    """

    value: T | None
    confidence: float
    method: str
    original_raw: Any = None
    normalized_raw: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", _to_confidence(self.confidence))
        if self.confidence == 0 and self.value not in (None, 0):
            raise ValueError("zero-confidence results must carry a sentinel value")


@dataclass(frozen=True)
class StructureCandidate:
    """A hypothesis about which rows and columns hold the data."""

    header_row_index: int
    data_start_row: int
    data_end_row: int
    value_column: int
    date_column: int | None = None
    document_ref_column: int | None = None
    supplier_column: int | None = None
    confidence: float = 0.0
    header_score: int = 0
    column_count: int = 0
    valid_data_row_count: int = 0
    rows_scanned: int = 0
    average_row_length: float = 0.0

    def __post_init__(self) -> None:
        for name in (
            "header_row_index",
            "data_start_row",
            "data_end_row",
            "value_column",
            "header_score",
            "column_count",
            "valid_data_row_count",
            "rows_scanned",
        ):
            object.__setattr__(self, name, _to_non_negative_int(getattr(self, name), name))
        object.__setattr__(self, "confidence", _to_confidence(self.confidence))
        if self.data_end_row < self.data_start_row:
            raise ValueError("data_end_row must be >= data_start_row")

    def to_dict(self) -> dict[str, Any]:
        return {
            "header_row_index": self.header_row_index,
            "data_start_row": self.data_start_row,
            "data_end_row": self.data_end_row,
            "value_column": self.value_column,
            "date_column": self.date_column,
            "document_ref_column": self.document_ref_column,
            "supplier_column": self.supplier_column,
            "confidence": round(self.confidence, 4),
            "header_score": self.header_score,
            "column_count": self.column_count,
            "valid_data_row_count": self.valid_data_row_count,
            "rows_scanned": self.rows_scanned,
            "average_row_length": round(self.average_row_length, 2),
        }


@dataclass(frozen=True)
class DiagnosticSamples:
    """Bounded row samples kept for observability only."""

    successes: tuple[dict[str, Any], ...] = ()
    failures: tuple[dict[str, Any], ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "successes": [dict(item) for item in self.successes],
            "failures": [dict(item) for item in self.failures],
        }


@dataclass(frozen=True)
class FileExtractionResult:
    """Everything recovered from one file.

    ``fiscal_month``/``fiscal_year`` come from the first successfully parsed
    row; ``monthly_amounts`` spreads each row into the month of its own date.
    """

    document_category: DocumentCategory
    fiscal_month: int
    fiscal_year: int
    total_amount: float
    processed_row_count: int
    skipped_row_count: int
    monthly_amounts: tuple[float, ...] = (0.0,) * MONTHS_PER_YEAR
    date_fallback_count: int = 0
    diagnostic_samples: DiagnosticSamples = field(default_factory=DiagnosticSamples)
    structure: StructureCandidate | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "document_category", DocumentCategory(self.document_category)
        )
        for name in ("fiscal_year", "processed_row_count", "skipped_row_count", "date_fallback_count"):
            object.__setattr__(self, name, _to_non_negative_int(getattr(self, name), name))
        month = _to_non_negative_int(self.fiscal_month, "fiscal_month")
        if month >= MONTHS_PER_YEAR:
            raise ValueError("fiscal_month must be within [0, 11]")
        object.__setattr__(self, "fiscal_month", month)
        if self.total_amount < 0:
            raise ValueError("total_amount must be >= 0")
        if len(self.monthly_amounts) != MONTHS_PER_YEAR:
            raise ValueError("monthly_amounts must have 12 entries")
        object.__setattr__(self, "monthly_amounts", tuple(self.monthly_amounts))

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_category": self.document_category.value,
            "fiscal_month": self.fiscal_month,
            "fiscal_year": self.fiscal_year,
            "total_amount": round(self.total_amount, 2),
            "processed_row_count": self.processed_row_count,
            "skipped_row_count": self.skipped_row_count,
            "date_fallback_count": self.date_fallback_count,
            "monthly_amounts": [round(amount, 2) for amount in self.monthly_amounts],
        }


@dataclass
class FileOutcome:
    """Per-file result as handed to the response serializer."""

    filename: str
    success: bool
    result: FileExtractionResult | None = None
    error_kind: str = ""
    message: str = ""
    diagnostics: dict[str, Any] = field(default_factory=dict)
    sha256: str = ""
    size_bytes: int = 0

    def __post_init__(self) -> None:
        self.size_bytes = _to_non_negative_int(self.size_bytes, "size_bytes")
        if self.success and self.result is None:
            raise ValueError("successful outcomes must carry a result")
        if not self.success and self.result is not None:
            raise ValueError("failed outcomes must not carry a result")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "filename": self.filename,
            "success": self.success,
            "sha256": self.sha256,
            "size_bytes": self.size_bytes,
            "diagnostics": dict(self.diagnostics),
        }
        if self.result is not None:
            payload.update(self.result.to_dict())
        else:
            payload.update(
                {
                    "error_kind": self.error_kind,
                    "message": self.message,
                    "document_category": None,
                    "fiscal_month": None,
                    "fiscal_year": None,
                    "total_amount": 0.0,
                    "processed_row_count": 0,
                    "skipped_row_count": 0,
                }
            )
        return payload
