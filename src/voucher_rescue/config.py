"""Extraction settings shared by every component of a batch."""

from __future__ import annotations

from dataclasses import dataclass
from numbers import Integral, Real

DEFAULT_MAX_FILE_BYTES = 50 * 1024 * 1024


def _positive_int(value: object, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result <= 0:
        raise ValueError(f"{field_name} must be > 0")
    return result


def _unit_float(value: object, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise TypeError(f"{field_name} must be a number")
    result = float(value)
    if not 0.0 <= result <= 1.0:
        raise ValueError(f"{field_name} must be within [0, 1]")
    return result


@dataclass(frozen=True)
class ExtractionSettings:
    """Tunable bounds for structure detection, row walking and batch limits.

    ``min_year``/``max_year`` bound the date strategies that are prone to
    day/month swaps; they are a plausibility guard, not a business rule.
    """

    scan_rows: int = 1000
    header_rows: int = 20
    min_header_score: int = 5
    min_confidence: float = 0.3
    row_batch_size: int = 500
    min_year: int = 2020
    max_year: int = 2030
    max_files: int = 12
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES

    def __post_init__(self) -> None:
        for name in (
            "scan_rows",
            "header_rows",
            "min_header_score",
            "row_batch_size",
            "min_year",
            "max_year",
            "max_files",
            "max_file_bytes",
        ):
            object.__setattr__(self, name, _positive_int(getattr(self, name), name))
        object.__setattr__(
            self, "min_confidence", _unit_float(self.min_confidence, "min_confidence")
        )
        if self.min_year > self.max_year:
            raise ValueError("min_year must be <= max_year")
