"""Per-file and batch-level error types.

Per-file errors never abort a batch: they are caught at the file boundary
and turned into a failed :class:`~voucher_rescue.models.FileOutcome`.
"""

from __future__ import annotations

from typing import Any


class ExtractionError(Exception):
    """Base class for non-fatal, per-file extraction failures."""

    kind = "extraction_error"

    def __init__(self, message: str, diagnostics: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.diagnostics: dict[str, Any] = dict(diagnostics or {})


class StructureNotFound(ExtractionError):
    """No header row cleared the minimum score with usable data below it."""

    kind = "structure_not_found"


class LowConfidence(ExtractionError):
    """A structure was found but its confidence is below the threshold."""

    kind = "low_confidence"


class NoValidRows(ExtractionError):
    """The structure was accepted but no row yielded a usable amount."""

    kind = "no_valid_rows"


class FileTooLarge(ExtractionError):
    kind = "file_too_large"


class GridDecodeError(ValueError):
    """The spreadsheet bytes could not be read by any strategy."""


class BatchLimitExceeded(ValueError):
    """The batch was rejected before any file was parsed."""
