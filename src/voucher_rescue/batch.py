"""Batch orchestration — one file at a time, merged only on success."""

from __future__ import annotations

import logging
import time
import tracemalloc
from collections.abc import Callable, Iterator, Sequence, Sized
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

from voucher_rescue import __version__
from voucher_rescue.aggregate import AggregationReducer
from voucher_rescue.classify import CONTENT_SAMPLE_ROWS, DocumentClassifier
from voucher_rescue.config import ExtractionSettings
from voucher_rescue.currency import CurrencyParser
from voucher_rescue.dates import DateParser
from voucher_rescue.errors import (
    BatchLimitExceeded,
    ExtractionError,
    FileTooLarge,
    GridDecodeError,
    LowConfidence,
    NoValidRows,
    StructureNotFound,
)
from voucher_rescue.io import RawGrid, load_grid
from voucher_rescue.models import FileExtractionResult, FileOutcome, StructureCandidate
from voucher_rescue.rows import RowProcessor
from voucher_rescue.structure import StructureDetector
from voucher_rescue.utils import sha256_bytes, utcnow_iso

logger = logging.getLogger(__name__)

GridLoader = Callable[[bytes, str], RawGrid]


@dataclass
class BatchContext:
    """Everything one batch request shares: parsers, limits and the accumulator.

    ``best_structure`` remembers the highest-confidence candidate seen so far
    in this batch; it is reported, never reused for detection.
    """

    settings: ExtractionSettings = field(default_factory=ExtractionSettings)
    today: Callable[[], date] = date.today
    loader: GridLoader = load_grid
    reducer: AggregationReducer = field(default_factory=AggregationReducer)
    best_structure: StructureCandidate | None = None

    def __post_init__(self) -> None:
        self.currency = CurrencyParser()
        self.dates = DateParser(self.settings.min_year, self.settings.max_year)
        self.classifier = DocumentClassifier()
        self.detector = StructureDetector(self.currency, self.settings)
        self.rows = RowProcessor(self.currency, self.dates, self.settings, today=self.today)

    def remember(self, candidate: StructureCandidate) -> None:
        if self.best_structure is None or candidate.confidence > self.best_structure.confidence:
            self.best_structure = candidate


def extract_grid(
    grid: Sequence[Sequence[Any]], filename: str, ctx: BatchContext
) -> FileExtractionResult:
    """Run detection and row processing on an already loaded grid.

    Raises
    ------
    StructureNotFound, LowConfidence, NoValidRows
        Per-file failures; the caller decides how to report them.
    """
    category = ctx.classifier.classify(filename, grid[:CONTENT_SAMPLE_ROWS])
    candidates = ctx.detector.detect(grid)
    if not candidates:
        raise StructureNotFound(
            "No header row with a value column and usable data was found",
            {
                "rows": len(grid),
                "header_rows_scanned": min(ctx.settings.header_rows, len(grid)),
                "sample_rows": [[_preview(cell) for cell in row] for row in grid[:5]],
            },
        )

    best = candidates[0]
    ctx.remember(best)
    if best.confidence < ctx.settings.min_confidence:
        raise LowConfidence(
            f"Best structure confidence {best.confidence:.2f} is below "
            f"{ctx.settings.min_confidence:.2f}",
            {"candidates": [candidate.to_dict() for candidate in candidates[:3]]},
        )

    return ctx.rows.process(grid, best, category)


def _preview(cell: Any) -> Any:
    if cell is None or isinstance(cell, (str, int, float, bool)):
        return cell
    return str(cell)


def _too_large(size: int, settings: ExtractionSettings) -> FileTooLarge:
    return FileTooLarge(
        f"File is {size} bytes; the limit is {settings.max_file_bytes}",
        {"size_bytes": size, "max_file_bytes": settings.max_file_bytes},
    )


def _failed(filename: str, exc: ExtractionError, *, sha256: str, size: int) -> FileOutcome:
    logger.warning("%s failed (%s): %s", filename, exc.kind, exc.message)
    return FileOutcome(
        filename=filename,
        success=False,
        error_kind=exc.kind,
        message=exc.message,
        diagnostics=exc.diagnostics,
        sha256=sha256,
        size_bytes=size,
    )


def extract_file(data: bytes, filename: str, ctx: BatchContext) -> FileOutcome:
    """Process one uploaded file; every per-file failure becomes an outcome.

    The batch accumulator is only touched after the file fully succeeded.
    """
    digest = sha256_bytes(data)
    size = len(data)
    try:
        if size > ctx.settings.max_file_bytes:
            raise _too_large(size, ctx.settings)
        try:
            grid = ctx.loader(data, filename)
        except GridDecodeError as exc:
            raise NoValidRows(f"File could not be read: {exc}", {"decode_error": str(exc)}) from exc
        result = extract_grid(grid, filename, ctx)
        del grid
    except ExtractionError as exc:
        return _failed(filename, exc, sha256=digest, size=size)

    ctx.reducer.add(result)
    logger.info(
        "%s: %s %02d/%d total=%.2f rows=%d skipped=%d",
        filename,
        result.document_category.value,
        result.fiscal_month + 1,
        result.fiscal_year,
        result.total_amount,
        result.processed_row_count,
        result.skipped_row_count,
    )
    diagnostics: dict[str, Any] = {"samples": result.diagnostic_samples.to_dict()}
    if result.structure is not None:
        diagnostics["structure"] = result.structure.to_dict()
    return FileOutcome(
        filename=filename,
        success=True,
        result=result,
        diagnostics=diagnostics,
        sha256=digest,
        size_bytes=size,
    )


@dataclass
class BatchReport:
    """Aggregate view of one batch request."""

    outcomes: list[FileOutcome]
    reducer: AggregationReducer
    elapsed_seconds: float = 0.0
    peak_memory_bytes: int = 0
    created_at_utc: str = ""
    best_structure: StructureCandidate | None = None

    @property
    def files_succeeded(self) -> int:
        return sum(outcome.success for outcome in self.outcomes)

    @property
    def files_failed(self) -> int:
        return len(self.outcomes) - self.files_succeeded

    @property
    def grand_total(self) -> Decimal:
        return self.reducer.grand_total

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": "voucher-rescue",
            "version": __version__,
            "created_at_utc": self.created_at_utc,
            "files_succeeded": self.files_succeeded,
            "files_failed": self.files_failed,
            "grand_total": round(float(self.grand_total), 2),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "peak_memory_bytes": self.peak_memory_bytes,
            "best_structure": self.best_structure.to_dict() if self.best_structure else None,
            "files": [outcome.to_dict() for outcome in self.outcomes],
            "series": self.reducer.to_dict(),
        }


def check_batch_limits(files: Sized, settings: ExtractionSettings) -> None:
    """Reject a batch before anything is read or parsed."""
    if not len(files):
        raise BatchLimitExceeded("No files were provided")
    if len(files) > settings.max_files:
        raise BatchLimitExceeded(
            f"Batch has {len(files)} files; the limit is {settings.max_files}"
        )


def _extract_buffers(
    files: Sequence[tuple[str, bytes]], ctx: BatchContext
) -> Iterator[FileOutcome]:
    for filename, data in files:
        yield extract_file(data, filename, ctx)


def _extract_paths(paths: Sequence[Path], ctx: BatchContext) -> Iterator[FileOutcome]:
    for path in paths:
        size = path.stat().st_size
        if size > ctx.settings.max_file_bytes:
            yield _failed(path.name, _too_large(size, ctx.settings), sha256="", size=size)
            continue
        yield extract_file(path.read_bytes(), path.name, ctx)


def _run(outcomes: Iterator[FileOutcome], ctx: BatchContext) -> BatchReport:
    owns_tracing = not tracemalloc.is_tracing()
    if owns_tracing:
        tracemalloc.start()
    started = time.perf_counter()
    try:
        collected = list(outcomes)
        _current, peak = tracemalloc.get_traced_memory()
    finally:
        if owns_tracing:
            tracemalloc.stop()

    return BatchReport(
        outcomes=collected,
        reducer=ctx.reducer,
        elapsed_seconds=time.perf_counter() - started,
        peak_memory_bytes=peak,
        created_at_utc=utcnow_iso(),
        best_structure=ctx.best_structure,
    )


def process_batch(
    files: Sequence[tuple[str, bytes]],
    settings: ExtractionSettings | None = None,
    *,
    ctx: BatchContext | None = None,
) -> BatchReport:
    """Extract every in-memory ``(filename, data)`` pair sequentially."""
    ctx = ctx or BatchContext(settings=settings or ExtractionSettings())
    check_batch_limits(files, ctx.settings)
    return _run(_extract_buffers(files, ctx), ctx)


def process_paths(
    paths: Sequence[Path],
    settings: ExtractionSettings | None = None,
    *,
    ctx: BatchContext | None = None,
) -> BatchReport:
    """Extract files from disk, reading each one only when its turn comes.

    The file count is checked before any file is touched, and a file over
    ``max_file_bytes`` fails from its size on disk without being read.

    Raises
    ------
    BatchLimitExceeded
        If the batch is empty or has more than ``max_files`` files.
    OSError
        If a file cannot be stat'ed or read.
    """
    ctx = ctx or BatchContext(settings=settings or ExtractionSettings())
    check_batch_limits(paths, ctx.settings)
    return _run(_extract_paths(paths, ctx), ctx)
