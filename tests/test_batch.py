from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any

import pytest
from conftest import HEADER, build_rows, xlsx_bytes

from voucher_rescue.batch import (
    BatchContext,
    check_batch_limits,
    extract_file,
    extract_grid,
    process_batch,
    process_paths,
)
from voucher_rescue.config import ExtractionSettings
from voucher_rescue.errors import BatchLimitExceeded, LowConfidence, StructureNotFound
from voucher_rescue.io import load_grid
from voucher_rescue.models import DocumentCategory
from voucher_rescue.utils import sha256_bytes


def _grid_loader(grid: list[list[Any]]):
    def load(data: bytes, filename: str) -> list[list[Any]]:
        del data, filename
        return grid

    return load


# ── Single file ──────────────────────────────────────────────────


def test_extract_file_end_to_end(siigo_rows: list[list[Any]]) -> None:
    data = xlsx_bytes(siigo_rows)
    ctx = BatchContext()

    outcome = extract_file(data, "FC-0012.xlsx", ctx)

    assert outcome.success is True
    assert outcome.result is not None
    assert outcome.result.document_category is DocumentCategory.FC
    assert outcome.result.fiscal_month == 0
    assert outcome.result.fiscal_year == 2024
    assert outcome.result.total_amount == pytest.approx(3_800_500.50)
    assert outcome.result.processed_row_count == 2
    assert outcome.result.skipped_row_count == 0
    assert outcome.sha256 == sha256_bytes(data)
    assert outcome.size_bytes == len(data)
    assert "structure" in outcome.diagnostics
    assert ctx.reducer.series[DocumentCategory.FC].total == pytest.approx(3_800_500.50)


def test_extract_file_reads_csv_exports() -> None:
    text = "Comprobante;Fecha;Valor\nRP-1;05/07/2024;$ 12.500\nRP-2;06/07/2024;7.500\n"
    outcome = extract_file(text.encode("utf-8"), "recibos.csv", BatchContext())

    assert outcome.success is True
    assert outcome.result is not None
    assert outcome.result.document_category is DocumentCategory.RP
    assert outcome.result.fiscal_month == 6
    assert outcome.result.total_amount == pytest.approx(20_000)


def test_missing_structure_is_a_file_failure() -> None:
    ctx = BatchContext(loader=_grid_loader([["nombre", "otro"], ["x", "y"]]))

    outcome = extract_file(b"ignored", "FC-1.xlsx", ctx)

    assert outcome.success is False
    assert outcome.result is None
    assert outcome.error_kind == "structure_not_found"
    assert outcome.diagnostics["rows"] == 2
    assert outcome.diagnostics["sample_rows"][0] == ["nombre", "otro"]


def test_low_confidence_is_a_file_failure(siigo_rows: list[list[Any]]) -> None:
    ctx = BatchContext(
        settings=ExtractionSettings(min_confidence=0.99),
        loader=_grid_loader(siigo_rows),
    )

    outcome = extract_file(b"ignored", "FC-1.xlsx", ctx)

    assert outcome.error_kind == "low_confidence"
    assert outcome.diagnostics["candidates"][0]["header_row_index"] == 0
    assert ctx.best_structure is not None


def test_undecodable_bytes_become_no_valid_rows() -> None:
    outcome = extract_file(b"\x00\x01\x02garbage", "broken.xlsx", BatchContext())

    assert outcome.success is False
    assert outcome.error_kind == "no_valid_rows"
    assert "decode_error" in outcome.diagnostics


def test_unsupported_extension_becomes_no_valid_rows() -> None:
    outcome = extract_file(b"%PDF-1.4", "report.pdf", BatchContext())

    assert outcome.error_kind == "no_valid_rows"
    assert "Unsupported file type" in outcome.message


def test_oversized_file_fails_before_parsing() -> None:
    calls: list[str] = []

    def loader(data: bytes, filename: str) -> list[list[Any]]:
        calls.append(filename)
        return []

    ctx = BatchContext(settings=ExtractionSettings(max_file_bytes=10), loader=loader)

    outcome = extract_file(b"x" * 11, "FC-big.xlsx", ctx)

    assert outcome.error_kind == "file_too_large"
    assert outcome.diagnostics == {"size_bytes": 11, "max_file_bytes": 10}
    assert calls == []


def test_failed_file_leaves_accumulator_untouched() -> None:
    ctx = BatchContext(loader=_grid_loader([[HEADER[2]], ["---"], ["n/a"]]))

    outcome = extract_file(b"ignored", "FC-1.xlsx", ctx)

    assert outcome.success is False
    assert ctx.reducer.grand_total == 0
    assert all(series.row_count == 0 for series in ctx.reducer.series.values())


def test_failures_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="voucher_rescue")

    extract_file(b"", "FC-empty.xlsx", BatchContext())

    assert "FC-empty.xlsx failed (no_valid_rows)" in caplog.text


def test_extract_grid_raises_typed_errors(siigo_rows: list[list[Any]]) -> None:
    with pytest.raises(StructureNotFound):
        extract_grid([["a", "b"], [1, 2]], "x.xlsx", BatchContext())
    with pytest.raises(LowConfidence):
        extract_grid(
            siigo_rows, "x.xlsx", BatchContext(settings=ExtractionSettings(min_confidence=1.0))
        )


def test_date_fallback_uses_injected_clock() -> None:
    grid = [HEADER, ["DS-1", "pendiente", "1.000"]]
    ctx = BatchContext(today=lambda: date(2025, 11, 3), loader=_grid_loader(grid))

    outcome = extract_file(b"ignored", "DS-1.xlsx", ctx)

    assert outcome.result is not None
    assert (outcome.result.fiscal_month, outcome.result.fiscal_year) == (10, 2025)
    assert outcome.result.date_fallback_count == 1


# ── Batches ──────────────────────────────────────────────────────


def test_batch_sums_categories_and_isolates_failures(siigo_rows: list[list[Any]]) -> None:
    nd_rows = [HEADER, ["ND-1", "03/02/2024", "1.000,00"]]
    files = [
        ("FC-0012.xlsx", xlsx_bytes(siigo_rows)),
        ("broken.xlsx", b"\x00garbage"),
        ("ND-0001.xlsx", xlsx_bytes(nd_rows)),
    ]

    report = process_batch(files)

    assert [outcome.filename for outcome in report.outcomes] == [name for name, _ in files]
    assert report.files_succeeded == 2
    assert report.files_failed == 1
    assert float(report.grand_total) == pytest.approx(3_801_500.50)
    nd = report.reducer.series[DocumentCategory.ND]
    assert float(nd.months[1]) == pytest.approx(1000)
    assert report.best_structure is not None
    assert report.elapsed_seconds >= 0
    assert report.peak_memory_bytes >= 0


def test_batches_do_not_share_state(siigo_rows: list[list[Any]]) -> None:
    files = [("FC-0012.xlsx", xlsx_bytes(siigo_rows))]

    first = process_batch(files)
    second = process_batch(files)

    assert first.reducer is not second.reducer
    assert first.grand_total == second.grand_total


def test_batch_order_does_not_change_totals() -> None:
    files = [
        (f"FC-{i}.xlsx", xlsx_bytes([HEADER, *build_rows(3, start=i * 10)]))
        for i in range(1, 5)
    ]

    forward = process_batch(files)
    backward = process_batch(list(reversed(files)))

    assert forward.grand_total == backward.grand_total
    assert forward.reducer.to_dict() == backward.reducer.to_dict()


def test_batch_limits() -> None:
    settings = ExtractionSettings(max_files=2)
    with pytest.raises(BatchLimitExceeded, match="No files"):
        check_batch_limits([], settings)
    with pytest.raises(BatchLimitExceeded, match="limit is 2"):
        process_batch([("a.xlsx", b"x")] * 3, settings)


def test_report_to_dict(siigo_rows: list[list[Any]]) -> None:
    report = process_batch([("FC-0012.xlsx", xlsx_bytes(siigo_rows))])

    payload = report.to_dict()

    assert payload["tool"] == "voucher-rescue"
    assert payload["files_succeeded"] == 1
    assert payload["files_failed"] == 0
    assert payload["grand_total"] == pytest.approx(3_800_500.50)
    assert set(payload["series"]) == {"FC", "ND", "DS", "RP"}
    file_payload = payload["files"][0]
    assert file_payload["document_category"] == "FC"
    assert file_payload["fiscal_month"] == 0


def test_overlong_digit_cell_is_skipped_and_report_serializes() -> None:
    rows = [
        HEADER,
        ["FC-1", "15/01/2024", "1.000"],
        ["FC-2", "16/01/2024", "9" * 400],
        ["FC-3", "17/01/2024", "9" * 30],
    ]

    report = process_batch([("FC-0001.xlsx", xlsx_bytes(rows))])
    payload = report.to_dict()

    result = report.outcomes[0].result
    assert result is not None
    assert result.processed_row_count == 2
    assert result.skipped_row_count == 1
    assert payload["files_succeeded"] == 1
    assert payload["series"]["FC"]["total"] == pytest.approx(1000 + float("9" * 30))


# ── Batches from disk ────────────────────────────────────────────


def _count_reads(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    reads: list[str] = []
    original = Path.read_bytes

    def _counting(self: Path) -> bytes:
        reads.append(self.name)
        return original(self)

    monkeypatch.setattr(Path, "read_bytes", _counting)
    return reads


def test_process_paths_rejects_oversized_batch_without_reading(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, siigo_rows: list[list[Any]]
) -> None:
    paths = []
    for i in range(50):
        path = tmp_path / f"FC-{i}.xlsx"
        path.write_bytes(xlsx_bytes(siigo_rows))
        paths.append(path)
    reads = _count_reads(monkeypatch)

    with pytest.raises(BatchLimitExceeded, match="limit is 2"):
        process_paths(paths, ExtractionSettings(max_files=2))

    assert reads == []


def test_process_paths_fails_oversized_file_from_its_size(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, siigo_rows: list[list[Any]]
) -> None:
    good = tmp_path / "FC-0012.xlsx"
    good.write_bytes(xlsx_bytes(siigo_rows))
    limit = good.stat().st_size
    big = tmp_path / "FC-big.xlsx"
    big.write_bytes(b"x" * (limit + 1))
    reads = _count_reads(monkeypatch)

    report = process_paths([big, good], ExtractionSettings(max_file_bytes=limit))

    assert reads == ["FC-0012.xlsx"]
    assert report.outcomes[0].error_kind == "file_too_large"
    assert report.outcomes[0].diagnostics["size_bytes"] == limit + 1
    assert report.outcomes[1].success is True


def test_process_paths_reads_files_in_order_one_at_a_time(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, siigo_rows: list[list[Any]]
) -> None:
    paths = []
    for name in ("FC-0012.xlsx", "ND-0001.xlsx"):
        path = tmp_path / name
        path.write_bytes(xlsx_bytes(siigo_rows))
        paths.append(path)
    reads = _count_reads(monkeypatch)
    loaded: list[tuple[str, list[str]]] = []

    def _loader(data: bytes, filename: str) -> Any:
        loaded.append((filename, list(reads)))
        return load_grid(data, filename)

    report = process_paths(paths, ctx=BatchContext(loader=_loader))

    assert report.files_succeeded == 2
    assert loaded == [
        ("FC-0012.xlsx", ["FC-0012.xlsx"]),
        ("ND-0001.xlsx", ["FC-0012.xlsx", "ND-0001.xlsx"]),
    ]
