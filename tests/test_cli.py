"""CLI integration tests for voucher-rescue."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from conftest import HEADER, xlsx_bytes
from openpyxl import load_workbook
from typer.testing import CliRunner

import voucher_rescue.cli as cli_mod
from voucher_rescue import __version__
from voucher_rescue.cli import app

runner = CliRunner()


def _write_xlsx(tmp_path: Path, name: str, rows: list[list[Any]]) -> Path:
    path = tmp_path / name
    path.write_bytes(xlsx_bytes(rows))
    return path


def test_version() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_run_writes_artifacts(tmp_path: Path, siigo_rows: list[list[Any]]) -> None:
    fc = _write_xlsx(tmp_path, "FC-0012.xlsx", siigo_rows)
    nd = _write_xlsx(tmp_path, "ND-0001.xlsx", [HEADER, ["ND-1", "03/02/2024", "1.000"]])
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["run", str(fc), str(nd), "--out-dir", str(out_dir), "--quiet"])

    assert result.exit_code == 0, result.output
    report = json.loads((out_dir / "batch_report.json").read_text(encoding="utf-8"))
    assert report["files_succeeded"] == 2
    assert report["grand_total"] == 3_801_500.5
    assert [item["document_category"] for item in report["files"]] == ["FC", "ND"]
    wb = load_workbook(out_dir / "Monthly_Report.xlsx")
    assert wb.sheetnames == ["Monthly", "Files"]


def test_run_partial_failure_still_succeeds(tmp_path: Path, siigo_rows: list[list[Any]]) -> None:
    good = _write_xlsx(tmp_path, "FC-0012.xlsx", siigo_rows)
    bad = tmp_path / "broken.csv"
    bad.write_text("a,b\n1,2\n", encoding="utf-8")
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["run", str(good), str(bad), "-o", str(out_dir)])

    assert result.exit_code == 0, result.output
    report = json.loads((out_dir / "batch_report.json").read_text(encoding="utf-8"))
    assert report["files_failed"] == 1
    assert report["files"][1]["error_kind"] == "structure_not_found"
    assert "Batch Complete" in result.output


def test_run_exits_2_when_every_file_fails(tmp_path: Path) -> None:
    bad = tmp_path / "broken.csv"
    bad.write_text("a,b\n1,2\n", encoding="utf-8")
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["run", str(bad), "-o", str(out_dir), "-q"])

    assert result.exit_code == 2
    assert (out_dir / "batch_report.json").exists()


def test_run_rejects_oversized_batch(tmp_path: Path, siigo_rows: list[list[Any]]) -> None:
    files = [str(_write_xlsx(tmp_path, f"FC-{i}.xlsx", siigo_rows)) for i in range(3)]
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["run", *files, "-o", str(out_dir), "-q"], env={"VRESCUE_MAX_FILES": "2"}
    )

    assert result.exit_code == 2
    report = json.loads((out_dir / "batch_report.json").read_text(encoding="utf-8"))
    assert "limit is 2" in report["error"]
    assert not (out_dir / "Monthly_Report.xlsx").exists()


def test_run_rejects_invalid_settings(tmp_path: Path, siigo_rows: list[list[Any]]) -> None:
    fc = _write_xlsx(tmp_path, "FC-0012.xlsx", siigo_rows)

    result = runner.invoke(app, ["run", str(fc), "--min-year", "2040", "-q"])

    assert result.exit_code == 2
    assert "Invalid settings" in result.output


def test_run_reports_internal_errors(
    tmp_path: Path, siigo_rows: list[list[Any]], monkeypatch
) -> None:  # type: ignore[no-untyped-def]
    fc = _write_xlsx(tmp_path, "FC-0012.xlsx", siigo_rows)

    def _boom(*args: object, **kwargs: object) -> Path:
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(cli_mod, "write_report", _boom)

    result = runner.invoke(app, ["run", str(fc), "-o", str(tmp_path / "out"), "-q"])

    assert result.exit_code == 1
    assert "disk on fire" in result.output


def test_inspect_shows_candidates(tmp_path: Path, siigo_rows: list[list[Any]]) -> None:
    fc = _write_xlsx(tmp_path, "FC-0012.xlsx", siigo_rows)

    result = runner.invoke(app, ["inspect", str(fc)])

    assert result.exit_code == 0, result.output
    assert "filename_prefix" in result.output
    assert "Structure candidates" in result.output


def test_inspect_without_structure_exits_2(tmp_path: Path) -> None:
    path = tmp_path / "notes.csv"
    path.write_text("a,b\n1,2\n", encoding="utf-8")

    result = runner.invoke(app, ["inspect", str(path)])

    assert result.exit_code == 2
    assert "No structure candidate" in result.output


def test_inspect_unreadable_file_exits_2(tmp_path: Path) -> None:
    path = tmp_path / "notes.pdf"
    path.write_bytes(b"%PDF")

    result = runner.invoke(app, ["inspect", str(path)])

    assert result.exit_code == 2
    assert "Unsupported file type" in result.output


def test_run_rejects_oversized_batch_before_reading_any_file(
    tmp_path: Path, siigo_rows: list[list[Any]], monkeypatch
) -> None:  # type: ignore[no-untyped-def]
    files = [str(_write_xlsx(tmp_path, f"FC-{i}.xlsx", siigo_rows)) for i in range(5)]
    reads: list[str] = []
    original = Path.read_bytes

    def _counting(self: Path) -> bytes:
        reads.append(self.name)
        return original(self)

    monkeypatch.setattr(Path, "read_bytes", _counting)

    result = runner.invoke(app, ["run", *files, "-o", str(tmp_path / "out"), "--max-files", "3"])

    assert result.exit_code == 2
    assert reads == []
