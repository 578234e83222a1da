from __future__ import annotations

import io
from collections.abc import Sequence
from typing import Any

import pytest
from openpyxl import Workbook

HEADER = ["Comprobante", "Fecha Elaboración", "Valor"]


def build_rows(count: int, *, start: int = 1) -> list[list[Any]]:
    return [
        [f"FC-{i}", f"{(i % 28) + 1:02d}/01/2024", f"{i}.000,00"]
        for i in range(start, start + count)
    ]


def xlsx_bytes(rows: Sequence[Sequence[Any]], *, extra_sheet: bool = False) -> bytes:
    wb = Workbook()
    ws = wb.active
    assert ws is not None
    for row in rows:
        ws.append(list(row))
    if extra_sheet:
        other = wb.create_sheet("Otra")
        other.append(["Valor"])
        other.append(["999.999"])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def siigo_rows() -> list[list[Any]]:
    return [
        HEADER,
        ["FC-1", "15/01/2024", "1.500.000"],
        ["FC-2", "20/01/2024", "2.300.500,50"],
    ]
