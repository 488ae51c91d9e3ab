"""Workbook builders shared by the ledger-doctor test modules."""

from __future__ import annotations

from pathlib import Path

from openpyxl import Workbook

from ledger_doctor.config import DEFAULT_SHEET_NAME
from ledger_doctor.engine import restore_workbook
from ledger_doctor.grid import GridAccessor

SHEET = DEFAULT_SHEET_NAME

# Rows 2..6: one group with two sub-items, its subtotal and the TOTAL row.
WELL_FORMED = [
    ["Bank Accounts"],
    ["- Bank 1", 1111, "RUB", 87.03, "=B3/D3", "Active funds"],
    ["- Bank 2", 11, "RUB", 87.03, "=B4/D4"],
    ["Subtotal:", "=SUM(E3:E4)", "USD"],
    ["TOTAL:", "=SUM(B5)", "USD"],
]


def write_rows(worksheet, rows: list[list], first_row: int = 2) -> None:
    for offset, values in enumerate(rows):
        for col, value in enumerate(values, start=1):
            if value is not None:
                worksheet.cell(row=first_row + offset, column=col, value=value)


def ledger_workbook(rows: list[list] | None = None) -> Workbook:
    workbook = Workbook()
    workbook.active.title = SHEET
    write_rows(workbook.active, WELL_FORMED if rows is None else rows)
    return workbook


def restored_workbook(rows: list[list] | None = None) -> Workbook:
    workbook = ledger_workbook(rows)
    restore_workbook(workbook)
    return workbook


def grid_of(workbook) -> GridAccessor:
    return GridAccessor(workbook[SHEET])


def save(workbook, folder: str | Path, name: str = "ledger.xlsx") -> Path:
    path = Path(folder) / name
    workbook.save(path)
    return path


def codes(issues) -> list[str]:
    return [issue.code for issue in issues]
