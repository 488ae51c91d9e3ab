"""Rebuild the group / sub-item / subtotal tree from column A of the ledger sheet."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ledger_doctor.config import LedgerConfig
from ledger_doctor.grid import GridAccessor
from ledger_doctor.issues import MISSING_TOTAL_PREFIX, MULTIPLE_TOTAL_PREFIX, CriticalError
from ledger_doctor.roles import TOTAL_SENTINEL, Role, classify, is_blank

logger = logging.getLogger(__name__)


@dataclass
class SubItem:
    row: int
    name: str
    amount: Any = None
    currency: Any = None
    exchange_rate: Any = None
    converted: Any = None
    note: Any = None


@dataclass
class Group:
    name: str
    start_row: int
    sub_items: list[SubItem] = field(default_factory=list)
    end_row: int | None = None
    subtotal_row: int | None = None
    gap_rows: list[int] = field(default_factory=list)


@dataclass
class LedgerTree:
    total_row: int
    groups: list[Group] = field(default_factory=list)
    orphan_rows: list[tuple[int, Role]] = field(default_factory=list)

    def role_rows(self) -> list[tuple[int, Role]]:
        """Every classified row of the table in document order."""
        rows = [(self.total_row, Role.TOTAL)]
        for group in self.groups:
            rows.append((group.start_row, Role.GROUP_HEADER))
            rows.extend((item.row, Role.SUB_ITEM) for item in group.sub_items)
            if group.subtotal_row is not None:
                rows.append((group.subtotal_row, Role.SUBTOTAL))
        return sorted(rows, key=lambda item: item[0])


class _State(Enum):
    OUTSIDE = "outside"
    IN_HEADER = "in_header"
    IN_SUB_ITEMS = "in_sub_items"


def find_total_row(grid: GridAccessor, config: LedgerConfig | None = None) -> int:
    config = config or LedgerConfig()
    found = []
    for row in range(config.first_data_row, grid.last_row() + 1):
        if grid.worksheet.cell(row=row, column=1).value == TOTAL_SENTINEL:
            found.append(row)
    if not found:
        raise CriticalError(MISSING_TOTAL_PREFIX, code="total_missing")
    if len(found) > 1:
        rows = ", ".join(str(row) for row in found)
        raise CriticalError(f"{MULTIPLE_TOTAL_PREFIX} (rows {rows}). Only one is allowed.", code="total_multiple", location=f"A{found[1]}")
    return found[0]


def _next_non_blank(texts: list[str], index: int) -> str:
    for text in texts[index + 1:]:
        if not is_blank(text):
            return text
    return ""


def _sub_item(grid: GridAccessor, row: int, name: str) -> SubItem:
    values = [grid.worksheet.cell(row=row, column=col).value for col in range(2, 7)]
    return SubItem(row, name, *values)


def parse(grid: GridAccessor, config: LedgerConfig | None = None) -> LedgerTree:
    config = config or LedgerConfig()
    total_row = find_total_row(grid, config)
    tree = LedgerTree(total_row=total_row)
    first = config.first_data_row
    texts = grid.column_texts(first, total_row - 1)

    state = _State.OUTSIDE
    current: Group | None = None

    def close(end_row: int, subtotal_row: int | None = None) -> None:
        nonlocal current, state
        current.end_row = end_row
        current.subtotal_row = subtotal_row
        tree.groups.append(current)
        current = None
        state = _State.OUTSIDE

    for index, text in enumerate(texts):
        row = first + index
        role = classify(text, _next_non_blank(texts, index))
        if role is Role.SUBTOTAL:
            if state is _State.OUTSIDE:
                tree.orphan_rows.append((row, role))
            else:
                close(row, row)
        elif role is Role.SUB_ITEM:
            if state is _State.OUTSIDE:
                tree.orphan_rows.append((row, role))
            else:
                current.sub_items.append(_sub_item(grid, row, text))
                state = _State.IN_SUB_ITEMS
        elif is_blank(text):
            if state is not _State.OUTSIDE:
                current.gap_rows.append(row)
        else:
            if state is not _State.OUTSIDE:
                # An unprefixed row closes the open group one row above it.
                close(row - 1)
            current = Group(name=text, start_row=row)
            state = _State.IN_HEADER
    if state is not _State.OUTSIDE:
        close(total_row - 1)

    logger.debug("Parsed %d group(s) above TOTAL row %d", len(tree.groups), total_row)
    return tree
