"""Presentation checks for ledger rows and for the dead region below TOTAL."""

from __future__ import annotations

import logging

from ledger_doctor.config import LedgerConfig
from ledger_doctor.grid import BLACK, DEFAULT_FONT_FAMILY, DEFAULT_FONT_SIZE, WHITE, CellSnapshot, GridAccessor, StyleContract
from ledger_doctor.issues import Issue, build_issue
from ledger_doctor.parser import LedgerTree
from ledger_doctor.roles import Role
from ledger_doctor.rules import LEDGER_WIDTH, OPTIONAL_STYLE_COLUMNS, ROLE_STYLES

logger = logging.getLogger(__name__)

TEXT_FLAGS = (
    ("bold", "bold"),
    ("italic", "italic"),
    ("underline", "underline"),
    ("strikethrough", "strikethrough"),
)


def pristine_violations(cell: CellSnapshot) -> list[tuple[str, str]]:
    """Every way ``cell`` differs from an untouched default cell, as (code, message).

    A cell holding a value or formula reports only that; its formatting is not checked.
    """
    if cell.has_content:
        return [("cell_not_empty", "Cell contains value or formula")]

    style = cell.style
    found = []
    for attribute, label in TEXT_FLAGS:
        if getattr(style, attribute):
            found.append(("text_styling", f"Cell has {label} formatting"))
    if style.font_family != DEFAULT_FONT_FAMILY:
        found.append(("font_family", f"Wrong font family: {style.font_family} (should be {DEFAULT_FONT_FAMILY})"))
    if style.font_size != DEFAULT_FONT_SIZE:
        found.append(("font_size", f"Wrong font size: {_size(style.font_size)} (should be {DEFAULT_FONT_SIZE})"))
    if style.font_color != BLACK:
        found.append(("font_color", f"Wrong font color: {style.font_color} (should be {BLACK})"))
    if style.horizontal != "center":
        found.append(("alignment", "Cell is not center-aligned horizontally"))
    if style.vertical != "middle":
        found.append(("alignment", "Cell is not center-aligned vertically"))
    if style.background != WHITE:
        found.append(("background", f"Wrong background color: {style.background} (should be {WHITE})"))
    if cell.note:
        found.append(("note", "Cell contains note"))
    if cell.validation is not None:
        found.append(("data_validation", "Cell contains data validation"))
    if cell.hyperlink:
        found.append(("hyperlink", "Cell contains hyperlink"))
    if cell.conditional_format:
        found.append(("conditional_format", "Cell has conditional formatting"))
    if cell.drawing:
        found.append(("drawing", "Cell contains drawing or image"))
    return found


def is_pristine(cell: CellSnapshot) -> bool:
    return not pristine_violations(cell)


def _size(size) -> str:
    if isinstance(size, float) and size.is_integer():
        return str(int(size))
    return str(size)


def contract_violations(cell: CellSnapshot, expected: StyleContract) -> list[tuple[str, str]]:
    style = cell.style
    found = []
    if style.font_family != expected.font_family:
        found.append(("font_family", f"Wrong font family (should be {expected.font_family})"))
    if style.font_size != expected.font_size:
        found.append(("font_size", f"Wrong font size (should be {_size(expected.font_size)})"))
    if style.bold != expected.bold:
        found.append(("text_styling", "Should be bold" if expected.bold else "Should not be bold"))
    if style.italic != expected.italic:
        found.append(("text_styling", "Should be italic" if expected.italic else "Should not be italic"))
    if style.underline != expected.underline:
        found.append(("text_styling", "Should be underlined" if expected.underline else "Should not be underlined"))
    if style.strikethrough != expected.strikethrough:
        found.append(("text_styling", "Should be strikethrough" if expected.strikethrough else "Should not be strikethrough"))
    if style.horizontal != expected.horizontal:
        found.append(("alignment", f"Wrong horizontal alignment (should be {expected.horizontal})"))
    if style.vertical != expected.vertical:
        found.append(("alignment", f"Wrong vertical alignment (should be {expected.vertical})"))
    return found


def check_cell(cell: CellSnapshot, expected: StyleContract) -> list[Issue]:
    return [build_issue(code, cell.coordinate, message) for code, message in contract_violations(cell, expected)]


def validate_row_style(grid: GridAccessor, row: int, role: Role) -> list[Issue]:
    contracts = ROLE_STYLES.get(role, {})
    optional = OPTIONAL_STYLE_COLUMNS.get(role, frozenset())
    issues = []
    for cell in grid.get_row(row, LEDGER_WIDTH):
        expected = contracts.get(cell.column)
        if expected is None:
            continue
        if cell.column in optional and not cell.has_content:
            continue
        issues.extend(check_cell(cell, expected))
    return issues


def scan_dead_region(grid: GridAccessor, total_row: int, config: LedgerConfig | None = None) -> list[Issue]:
    """Apply the pristine predicate to A..F from the row after TOTAL down to the fixed end row."""
    config = config or LedgerConfig()
    start = total_row + 1
    if start > config.dead_region_end:
        return []
    block = grid.get_range(start, 1, config.dead_region_end - start + 1, LEDGER_WIDTH)
    issues = []
    for cells in block:
        for cell in cells:
            for code, message in pristine_violations(cell):
                issues.append(build_issue(code, cell.coordinate, message))
    logger.debug("Dead region %d:%d produced %d issue(s)", start, config.dead_region_end, len(issues))
    return issues


def validate_style(tree: LedgerTree, grid: GridAccessor, config: LedgerConfig | None = None) -> list[Issue]:
    issues = []
    for row, role in tree.role_rows():
        issues.extend(validate_row_style(grid, row, role))
    issues.extend(scan_dead_region(grid, tree.total_row, config))
    return issues
