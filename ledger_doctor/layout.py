"""Sheet-level checks of the fixed layout around the ledger table.

Row 1 headers, the action block in H1:J6, the bordered regions, the separator
column G, column widths and the set of sheets allowed in the workbook.
"""

from __future__ import annotations

import logging

from openpyxl.utils import get_column_letter
from openpyxl.worksheet.cell_range import CellRange

from ledger_doctor.config import LedgerConfig, is_allowed_sheet
from ledger_doctor.grid import BLACK, BORDER_SIDES, DEFAULT_FONT_FAMILY, WHITE, CellSnapshot, GridAccessor
from ledger_doctor.issues import Issue, build_issue
from ledger_doctor.rules import (
    ACTION_COLUMN,
    ACTION_FIRST_ROW,
    ACTION_LAST_ROW,
    ACTIONS,
    BUTTON_STYLES,
    CHECKBOX_COLUMN,
    COLUMN_WIDTHS,
    HEADER_ROW,
    HEADER_STYLE,
    HEADER_VALUES,
    LEDGER_WIDTH,
    SEPARATOR_COLUMN,
)
from ledger_doctor.style import contract_violations

logger = logging.getLogger(__name__)

ACTION_WIDTH = CHECKBOX_COLUMN - ACTION_COLUMN + 1
MAIN_ANCHOR = HEADER_VALUES[0]
ACTION_ANCHOR = HEADER_VALUES[ACTION_COLUMN - 1]


def main_region(config: LedgerConfig) -> CellRange:
    return CellRange(min_col=1, min_row=HEADER_ROW, max_col=LEDGER_WIDTH, max_row=config.dead_region_end)


def action_region() -> CellRange:
    return CellRange(min_col=ACTION_COLUMN, min_row=HEADER_ROW, max_col=CHECKBOX_COLUMN, max_row=ACTION_LAST_ROW)


def locate_region(grid: GridAccessor, expected: CellRange, anchor: str) -> CellRange | None:
    """The rectangle the sheet actually holds for ``expected``.

    The region follows its header text ``anchor`` along row 1 and is cut at the
    sheet's used extent, so inserted columns or deleted rows change its shape.
    """
    extent = grid.extent
    last_col = max(extent.max_col, expected.max_col)
    columns = [col for col in range(1, last_col + 1) if grid.text_at(HEADER_ROW, col) == anchor]
    shift = columns[0] - expected.min_col if columns else 0
    min_col = expected.min_col + shift
    max_col = min(expected.max_col + shift, extent.max_col)
    max_row = min(expected.max_row, extent.max_row)
    if max_col < min_col or max_row < expected.min_row:
        return None
    return CellRange(min_col=min_col, min_row=expected.min_row, max_col=max_col, max_row=max_row)


def read_region(grid: GridAccessor, region: CellRange) -> list[list[CellSnapshot]]:
    min_col, min_row, max_col, max_row = region.bounds
    return grid.get_range(min_row, min_col, max_row - min_row + 1, max_col - min_col + 1)


def check_headers(grid: GridAccessor) -> list[Issue]:
    issues = []
    for cell in grid.get_row(HEADER_ROW, len(HEADER_VALUES)):
        expected = HEADER_VALUES[cell.column - 1]
        if cell.column == SEPARATOR_COLUMN:
            continue
        if cell.text != expected:
            issues.append(build_issue("header_text", cell.coordinate, f'Should contain "{expected}"'))
        issues.extend(build_issue(code, cell.coordinate, message) for code, message in contract_violations(cell, HEADER_STYLE))
    return issues


def check_buttons(grid: GridAccessor) -> list[Issue]:
    issues = []
    block = grid.get_range(ACTION_FIRST_ROW, ACTION_COLUMN, len(ACTIONS), ACTION_WIDTH)
    for (label, description), cells in zip(ACTIONS, block):
        for cell in cells:
            if cell.column == ACTION_COLUMN and cell.text != label:
                issues.append(build_issue("button_text", cell.coordinate, f'Should contain "{label}"'))
            elif cell.column == ACTION_COLUMN + 1 and cell.text != description:
                issues.append(build_issue("button_text", cell.coordinate, f'Should contain "{description}"'))
            elif cell.column == CHECKBOX_COLUMN and cell.validation != "checkbox":
                issues.append(build_issue("checkbox", cell.coordinate, "Should be a checkbox"))
            issues.extend(
                build_issue(code, cell.coordinate, message)
                for code, message in contract_violations(cell, BUTTON_STYLES[cell.column])
            )
    return issues


def check_borders(cells: list[list[CellSnapshot]]) -> list[Issue]:
    """Every cell must carry four solid black borders."""
    issues = []
    for row in cells:
        for cell in row:
            style = cell.style
            sides = [style.border(side) for side in BORDER_SIDES]
            if not any(side.present for side in sides):
                issues.append(build_issue("border", cell.coordinate, "No borders defined"))
                continue
            for name, side in zip(BORDER_SIDES, sides):
                if not side.present:
                    issues.append(build_issue("border", cell.coordinate, f"Missing {name} border"))
                elif side.style != "solid":
                    issues.append(build_issue("border", cell.coordinate, f"{name.capitalize()} border should be solid"))
                elif side.color != BLACK:
                    issues.append(build_issue("border", cell.coordinate, f"{name.capitalize()} border should be black"))
    return issues


def check_region(grid: GridAccessor, expected: CellRange, anchor: str) -> list[Issue]:
    actual = locate_region(grid, expected, anchor)
    if actual is None:
        return [build_issue("range_shape", expected.coord, f"Range mismatch: expected {expected.coord}, got nothing")]
    issues = []
    if actual.coord != expected.coord:
        issues.append(build_issue("range_shape", expected.coord, f"Range mismatch: expected {expected.coord}, got {actual.coord}"))
    cells = read_region(grid, actual)
    for row in cells:
        for cell in row:
            style = cell.style
            if style.background != WHITE:
                issues.append(build_issue("background", cell.coordinate, "Should have no background color"))
            if style.font_family != DEFAULT_FONT_FAMILY:
                issues.append(build_issue("font_family", cell.coordinate, f"Wrong font family (should be {DEFAULT_FONT_FAMILY})"))
            if style.font_color != BLACK:
                issues.append(build_issue("font_color", cell.coordinate, "Wrong text color (should be black)"))
    issues.extend(check_borders(cells))
    return issues


def check_separator(grid: GridAccessor, config: LedgerConfig) -> list[Issue]:
    column = get_column_letter(SEPARATOR_COLUMN)
    issues = []
    for (cell,) in grid.get_range(HEADER_ROW, SEPARATOR_COLUMN, config.dead_region_end, 1):
        style = cell.style
        location = cell.coordinate
        if cell.has_content:
            issues.append(build_issue("cell_not_empty", location, "Separator column should be empty"))
        if cell.validation is not None:
            issues.append(build_issue("data_validation", location, "Should not have data validation"))
        if cell.note:
            issues.append(build_issue("note", location, "Should not have a note"))
        if style.font_family != DEFAULT_FONT_FAMILY:
            issues.append(build_issue("font_family", location, f"Should have default font ({DEFAULT_FONT_FAMILY})"))
        if style.font_color != BLACK:
            issues.append(build_issue("font_color", location, "Should have black text"))
        if style.background != WHITE:
            issues.append(build_issue("background", location, "Should have no background color"))
        if style.bold or style.italic or style.underline or style.strikethrough:
            issues.append(build_issue("text_styling", location, "Should not have any text styling"))
        for side in ("top", "bottom"):
            if style.border(side).present:
                issues.append(build_issue("border", location, f"Should not have {side} border"))
    if any(col == SEPARATOR_COLUMN for _, col in grid.list_drawing_anchors()):
        issues.append(build_issue("drawing", f"Column {column}", "Should not contain any drawings or objects"))
    return issues


def check_widths(grid: GridAccessor, config: LedgerConfig) -> list[Issue]:
    issues = []
    for col, expected in COLUMN_WIDTHS.items():
        actual = grid.column_width(col)
        if abs(actual - expected) > config.width_tolerance:
            issues.append(build_issue(
                "column_width",
                f"Column {get_column_letter(col)}",
                f"Wrong width (current: {actual}px, expected: {expected}px)",
            ))
    return issues


def check_sheet_layout(grid: GridAccessor, config: LedgerConfig | None = None) -> list[Issue]:
    config = config or LedgerConfig()
    issues = check_headers(grid)
    issues.extend(check_buttons(grid))
    issues.extend(check_region(grid, main_region(config), MAIN_ANCHOR))
    issues.extend(check_region(grid, action_region(), ACTION_ANCHOR))
    issues.extend(check_separator(grid, config))
    issues.extend(check_widths(grid, config))
    logger.debug("Layout pass on %r produced %d issue(s)", grid.title, len(issues))
    return issues


def check_workbook_layout(workbook, config: LedgerConfig | None = None) -> list[Issue]:
    config = config or LedgerConfig()
    issues = []
    for name in workbook.sheetnames:
        if not is_allowed_sheet(name, config):
            issues.append(build_issue("sheet_layout", f"Sheet {name}", f'Unexpected sheet "{name}"'))
    return issues
