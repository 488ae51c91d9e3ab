"""Structural checks: row grammar per role, sentinels, contiguity and orphans."""

from __future__ import annotations

import logging
from decimal import Decimal

from ledger_doctor.grid import CellSnapshot, GridAccessor
from ledger_doctor.issues import GAP_PREFIX, MISSING_SUBTOTAL_PREFIX, Issue, build_issue
from ledger_doctor.parser import Group, LedgerTree
from ledger_doctor.roles import Role, missing_dash_space, near_miss
from ledger_doctor.rules import ACCEPTED_NUMBER_FORMATS, LEDGER_WIDTH, ROW_RULES, ColumnRule
from ledger_doctor.style import pristine_violations

logger = logging.getLogger(__name__)


def is_number(cell: CellSnapshot) -> bool:
    if cell.formula:
        return True
    value = cell.value
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def is_text(cell: CellSnapshot) -> bool:
    # Formulas are not evaluated, so a computed cell satisfies either type.
    return bool(cell.formula) or isinstance(cell.value, str)


def check_column(cell: CellSnapshot, rule: ColumnRule) -> list[Issue]:
    location = cell.coordinate
    if rule.type == "empty":
        return [build_issue("not_empty", location, message) for _, message in pristine_violations(cell)]

    if not cell.has_content:
        if rule.required:
            return [build_issue("missing_value", location, "Required value is missing")]
        return []

    issues = []
    if rule.type == "number":
        if not is_number(cell):
            issues.append(build_issue("not_number", location, f"Should be a number (got {cell.text!r})"))
        number_format = cell.style.number_format
        if number_format not in ACCEPTED_NUMBER_FORMATS:
            accepted = ", ".join(ACCEPTED_NUMBER_FORMATS)
            issues.append(build_issue("number_format", location, f"Wrong number format: {number_format} (should be one of: {accepted})"))
    elif rule.type == "string" and not is_text(cell):
        issues.append(build_issue("not_text", location, f"Should be text (got {cell.value!r})"))
    return issues


def validate_row(grid: GridAccessor, row: int, role: Role) -> list[Issue]:
    """Apply the row rule of ``role``; a failed label check skips the column checks."""
    rule = ROW_RULES[role]
    cells = grid.get_row(row, LEDGER_WIDTH)
    text = cells[0].text

    if rule.exact_match is not None and text != rule.exact_match:
        return [build_issue("sentinel_mismatch", f"Row {row}", f'Expected "{rule.exact_match}", got "{text}"')]
    if rule.prefix:
        if missing_dash_space(text):
            return [build_issue("dash_missing_space", cells[0].coordinate, f'Missing space after dash in "{text}" (should start with "{rule.prefix}")')]
        if not text.startswith(rule.prefix):
            return [build_issue("prefix_missing", cells[0].coordinate, f'Should start with "{rule.prefix}"')]

    issues = []
    for cell, column_rule in zip(cells, rule.columns):
        issues.extend(check_column(cell, column_rule))
    return issues


def check_contiguity(group: Group) -> list[Issue]:
    issues = []
    expected = group.start_row + 1
    for item in group.sub_items:
        if item.row != expected:
            issues.append(build_issue(
                "sub_item_gap",
                f"Row {expected}",
                f'{GAP_PREFIX} of "{group.name}": expected row {expected} to continue the group (next item at row {item.row})',
            ))
        expected = item.row + 1
    if group.subtotal_row is None:
        issues.append(build_issue("missing_subtotal", f"A{group.start_row}", f'{MISSING_SUBTOTAL_PREFIX} for group "{group.name}"'))
    elif group.subtotal_row != expected:
        issues.append(build_issue(
            "sub_item_gap",
            f"Row {expected}",
            f'{GAP_PREFIX} and Subtotal of "{group.name}": expected Subtotal at row {expected} (found at row {group.subtotal_row})',
        ))
    return issues


def check_near_miss(row: int, text: str) -> list[Issue]:
    expected = near_miss(text)
    if expected is None:
        return []
    return [build_issue("near_miss_sentinel", f"A{row}", f'"{text}" looks like a sentinel row but is not exactly "{expected}"')]


def check_orphans(tree: LedgerTree) -> list[Issue]:
    issues = []
    for row, role in tree.orphan_rows:
        label = "Sub-item" if role is Role.SUB_ITEM else "Subtotal"
        issues.append(build_issue("orphan_row", f"Row {row}", f"{label} outside of any group"))
    return issues


def validate_structure(tree: LedgerTree, grid: GridAccessor) -> list[Issue]:
    issues = []
    for row, role in tree.role_rows():
        issues.extend(validate_row(grid, row, role))
    for group in tree.groups:
        issues.extend(check_near_miss(group.start_row, group.name))
        issues.extend(check_contiguity(group))
    issues.extend(check_orphans(tree))
    logger.debug("Structural pass produced %d issue(s)", len(issues))
    return issues
