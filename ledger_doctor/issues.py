"""
Shared ledger-doctor issue taxonomy.

Category, explanation and auto-fixability for every rule id live here so the
validators, the CLI ``explain`` command and the web UI do not drift.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from openpyxl.utils.cell import column_index_from_string

CRITICAL = "critical"
STRUCTURAL = "structural"
STYLE = "style"

MISSING_TOTAL_PREFIX = 'Missing "TOTAL:" row'
MULTIPLE_TOTAL_PREFIX = "Multiple TOTAL: rows found"
MISSING_SUBTOTAL_PREFIX = "Missing Subtotal"
GAP_PREFIX = "Gap between sub-items"

ISSUE_DEFINITIONS = {
    # critical
    "total_missing": {"category": CRITICAL, "description": 'The ledger has no "TOTAL:" row in column A.', "auto_fixable": False},
    "total_multiple": {"category": CRITICAL, "description": 'More than one exact "TOTAL:" row exists; only one is allowed.', "auto_fixable": False},
    "grid_unreadable": {"category": CRITICAL, "description": "The workbook could not be opened or the ledger sheet is missing.", "auto_fixable": False},
    # structural
    "sheet_layout": {"category": STRUCTURAL, "description": 'Only "Financial Summary", "Debug Logs" and Snapshot_ sheets are allowed.', "auto_fixable": True},
    "header_text": {"category": STRUCTURAL, "description": "Row 1 must carry the fixed column and action headers.", "auto_fixable": True},
    "button_text": {"category": STRUCTURAL, "description": "The action rows H2:I6 must carry the fixed labels and descriptions.", "auto_fixable": True},
    "sentinel_mismatch": {"category": STRUCTURAL, "description": 'A Subtotal/Total row must read exactly "Subtotal:" / "TOTAL:".', "auto_fixable": False},
    "near_miss_sentinel": {"category": STRUCTURAL, "description": "Column A looks like a subtotal/total label but is not the exact sentinel.", "auto_fixable": False},
    "prefix_missing": {"category": STRUCTURAL, "description": 'Sub-item names must start with "- ".', "auto_fixable": False},
    "dash_missing_space": {"category": STRUCTURAL, "description": 'A sub-item starts with "-" but the space after the dash is missing.', "auto_fixable": False},
    "orphan_row": {"category": STRUCTURAL, "description": "A sub-item or subtotal row appears outside of any group.", "auto_fixable": False},
    "missing_value": {"category": STRUCTURAL, "description": "A required column is empty.", "auto_fixable": False},
    "not_number": {"category": STRUCTURAL, "description": "The column must hold a number (or a formula).", "auto_fixable": False},
    "not_text": {"category": STRUCTURAL, "description": "The column must hold text.", "auto_fixable": False},
    "number_format": {"category": STRUCTURAL, "description": "Numeric columns must use one of the accepted number formats.", "auto_fixable": True},
    "not_empty": {"category": STRUCTURAL, "description": "The column must be a pristine empty cell for this row type.", "auto_fixable": False},
    "missing_subtotal": {"category": STRUCTURAL, "description": 'A group is not closed by a "Subtotal:" row.', "auto_fixable": False},
    "sub_item_gap": {"category": STRUCTURAL, "description": "Sub-items and their subtotal must be on consecutive rows.", "auto_fixable": False},
    # style
    "font_family": {"category": STYLE, "description": "Cells must use the Arial font family.", "auto_fixable": True},
    "font_size": {"category": STYLE, "description": "Cells must use the font size of their row type.", "auto_fixable": True},
    "font_color": {"category": STYLE, "description": "Text must be black.", "auto_fixable": True},
    "text_styling": {"category": STYLE, "description": "Bold/italic/underline/strikethrough must match the row type.", "auto_fixable": True},
    "alignment": {"category": STYLE, "description": "Horizontal/vertical alignment must match the row type.", "auto_fixable": True},
    "background": {"category": STYLE, "description": "Cells must have a white background.", "auto_fixable": True},
    "border": {"category": STYLE, "description": "Fixed regions need solid black borders on all four sides.", "auto_fixable": True},
    "range_shape": {"category": STYLE, "description": "A checked region did not have the expected rectangular shape.", "auto_fixable": True},
    "column_width": {"category": STYLE, "description": "Column widths must stay within 5px of the layout width.", "auto_fixable": True},
    "cell_not_empty": {"category": STYLE, "description": "Rows after the TOTAL row must be completely empty.", "auto_fixable": True},
    "note": {"category": STYLE, "description": "The cell must not carry a note.", "auto_fixable": True},
    "data_validation": {"category": STYLE, "description": "The cell must not carry a data-validation rule.", "auto_fixable": True},
    "checkbox": {"category": STYLE, "description": "Action buttons in column J must be checkboxes.", "auto_fixable": True},
    "conditional_format": {"category": STYLE, "description": "The cell must not be covered by a conditional-format rule.", "auto_fixable": True},
    "drawing": {"category": STYLE, "description": "No drawing or image may be anchored on the cell.", "auto_fixable": True},
    "hyperlink": {"category": STYLE, "description": "The cell must not carry a hyperlink.", "auto_fixable": True},
}

_ADDRESS_RE = re.compile(r"^([A-Z]+)(\d+)")
_ROW_RE = re.compile(r"(?:^|\s)[Rr]ow (\d+)")


class LedgerError(Exception):
    pass


class CriticalError(LedgerError):
    """The ledger cannot be parsed or reached; the whole pass stops."""

    def __init__(self, message: str, code: str = "grid_unreadable", location: str = "") -> None:
        super().__init__(message)
        self.code = code
        self.location = location


@dataclass(frozen=True)
class Issue:
    location: str
    category: str
    code: str
    message: str

    def __str__(self) -> str:
        if self.location:
            return f"{self.location}: {self.message}"
        return self.message

    def sort_key(self) -> tuple[int, int, str]:
        match = _ADDRESS_RE.match(self.location)
        if match:
            return int(match.group(2)), column_index_from_string(match.group(1)), self.message
        match = _ROW_RE.search(self.location)
        if match:
            return int(match.group(1)), 0, self.message
        return 0, 0, self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": self.location,
            "category": self.category,
            "code": self.code,
            "message": self.message,
        }


def build_issue(code: str, location: str, message: str) -> Issue:
    definition = ISSUE_DEFINITIONS[code]
    return Issue(location=location, category=definition["category"], code=code, message=message)


def critical_issue(exc: CriticalError) -> Issue:
    return build_issue(exc.code, exc.location, str(exc))


def dedupe_issues(issues: list[Issue]) -> list[Issue]:
    """Drop repeated findings. Region-wide font/color/background checks overlap per-cell ones."""
    seen = set()
    unique = []
    for issue in issues:
        key = (issue.location, issue.code, issue.message)
        if issue.code in {"font_family", "font_color", "background"}:
            key = (issue.location, issue.code)
        if key in seen:
            continue
        seen.add(key)
        unique.append(issue)
    return unique


def sort_issues(issues: list[Issue]) -> list[Issue]:
    return sorted(issues, key=lambda issue: issue.sort_key())


def count_by_category(issues: list[Issue]) -> dict[str, int]:
    counts = {CRITICAL: 0, STRUCTURAL: 0, STYLE: 0}
    for issue in issues:
        counts[issue.category] += 1
    return counts
