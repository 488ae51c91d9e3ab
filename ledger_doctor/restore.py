"""Rewrite the presentation of a ledger sheet so that it validates cleanly.

Values and formulas inside the table are never touched; only styles, number
formats, borders and overlays are.  Clearing and filling the example ledger
live here as well because both end by re-applying the same layout.
"""

from __future__ import annotations

import logging
from collections import Counter

from ledger_doctor.config import LedgerConfig, is_allowed_sheet
from ledger_doctor.grid import BORDER_SIDES, GridAccessor
from ledger_doctor.parser import LedgerTree
from ledger_doctor.roles import SUB_ITEM_PREFIX, SUBTOTAL_SENTINEL, TOTAL_SENTINEL, Role
from ledger_doctor.rules import (
    ACTION_COLUMN,
    ACTION_FIRST_ROW,
    ACTIONS,
    BUTTON_STYLES,
    CANONICAL_NUMBER_FORMAT,
    CHECKBOX_COLUMN,
    COLUMN_WIDTHS,
    HEADER_ROW,
    HEADER_STYLE,
    HEADER_VALUES,
    LEDGER_WIDTH,
    NUMBER_FORMAT_COLUMNS,
    OPTIONAL_STYLE_COLUMNS,
    PRISTINE,
    ROLE_STYLES,
    ROW_RULES,
    SEPARATOR_COLUMN,
)

logger = logging.getLogger(__name__)

MAIN_CURRENCY = "USD"

# (group, [(name, amount, currency, exchange rate, operator, note)])
EXAMPLE_LEDGER = (
    ("Bank Accounts", [
        ("Bank 1", 1111, "RUB", 87.03, "/", "Active funds"),
        ("Bank 2 (Cashback)", 11, "RUB", 87.03, "/", "Pending cashback"),
        ("Bank 3 (Blocked Funds)", 11, "RUB", 87.03, "/", "Harder to withdraw"),
        ("Bank 4", 111, "EUR", 1.08, "*", "Active funds"),
        ("Bank 4 (Cashback)", 11, "EUR", 1.08, "*", "Pending cashback"),
    ]),
    ("Cryptocurrency Holdings", [
        ("Crypto 1", 111, "USDT", 1.0, "*", "Stablecoin (TON Chain)"),
        ("Crypto 2", 111, "USDC", 1.0, "*", "Stablecoin (BSC Chain)"),
        ("Crypto 3", 1, "BNB", 300, "*", "Binance Coin"),
        ("Crypto 4", 1, "TON", 3, "*", "Toncoin"),
        ("Crypto 5", 1, "ETH", 2000, "*", "Ethereum"),
    ]),
    ("Cash Holdings", [
        ("Cash 1", 1111, "EUR", 1.08, "*", "Cash on hand"),
    ]),
    ("CS:GO Skins", [
        ("Sellable Price", 1111, "USD", 1.0, "*", "Steam Market Price: $111"),
    ]),
)


def _reset_block(grid: GridAccessor, start: int, end: int) -> Counter:
    """Return A..F of rows start..end to the pristine default, borders included."""
    stats = Counter()
    if start > end:
        return stats
    count = end - start + 1
    stats["merged_ranges_unmerged"] += grid.unmerge(start, 1, count, LEDGER_WIDTH)
    grid.clear(start, 1, count, LEDGER_WIDTH)
    stats["overlays_removed"] += grid.strip_overlays(start, 1, count, LEDGER_WIDTH)
    grid.set_style(start, 1, count, LEDGER_WIDTH, PRISTINE)
    grid.set_number_format(start, 1, count, LEDGER_WIDTH, "General")
    grid.set_border(start, 1, count, LEDGER_WIDTH)
    stats["dead_rows_cleared"] += count
    return stats


def restore_dead_region(grid: GridAccessor, total_row: int, config: LedgerConfig | None = None) -> Counter:
    config = config or LedgerConfig()
    end = max(grid.last_row(), config.dead_region_end)
    stats = _reset_block(grid, total_row + 1, end)
    if stats["dead_rows_cleared"]:
        logger.debug("Reset rows %d:%d below TOTAL", total_row + 1, end)
    return stats


def restore_row(grid: GridAccessor, row: int, role: Role) -> Counter:
    stats = Counter()
    optional = OPTIONAL_STYLE_COLUMNS.get(role, frozenset())
    cells = grid.get_row(row, LEDGER_WIDTH)
    for col, contract in ROLE_STYLES[role].items():
        if col in optional and not cells[col - 1].has_content:
            continue
        grid.set_style(row, col, 1, 1, contract)
    for col in NUMBER_FORMAT_COLUMNS.get(role, ()):
        grid.set_number_format(row, col, 1, 1, CANONICAL_NUMBER_FORMAT)
    for col, rule in enumerate(ROW_RULES[role].columns, start=1):
        if rule.type != "empty":
            continue
        stats["merged_ranges_unmerged"] += grid.unmerge(row, col, 1, 1)
        grid.clear_annotations(row, col, 1, 1)
        stats["overlays_removed"] += grid.strip_overlays(row, col, 1, 1)
    stats["rows_restored"] += 1
    return stats


def restore(tree: LedgerTree, grid: GridAccessor, config: LedgerConfig | None = None) -> Counter:
    """Re-apply the presentation of the table and the dead region below it."""
    config = config or LedgerConfig()
    first = config.first_data_row
    height = tree.total_row - first + 1
    grid.set_style(first, 1, height, LEDGER_WIDTH, PRISTINE)
    grid.set_border(first, 1, height, LEDGER_WIDTH)

    stats = Counter()
    for row, role in tree.role_rows():
        stats.update(restore_row(grid, row, role))
    stats.update(restore_dead_region(grid, tree.total_row, config))
    logger.info("Restored %d ledger row(s); reset %d row(s) below TOTAL", stats["rows_restored"], stats["dead_rows_cleared"])
    return stats


def restore_sheet_layout(grid: GridAccessor, config: LedgerConfig | None = None) -> Counter:
    """Headers, action block, separator column, outer borders and column widths."""
    config = config or LedgerConfig()
    stats = Counter()
    end = config.dead_region_end
    action_width = CHECKBOX_COLUMN - ACTION_COLUMN + 1
    separator_rows = max(grid.last_row(), end)

    stats["merged_ranges_unmerged"] += grid.unmerge(HEADER_ROW, 1, 1, CHECKBOX_COLUMN)
    stats["merged_ranges_unmerged"] += grid.unmerge(ACTION_FIRST_ROW, ACTION_COLUMN, len(ACTIONS), action_width)
    stats["merged_ranges_unmerged"] += grid.unmerge(HEADER_ROW, SEPARATOR_COLUMN, separator_rows, 1)

    grid.set_values(HEADER_ROW, 1, [[value or None for value in HEADER_VALUES]])
    grid.set_style(HEADER_ROW, 1, 1, LEDGER_WIDTH, HEADER_STYLE)
    grid.set_style(HEADER_ROW, ACTION_COLUMN, 1, action_width, HEADER_STYLE)

    grid.set_values(ACTION_FIRST_ROW, ACTION_COLUMN, [[label, description, False] for label, description in ACTIONS])
    for col, contract in BUTTON_STYLES.items():
        grid.set_style(ACTION_FIRST_ROW, col, len(ACTIONS), 1, contract)
    grid.set_checkbox(ACTION_FIRST_ROW, CHECKBOX_COLUMN, len(ACTIONS), 1)

    grid.set_border(HEADER_ROW, 1, end, LEDGER_WIDTH)
    grid.set_border(HEADER_ROW, ACTION_COLUMN, len(ACTIONS) + 1, action_width)

    grid.clear(HEADER_ROW, SEPARATOR_COLUMN, separator_rows, 1)
    stats["overlays_removed"] += grid.strip_overlays(HEADER_ROW, SEPARATOR_COLUMN, separator_rows, 1)
    grid.set_style(HEADER_ROW, SEPARATOR_COLUMN, separator_rows, 1, PRISTINE)
    grid.set_border(HEADER_ROW, SEPARATOR_COLUMN, separator_rows, 1, style=None, sides=BORDER_SIDES)

    for col, pixels in COLUMN_WIDTHS.items():
        grid.set_column_width(col, pixels)
    stats["widths_set"] += len(COLUMN_WIDTHS)
    return stats


def restore_workbook_layout(workbook, config: LedgerConfig | None = None) -> Counter:
    config = config or LedgerConfig()
    stats = Counter()
    if config.sheet_name not in workbook.sheetnames:
        workbook.create_sheet(config.sheet_name, 0)
        logger.info('Created "%s" sheet', config.sheet_name)
        stats["sheets_created"] += 1
    for name in list(workbook.sheetnames):
        if not is_allowed_sheet(name, config):
            workbook.remove(workbook[name])
            logger.info('Removed invalid sheet: "%s"', name)
            stats["sheets_removed"] += 1
    return stats


def clear_ledger(grid: GridAccessor, config: LedgerConfig | None = None) -> int:
    """Empty the table and leave only the TOTAL row; returns the TOTAL row."""
    config = config or LedgerConfig()
    first = config.first_data_row
    _reset_block(grid, first, max(grid.last_row(), config.dead_region_end))
    grid.set_values(first, 1, [[TOTAL_SENTINEL, 0, MAIN_CURRENCY]])
    return first


def example_rows(first_row: int) -> list[list]:
    rows = []
    subtotal_cells = []
    row = first_row
    for group, items in EXAMPLE_LEDGER:
        rows.append([group, None, None, None, None, None])
        row += 1
        first_item = row
        for name, amount, currency, rate, operator, note in items:
            rows.append([f"{SUB_ITEM_PREFIX}{name}", amount, currency, rate, f"=B{row}{operator}D{row}", note])
            row += 1
        rows.append([SUBTOTAL_SENTINEL, f"=SUM(E{first_item}:E{row - 1})", MAIN_CURRENCY, None, None, None])
        subtotal_cells.append(f"B{row}")
        row += 1
    rows.append([TOTAL_SENTINEL, f"=SUM({','.join(subtotal_cells)})", MAIN_CURRENCY, None, None, None])
    return rows


def fill_example_ledger(grid: GridAccessor, config: LedgerConfig | None = None) -> int:
    """Replace the table with the example ledger; returns the TOTAL row."""
    config = config or LedgerConfig()
    clear_ledger(grid, config)
    rows = example_rows(config.first_data_row)
    grid.set_values(config.first_data_row, 1, rows)
    return config.first_data_row + len(rows) - 1
