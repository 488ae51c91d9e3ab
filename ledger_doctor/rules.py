"""Row grammar, style contracts and fixed sheet layout of the ledger."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType

from ledger_doctor.grid import StyleContract
from ledger_doctor.roles import SUB_ITEM_PREFIX, SUBTOTAL_SENTINEL, TOTAL_SENTINEL, Role

LEDGER_COLUMNS = "ABCDEF"
LEDGER_WIDTH = len(LEDGER_COLUMNS)
ACCEPTED_NUMBER_FORMATS = ("0.0000", "0,0000", "#,####", "#.####")
CANONICAL_NUMBER_FORMAT = "0.0000"


@dataclass(frozen=True)
class ColumnRule:
    required: bool
    type: str  # "empty" | "string" | "number"


@dataclass(frozen=True)
class RowRule:
    columns: tuple[ColumnRule, ...]
    exact_match: str | None = None
    prefix: str | None = None


def _columns(*pairs: tuple[bool, str]) -> tuple[ColumnRule, ...]:
    return tuple(ColumnRule(required, kind) for required, kind in pairs)


ROW_RULES = MappingProxyType({
    Role.GROUP_HEADER: RowRule(
        prefix="",
        columns=_columns((True, "string"), (True, "empty"), (True, "empty"), (True, "empty"), (True, "empty"), (True, "empty")),
    ),
    Role.SUB_ITEM: RowRule(
        prefix=SUB_ITEM_PREFIX,
        columns=_columns((True, "string"), (True, "number"), (True, "string"), (False, "number"), (False, "number"), (False, "string")),
    ),
    Role.SUBTOTAL: RowRule(
        exact_match=SUBTOTAL_SENTINEL,
        columns=_columns((True, "string"), (True, "number"), (True, "string"), (True, "empty"), (True, "empty"), (True, "empty")),
    ),
    Role.TOTAL: RowRule(
        exact_match=TOTAL_SENTINEL,
        columns=_columns((True, "string"), (True, "number"), (True, "string"), (True, "empty"), (True, "empty"), (True, "empty")),
    ),
})

PRISTINE = StyleContract()
_LEFT = StyleContract(horizontal="left")
_RIGHT = StyleContract(horizontal="right")
_CENTER = StyleContract(horizontal="center")

# Role -> column index (1-based) -> contract. Columns listed in OPTIONAL_STYLE_COLUMNS
# are only checked when the cell holds a value.
ROLE_STYLES = MappingProxyType({
    Role.GROUP_HEADER: {1: StyleContract(bold=True, horizontal="left")},
    Role.SUB_ITEM: {
        1: _LEFT,
        2: _RIGHT,
        3: _CENTER,
        4: _LEFT,
        5: _LEFT,
        6: StyleContract(italic=True, horizontal="left"),
    },
    Role.SUBTOTAL: {
        1: StyleContract(italic=True, horizontal="left"),
        2: StyleContract(italic=True, horizontal="right"),
        3: StyleContract(italic=True, horizontal="center"),
    },
    Role.TOTAL: {
        1: StyleContract(bold=True, horizontal="left"),
        2: StyleContract(bold=True, horizontal="right"),
        3: StyleContract(bold=True, horizontal="center"),
    },
})
OPTIONAL_STYLE_COLUMNS = MappingProxyType({Role.SUB_ITEM: frozenset({4, 5, 6})})
NUMBER_FORMAT_COLUMNS = MappingProxyType({
    Role.SUB_ITEM: (2, 4, 5),
    Role.SUBTOTAL: (2,),
    Role.TOTAL: (2,),
})

# Fixed sheet layout
HEADER_ROW = 1
MAIN_HEADERS = ("Category", "Amount", "Currency", "Exchange Rate", "To Main Currency", "Notes")
ACTION_HEADERS = ("Action", "Description", "Button")
HEADER_VALUES = (*MAIN_HEADERS, "", *ACTION_HEADERS)
HEADER_STYLE = StyleContract(font_size=12, bold=True)

SEPARATOR_COLUMN = 7
ACTION_COLUMN = 8
ACTION_FIRST_ROW = 2
ACTIONS = (
    ("Clear Data", "Remove all data but keep headers"),
    ("Fill Example Data", "Insert sample financial data"),
    ("Save Snapshot", "Save a copy with UTC timestamp"),
    ("Load Last Snapshot", "Restore the last saved snapshot"),
    ("Convert to Main Currency", "Fetch exchange rates and recalculate"),
)
ACTION_LAST_ROW = ACTION_FIRST_ROW + len(ACTIONS) - 1
BUTTON_STYLES = MappingProxyType({
    8: StyleContract(horizontal="left"),
    9: StyleContract(italic=True, horizontal="left"),
    10: StyleContract(horizontal="center"),
})
CHECKBOX_COLUMN = 10

# Pixels; the width check allows LedgerConfig.width_tolerance either way.
COLUMN_WIDTHS = MappingProxyType({
    1: 220,
    2: 100,
    3: 100,
    4: 150,
    5: 150,
    6: 180,
    7: 20,
    8: 180,
    9: 240,
    10: 80,
})