"""Read/write access to the ledger worksheet.

Everything above this module works with ``CellSnapshot`` / ``StyleProfile``
values instead of openpyxl objects, so colors, alignments and border styles are
normalised here once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.styles.colors import COLOR_INDEX
from openpyxl.formatting.formatting import ConditionalFormattingList
from openpyxl.utils import get_column_letter
from openpyxl.utils.cell import coordinate_to_tuple
from openpyxl.worksheet.cell_range import CellRange, MultiCellRange
from openpyxl.worksheet.datavalidation import DataValidation
from openpyxl.worksheet.formula import ArrayFormula

logger = logging.getLogger(__name__)

DEFAULT_FONT_FAMILY = "Arial"
DEFAULT_FONT_SIZE = 10
BLACK = "#000000"
WHITE = "#ffffff"
CHECKBOX_FORMULA = '"TRUE,FALSE"'
BORDER_SIDES = ("top", "bottom", "left", "right")

# openpyxl border style name -> presentation name used in contracts
BORDER_STYLE_NAMES = {
    "thin": "solid",
    "medium": "solid_medium",
    "thick": "solid_thick",
}
THEME_COLORS = {0: WHITE, 1: BLACK}


@dataclass(frozen=True)
class BorderSide:
    style: str | None = None
    color: str | None = None

    @property
    def present(self) -> bool:
        return self.style is not None


@dataclass(frozen=True)
class StyleProfile:
    font_family: str | None = DEFAULT_FONT_FAMILY
    font_size: float | None = DEFAULT_FONT_SIZE
    bold: bool = False
    italic: bool = False
    underline: bool = False
    strikethrough: bool = False
    horizontal: str = "center"
    vertical: str = "middle"
    font_color: str = BLACK
    background: str = WHITE
    top: BorderSide = field(default_factory=BorderSide)
    bottom: BorderSide = field(default_factory=BorderSide)
    left: BorderSide = field(default_factory=BorderSide)
    right: BorderSide = field(default_factory=BorderSide)
    number_format: str = "General"

    def border(self, side: str) -> BorderSide:
        return getattr(self, side)


@dataclass(frozen=True)
class StyleContract:
    """Expected presentation of one cell; also what the restorer writes."""

    font_family: str = DEFAULT_FONT_FAMILY
    font_size: float = DEFAULT_FONT_SIZE
    bold: bool = False
    italic: bool = False
    underline: bool = False
    strikethrough: bool = False
    horizontal: str = "center"
    vertical: str = "middle"
    font_color: str = BLACK
    background: str = WHITE


@dataclass(frozen=True)
class CellSnapshot:
    row: int
    column: int
    value: Any = None
    formula: str = ""
    style: StyleProfile = field(default_factory=StyleProfile)
    note: str = ""
    validation: str | None = None
    hyperlink: str = ""
    conditional_format: bool = False
    drawing: bool = False

    @property
    def coordinate(self) -> str:
        return f"{get_column_letter(self.column)}{self.row}"

    @property
    def has_content(self) -> bool:
        if self.formula:
            return True
        if self.value is None:
            return False
        return not (isinstance(self.value, str) and self.value == "")

    @property
    def text(self) -> str:
        if self.value is None:
            return ""
        return str(self.value)


@dataclass
class _Overlays:
    validations: list[tuple[tuple[int, int, int, int], str]]
    conditional_formats: list[tuple[int, int, int, int]]
    drawings: set[tuple[int, int]]

    def validation_at(self, row: int, col: int) -> str | None:
        for bounds, kind in self.validations:
            if _within(bounds, row, col):
                return kind
        return None

    def conditional_format_at(self, row: int, col: int) -> bool:
        return any(_within(bounds, row, col) for bounds in self.conditional_formats)


def _within(bounds: tuple[int, int, int, int], row: int, col: int) -> bool:
    min_col, min_row, max_col, max_row = bounds
    return min_row <= row <= max_row and min_col <= col <= max_col


def normalise_color(color, default: str = BLACK) -> str:
    if color is None:
        return default
    kind = getattr(color, "type", None)
    if kind == "rgb":
        rgb = color.rgb
        if isinstance(rgb, str) and len(rgb) >= 6:
            return "#" + rgb[-6:].lower()
        return default
    if kind == "theme":
        return THEME_COLORS.get(color.theme, f"theme:{color.theme}")
    if kind == "indexed":
        index = color.indexed
        if index == 64:
            return BLACK
        if index == 65:
            return WHITE
        if 0 <= index < len(COLOR_INDEX):
            return "#" + COLOR_INDEX[index][-6:].lower()
        return f"indexed:{index}"
    if kind == "auto":
        return default
    return default


def background_of(fill) -> str:
    if fill is None:
        return WHITE
    if getattr(fill, "tagname", "patternFill") != "patternFill":
        return "gradient"
    if fill.fill_type is None:
        return WHITE
    if fill.fill_type == "solid":
        return normalise_color(fill.fgColor, WHITE)
    return f"pattern:{fill.fill_type}"


def _border_side(side) -> BorderSide:
    if side is None or side.style is None:
        return BorderSide()
    style = BORDER_STYLE_NAMES.get(side.style, side.style)
    return BorderSide(style=style, color=normalise_color(side.color, BLACK))


def style_of(cell) -> StyleProfile:
    font = cell.font
    alignment = cell.alignment
    border = cell.border
    vertical = alignment.vertical or "bottom"
    if vertical == "center":
        vertical = "middle"
    return StyleProfile(
        font_family=font.name,
        font_size=font.sz,
        bold=bool(font.b),
        italic=bool(font.i),
        underline=bool(font.u) and font.u != "none",
        strikethrough=bool(font.strike),
        horizontal=alignment.horizontal or "general",
        vertical=vertical,
        font_color=normalise_color(font.color, BLACK),
        background=background_of(cell.fill),
        top=_border_side(border.top),
        bottom=_border_side(border.bottom),
        left=_border_side(border.left),
        right=_border_side(border.right),
        number_format=cell.number_format or "General",
    )


def split_value(raw) -> tuple[Any, str]:
    if isinstance(raw, ArrayFormula):
        return None, raw.text or ""
    if isinstance(raw, str) and raw.startswith("="):
        return None, raw
    return raw, ""


def overlaps(cell_range: CellRange, area: CellRange) -> bool:
    min_col, min_row, max_col, max_row = cell_range.bounds
    a_min_col, a_min_row, a_max_col, a_max_row = area.bounds
    return not (a_min_col > max_col or a_max_col < min_col or a_min_row > max_row or a_max_row < min_row)


def subtract_range(cell_range: CellRange, area: CellRange) -> list[CellRange]:
    """Return the parts of ``cell_range`` lying outside ``area``."""
    if not overlaps(cell_range, area):
        return [cell_range]
    min_col, min_row, max_col, max_row = cell_range.bounds
    a_min_col, a_min_row, a_max_col, a_max_row = area.bounds
    pieces = []
    if min_row < a_min_row:
        pieces.append((min_col, min_row, max_col, a_min_row - 1))
    if max_row > a_max_row:
        pieces.append((min_col, a_max_row + 1, max_col, max_row))
    mid_top = max(min_row, a_min_row)
    mid_bottom = min(max_row, a_max_row)
    if min_col < a_min_col:
        pieces.append((min_col, mid_top, a_min_col - 1, mid_bottom))
    if max_col > a_max_col:
        pieces.append((a_max_col + 1, mid_top, max_col, mid_bottom))
    return [CellRange(min_col=c1, min_row=r1, max_col=c2, max_row=r2) for c1, r1, c2, r2 in pieces]


def _drawing_anchor(drawing) -> tuple[int, int] | None:
    anchor = getattr(drawing, "anchor", None)
    if anchor is None:
        return None
    if isinstance(anchor, str):
        return coordinate_to_tuple(anchor)
    marker = getattr(anchor, "_from", None)
    if marker is None:
        return None
    return marker.row + 1, marker.col + 1


class GridAccessor:
    """Narrow view over one openpyxl worksheet.

    Overlay lookups (validations, conditional formats, drawings) are indexed
    lazily and dropped on every write so a pass always sees the current sheet.
    """

    def __init__(self, worksheet) -> None:
        self.worksheet = worksheet
        self._overlays: _Overlays | None = None
        # Taken before any read: openpyxl creates a cell on every lookup.
        self.extent = CellRange(worksheet.calculate_dimension())

    @property
    def title(self) -> str:
        return self.worksheet.title

    def last_row(self) -> int:
        return self.worksheet.max_row

    # -- reads ---------------------------------------------------------------

    def _index_overlays(self) -> _Overlays:
        if self._overlays is not None:
            return self._overlays
        validations = []
        for validation in self.worksheet.data_validations.dataValidation:
            kind = validation_kind(validation)
            for cell_range in validation.sqref.ranges:
                validations.append((cell_range.bounds, kind))
        self._overlays = _Overlays(
            validations=validations,
            conditional_formats=self.list_conditional_format_ranges(),
            drawings=set(self.list_drawing_anchors()),
        )
        return self._overlays

    def _snapshot(self, row: int, col: int, overlays: _Overlays) -> CellSnapshot:
        cell = self.worksheet.cell(row=row, column=col)
        value, formula = split_value(cell.value)
        hyperlink = ""
        if cell.hyperlink is not None:
            hyperlink = cell.hyperlink.target or cell.hyperlink.location or "link"
        return CellSnapshot(
            row=row,
            column=col,
            value=value,
            formula=formula,
            style=style_of(cell),
            note=cell.comment.text if cell.comment is not None else "",
            validation=overlays.validation_at(row, col),
            hyperlink=hyperlink,
            conditional_format=overlays.conditional_format_at(row, col),
            drawing=(row, col) in overlays.drawings,
        )

    def snapshot(self, row: int, col: int) -> CellSnapshot:
        return self._snapshot(row, col, self._index_overlays())

    def get_row(self, row: int, width: int = 6) -> list[CellSnapshot]:
        overlays = self._index_overlays()
        return [self._snapshot(row, col, overlays) for col in range(1, width + 1)]

    def get_style(self, row: int, col: int) -> StyleProfile:
        return style_of(self.worksheet.cell(row=row, column=col))

    def get_range(self, row: int, col: int, row_count: int, col_count: int) -> list[list[CellSnapshot]]:
        overlays = self._index_overlays()
        return [
            [self._snapshot(r, c, overlays) for c in range(col, col + col_count)]
            for r in range(row, row + row_count)
        ]

    def text_at(self, row: int, col: int = 1) -> str:
        value = self.worksheet.cell(row=row, column=col).value
        if value is None:
            return ""
        return str(value)

    def column_texts(self, first_row: int, last_row: int, col: int = 1) -> list[str]:
        return [self.text_at(row, col) for row in range(first_row, last_row + 1)]

    def list_conditional_format_ranges(self) -> list[tuple[int, int, int, int]]:
        bounds = []
        for conditional in self.worksheet.conditional_formatting:
            for cell_range in conditional.sqref.ranges:
                bounds.append(cell_range.bounds)
        return bounds

    def list_drawing_anchors(self) -> list[tuple[int, int]]:
        anchors = []
        for drawing in [*getattr(self.worksheet, "_images", []), *getattr(self.worksheet, "_charts", [])]:
            anchor = _drawing_anchor(drawing)
            if anchor is not None:
                anchors.append(anchor)
        return anchors

    def column_width(self, col: int) -> int:
        """Column width in pixels (Excel character width * 7 + 5 padding)."""
        width = self.worksheet.column_dimensions[get_column_letter(col)].width
        return int(round(width * 7 + 5))

    # -- writes --------------------------------------------------------------

    def _cells(self, row: int, col: int, row_count: int, col_count: int) -> Iterable:
        self._overlays = None
        for r in range(row, row + row_count):
            for c in range(col, col + col_count):
                yield self.worksheet.cell(row=r, column=c)

    def set_values(self, row: int, col: int, values: list[list[Any]]) -> None:
        if values:
            self.unmerge(row, col, len(values), max(len(row_values) for row_values in values) or 1)
        self._overlays = None
        for r_offset, row_values in enumerate(values):
            for c_offset, value in enumerate(row_values):
                self.worksheet.cell(row=row + r_offset, column=col + c_offset).value = value

    def set_style(self, row: int, col: int, row_count: int, col_count: int, contract: StyleContract) -> None:
        font = Font(
            name=contract.font_family,
            size=contract.font_size,
            bold=contract.bold,
            italic=contract.italic,
            underline="single" if contract.underline else None,
            strike=contract.strikethrough,
            color="FF" + contract.font_color.lstrip("#").upper(),
        )
        alignment = Alignment(
            horizontal=contract.horizontal,
            vertical="center" if contract.vertical == "middle" else contract.vertical,
        )
        if contract.background == WHITE:
            fill = PatternFill(fill_type=None)
        else:
            rgb = "FF" + contract.background.lstrip("#").upper()
            fill = PatternFill(fill_type="solid", fgColor=rgb, bgColor=rgb)
        for cell in self._cells(row, col, row_count, col_count):
            cell.font = font
            cell.alignment = alignment
            cell.fill = fill

    def set_number_format(self, row: int, col: int, row_count: int, col_count: int, number_format: str) -> None:
        for cell in self._cells(row, col, row_count, col_count):
            cell.number_format = number_format

    def set_border(
        self,
        row: int,
        col: int,
        row_count: int,
        col_count: int,
        *,
        style: str | None = "thin",
        color: str = BLACK,
        sides: tuple[str, ...] = BORDER_SIDES,
    ) -> None:
        side = Side(style=style, color="FF" + color.lstrip("#").upper()) if style else Side()
        for cell in self._cells(row, col, row_count, col_count):
            current = cell.border
            edges = {name: getattr(current, name) for name in BORDER_SIDES}
            for name in sides:
                edges[name] = side
            cell.border = Border(**edges)

    def set_checkbox(self, row: int, col: int, row_count: int, col_count: int) -> None:
        self.strip_validations(row, col, row_count, col_count)
        validation = DataValidation(type="list", formula1=CHECKBOX_FORMULA, allow_blank=True)
        validation.add(CellRange(min_col=col, min_row=row, max_col=col + col_count - 1, max_row=row + row_count - 1).coord)
        self.worksheet.add_data_validation(validation)
        self._overlays = None

    def set_column_width(self, col: int, pixels: int) -> None:
        self.worksheet.column_dimensions[get_column_letter(col)].width = (pixels - 5) / 7

    def unmerge(self, row: int, col: int, row_count: int, col_count: int) -> int:
        """Split every merged range touching the rectangle; merged cells are read-only."""
        area = CellRange(min_col=col, min_row=row, max_col=col + col_count - 1, max_row=row + row_count - 1)
        merged = [cell_range for cell_range in self.worksheet.merged_cells.ranges if overlaps(cell_range, area)]
        for cell_range in merged:
            self.worksheet.unmerge_cells(cell_range.coord)
            logger.debug("Unmerged %s", cell_range.coord)
        return len(merged)

    def clear(self, row: int, col: int, row_count: int, col_count: int) -> None:
        """Drop values, formulas, notes and hyperlinks in a rectangle."""
        self.unmerge(row, col, row_count, col_count)
        for cell in self._cells(row, col, row_count, col_count):
            cell.value = None
            cell.comment = None
            cell.hyperlink = None

    def clear_annotations(self, row: int, col: int, row_count: int, col_count: int) -> None:
        """Drop notes and hyperlinks but keep values."""
        self.unmerge(row, col, row_count, col_count)
        for cell in self._cells(row, col, row_count, col_count):
            cell.comment = None
            cell.hyperlink = None

    def strip_validations(self, row: int, col: int, row_count: int, col_count: int) -> int:
        area = CellRange(min_col=col, min_row=row, max_col=col + col_count - 1, max_row=row + row_count - 1)
        touched = 0
        kept = []
        for validation in self.worksheet.data_validations.dataValidation:
            ranges = list(validation.sqref.ranges)
            if not any(overlaps(cell_range, area) for cell_range in ranges):
                kept.append(validation)
                continue
            touched += 1
            remaining = [piece for cell_range in ranges for piece in subtract_range(cell_range, area)]
            if remaining:
                validation.sqref = MultiCellRange(remaining)
                kept.append(validation)
        self.worksheet.data_validations.dataValidation = kept
        self._overlays = None
        return touched

    def strip_conditional_formats(self, row: int, col: int, row_count: int, col_count: int) -> int:
        area = CellRange(min_col=col, min_row=row, max_col=col + col_count - 1, max_row=row + row_count - 1)
        formats = list(self.worksheet.conditional_formatting)
        if not any(overlaps(cell_range, area) for conditional in formats for cell_range in conditional.sqref.ranges):
            return 0
        rebuilt = ConditionalFormattingList()
        touched = 0
        for conditional in formats:
            ranges = list(conditional.sqref.ranges)
            if any(overlaps(cell_range, area) for cell_range in ranges):
                touched += 1
            remaining = [piece for cell_range in ranges for piece in subtract_range(cell_range, area)]
            if not remaining:
                continue
            reference = " ".join(piece.coord for piece in remaining)
            for rule in conditional.rules:
                rebuilt.add(reference, rule)
        self.worksheet.conditional_formatting = rebuilt
        self._overlays = None
        return touched

    def strip_drawings(self, row: int, col: int, row_count: int, col_count: int) -> int:
        bounds = (col, row, col + col_count - 1, row + row_count - 1)
        removed = 0
        for attribute in ("_images", "_charts"):
            drawings = getattr(self.worksheet, attribute, None)
            if not drawings:
                continue
            kept = []
            for drawing in drawings:
                anchor = _drawing_anchor(drawing)
                if anchor is not None and _within(bounds, *anchor):
                    removed += 1
                    continue
                kept.append(drawing)
            setattr(self.worksheet, attribute, kept)
        self._overlays = None
        if removed:
            logger.debug("Removed %d drawing(s) anchored in %s", removed, CellRange(min_col=col, min_row=row, max_col=bounds[2], max_row=bounds[3]).coord)
        return removed

    def strip_overlays(self, row: int, col: int, row_count: int, col_count: int) -> int:
        return (
            self.strip_validations(row, col, row_count, col_count)
            + self.strip_conditional_formats(row, col, row_count, col_count)
            + self.strip_drawings(row, col, row_count, col_count)
        )


def validation_kind(validation) -> str:
    formula = (validation.formula1 or "").replace(" ", "").upper()
    if validation.type == "list" and formula == CHECKBOX_FORMULA:
        return "checkbox"
    return validation.type or "any"
