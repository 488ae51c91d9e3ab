from __future__ import annotations

from enum import Enum

TOTAL_SENTINEL = "TOTAL:"
SUBTOTAL_SENTINEL = "Subtotal:"
SUB_ITEM_PREFIX = "- "


class Role(Enum):
    GROUP_HEADER = "group_header"
    SUB_ITEM = "sub_item"
    SUBTOTAL = "subtotal"
    TOTAL = "total"
    OTHER = "other"


def is_blank(text: str) -> bool:
    return text.strip() == ""


def is_sub_item_text(text: str) -> bool:
    # A bare dash still marks a sub-item; the missing space is reported separately.
    return text.startswith("-")


def classify(text: str, next_text: str = "") -> Role:
    """Role of a row from its column-A text and the next non-blank column-A text."""
    if text == TOTAL_SENTINEL:
        return Role.TOTAL
    if text == SUBTOTAL_SENTINEL:
        return Role.SUBTOTAL
    if is_sub_item_text(text):
        return Role.SUB_ITEM
    if is_blank(text):
        return Role.OTHER
    if is_sub_item_text(next_text) or next_text == SUBTOTAL_SENTINEL:
        return Role.GROUP_HEADER
    return Role.OTHER


def missing_dash_space(text: str) -> bool:
    return is_sub_item_text(text) and not text.startswith(SUB_ITEM_PREFIX)


def near_miss(text: str) -> str | None:
    """Expected sentinel when ``text`` resembles, but is not, a subtotal/total label."""
    if text in (TOTAL_SENTINEL, SUBTOTAL_SENTINEL):
        return None
    folded = text.strip().lower()
    if "subtotal" in folded or "sub-total" in folded:
        return SUBTOTAL_SENTINEL
    if "total" in folded:
        return TOTAL_SENTINEL
    return None
