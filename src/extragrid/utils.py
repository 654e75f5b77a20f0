"""
Utility functions for extragrid.

Provides A1 coordinate conversion, sheet name quoting, field masks and
query parameter serialization and owner back-references.
"""

from __future__ import annotations

import re
import weakref
from collections.abc import Mapping
from typing import Any, TypeVar

_T = TypeVar("_T")

_A1_CELL_RE = re.compile(r"^\$?([A-Za-z]+)\$?(\d+)$")
_UPDATED_RANGE_ROW_RE = re.compile(r"!\$?[A-Z]+\$?(\d+)")


def column_index_to_letter(index: int) -> str:
    """Convert a zero-based column index to A1 notation letter(s).

    Examples:
        0 -> A, 1 -> B, 25 -> Z, 26 -> AA, 27 -> AB, 702 -> AAA
    """
    if index < 0:
        raise ValueError(f"Column index must be >= 0, got {index}")
    letters = ""
    while True:
        index, remainder = divmod(index, 26)
        letters = chr(ord("A") + remainder) + letters
        if index == 0:
            return letters
        index -= 1


def letter_to_column_index(letter: str) -> int:
    """Convert A1 notation letter(s) to a zero-based column index.

    Examples:
        A -> 0, B -> 1, Z -> 25, AA -> 26, AB -> 27, AAA -> 702
    """
    if not letter.isalpha():
        raise ValueError(f"Invalid column letter: {letter!r}")
    index = 0
    for char in letter.upper():
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def cell_to_a1(row_index: int, column_index: int) -> str:
    """Convert zero-based row and column indices to A1 notation.

    Examples:
        (0, 0) -> A1, (0, 1) -> B1, (9, 2) -> C10
    """
    return f"{column_index_to_letter(column_index)}{row_index + 1}"


def a1_to_cell(a1: str) -> tuple[int, int]:
    """Convert an A1 cell address to zero-based (row_index, column_index).

    Absolute markers are accepted: ``$B$3`` is the same cell as ``B3``.
    """
    match = _A1_CELL_RE.match(a1.strip())
    if not match:
        raise ValueError(f"Invalid A1 notation: {a1!r}")
    letters, row = match.groups()
    if int(row) < 1:
        raise ValueError(f"Invalid A1 notation: {a1!r}")
    return int(row) - 1, letter_to_column_index(letters)


def quote_sheet_title(title: str) -> str:
    """Quote a sheet title for use as the sheet part of an A1 range.

    Titles made only of letters, digits and underscores (not starting with a
    digit) are used as is, unless they read like a cell address (``AB12``).
    Anything else is wrapped in single quotes with embedded quotes doubled.
    """
    if re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", title) and not re.fullmatch(
        r"[A-Za-z]{1,3}\d+", title
    ):
        return title
    return "'" + title.replace("'", "''") + "'"


def row_number_from_updated_range(updated_range: str) -> int:
    """Extract the first 1-based row number from a range like ``Sheet1!A5:C7``."""
    match = _UPDATED_RANGE_ROW_RE.search(updated_range)
    if not match:
        raise ValueError(f"Cannot read row number from range {updated_range!r}")
    return int(match.group(1))


def get_field_mask(properties: Mapping[str, Any]) -> str:
    """Build the ``fields`` mask for an update*Properties request.

    Top-level keys are listed as is, while ``gridProperties`` is expanded to
    its sub-fields so that unspecified grid settings are left untouched.

    Example:
        {"title": "x", "gridProperties": {"rowCount": 5}}
            -> "gridProperties.rowCount,title"
    """
    grid_fields = [
        f"gridProperties.{key}" for key in properties.get("gridProperties") or {}
    ]
    root_fields = [key for key in properties if key != "gridProperties"]
    return ",".join(grid_fields + root_fields)


def serialize_params(params: Mapping[str, Any] | None) -> list[tuple[str, str]]:
    """Serialize query parameters the way Google APIs expect them.

    List values become repeated keys (``ranges=a&ranges=b``) rather than
    bracket or comma encodings, booleans become ``true``/``false`` and
    ``None`` values are dropped.
    """
    pairs: list[tuple[str, str]] = []
    for key, value in (params or {}).items():
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            if item is None:
                continue
            if isinstance(item, bool):
                pairs.append((key, "true" if item else "false"))
            else:
                pairs.append((key, str(item)))
    return pairs


def deref(ref: weakref.ref[_T], owner: str) -> _T:
    """Resolve a back-reference to an owning object.

    Worksheets, rows and cells point at their owner through a weak reference
    so that the owning Spreadsheet alone keeps the object graph alive.
    """
    target = ref()
    if target is None:
        raise ReferenceError(f"The {owner} this object belonged to no longer exists")
    return target
