"""
Google Sheets and Drive API wire types.

TypedDict shapes of the records extragrid reads and writes. Field names are
the exact JSON names used by Sheets API v4 and Drive API v3; only the fields
extragrid touches are listed.
"""

from __future__ import annotations

from typing import Any, Literal, TypedDict, Union

# =============================================================================
# Sheets: ranges and properties
# =============================================================================


class GridRange(TypedDict, total=False):
    """A zero-based, half-open range on a sheet. Missing indexes are unbounded."""

    sheetId: int
    startRowIndex: int
    endRowIndex: int
    startColumnIndex: int
    endColumnIndex: int


class DimensionRange(TypedDict, total=False):
    """A zero-based, half-open span of rows or columns."""

    sheetId: int

    # "ROWS" or "COLUMNS"
    dimension: str

    startIndex: int
    endIndex: int


class Color(TypedDict, total=False):
    """An RGBA color, each channel in [0, 1]."""

    red: float
    green: float
    blue: float
    alpha: float


class ColorStyle(TypedDict, total=False):
    """A color value or a reference to a theme color."""

    rgbColor: Color
    themeColorType: str


class GridProperties(TypedDict, total=False):
    """Dimensions and frozen panes of a grid sheet."""

    rowCount: int
    columnCount: int
    frozenRowCount: int
    frozenColumnCount: int
    hideGridlines: bool
    rowGroupControlAfter: bool
    columnGroupControlAfter: bool


class SheetProperties(TypedDict, total=False):
    """Properties of a sheet."""

    sheetId: int
    title: str

    # Position among sibling sheets
    index: int

    # "GRID", "OBJECT" or "DATA_SOURCE"
    sheetType: str

    gridProperties: GridProperties
    hidden: bool
    tabColor: Color
    tabColorStyle: ColorStyle
    rightToLeft: bool


class SpreadsheetProperties(TypedDict, total=False):
    """Properties of a spreadsheet."""

    title: str
    locale: str

    # "ON_CHANGE", "MINUTE" or "HOUR"
    autoRecalc: str

    timeZone: str
    defaultFormat: CellFormat
    iterativeCalculationSettings: dict[str, Any]
    spreadsheetTheme: dict[str, Any]


# =============================================================================
# Sheets: cell data
# =============================================================================


class ErrorValue(TypedDict, total=False):
    """An evaluation error in a cell."""

    # "ERROR", "NULL_VALUE", "DIVIDE_BY_ZERO", "VALUE", "REF", "NAME", "NUM",
    # "N_A" or "LOADING"
    type: str

    message: str


class ExtendedValue(TypedDict, total=False):
    """The kinds of value a cell can hold. Exactly one key is set."""

    numberValue: float
    stringValue: str
    boolValue: bool
    formulaValue: str
    errorValue: ErrorValue


class CellFormat(TypedDict, total=False):
    """The format of a cell."""

    numberFormat: dict[str, Any]
    backgroundColor: Color
    backgroundColorStyle: ColorStyle
    borders: dict[str, Any]
    padding: dict[str, int]
    horizontalAlignment: str
    verticalAlignment: str
    wrapStrategy: str
    textDirection: str
    textFormat: dict[str, Any]
    hyperlinkDisplayType: str
    textRotation: dict[str, Any]


class CellData(TypedDict, total=False):
    """Data about a specific cell."""

    userEnteredValue: ExtendedValue
    effectiveValue: ExtendedValue
    formattedValue: str
    userEnteredFormat: CellFormat
    effectiveFormat: CellFormat
    hyperlink: str
    note: str


class RowData(TypedDict, total=False):
    """The cells of one row, one entry per column."""

    values: list[CellData]


class DimensionProperties(TypedDict, total=False):
    """Properties of a single row or column."""

    hiddenByFilter: bool
    hiddenByUser: bool
    pixelSize: int
    developerMetadata: list[dict[str, Any]]


class GridData(TypedDict, total=False):
    """A block of cell data anchored at (startRow, startColumn)."""

    startRow: int
    startColumn: int
    rowData: list[RowData]
    rowMetadata: list[DimensionProperties]
    columnMetadata: list[DimensionProperties]


class Sheet(TypedDict, total=False):
    """A sheet as returned inside a Spreadsheet resource."""

    properties: SheetProperties
    data: list[GridData]


class Spreadsheet(TypedDict, total=False):
    """A Spreadsheet resource (also the echo of a batch update)."""

    spreadsheetId: str
    properties: SpreadsheetProperties
    sheets: list[Sheet]
    spreadsheetUrl: str


class ValueRange(TypedDict, total=False):
    """Values of a range, as used by the spreadsheets.values endpoints."""

    range: str

    # "ROWS" or "COLUMNS"
    majorDimension: str

    values: list[list[Any]]


# A cell filter: an A1 range string or a GridRange
DataFilter = Union[str, GridRange]


# =============================================================================
# Drive: permissions
# =============================================================================

PermissionRole = Literal["owner", "writer", "commenter", "reader"]
PublicPermissionRole = Literal["writer", "commenter", "reader"]
PermissionType = Literal["anyone", "user", "group", "domain"]


class Permission(TypedDict, total=False):
    """One Drive permission entry."""

    id: str
    type: PermissionType
    role: PermissionRole
    emailAddress: str
    domain: str
    displayName: str
    photoLink: str
    deleted: bool


# Fields requested when listing permissions
PERMISSION_FIELDS = (
    "permissions(id,type,emailAddress,domain,role,displayName,photoLink,deleted)"
)
