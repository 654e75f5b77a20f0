"""Worksheet cache: sheet properties, header row and a grid of cached cells.

The cell cache is a dense ``row_count x column_count`` list of lists once any
cell data has been loaded (positions never fetched hold ``None``). Whenever the
echoed grid dimensions change the cache is re-fitted: cells inside both the old
and new bounds are kept, cells outside the new bounds are dropped and new
positions get empty cells. Row/column inserts and deletes also shift the
cached cells so that every cell keeps describing the right coordinate.
"""

from __future__ import annotations

import copy
import logging
import weakref
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from extragrid.cell import Cell
from extragrid.exceptions import (
    CellNotLoadedError,
    CellOutOfBoundsError,
    HeadersNotLoadedError,
    InvalidHeaderError,
    InvalidRowError,
    NotLoadedError,
)
from extragrid.row import Row
from extragrid.utils import (
    a1_to_cell,
    cell_to_a1,
    column_index_to_letter,
    deref,
    get_field_mask,
    quote_sheet_title,
    row_number_from_updated_range,
)

if TYPE_CHECKING:
    from extragrid.api_types import (
        DataFilter,
        GridData,
        GridProperties,
        GridRange,
        SheetProperties,
    )
    from extragrid.spreadsheet import Spreadsheet

logger = logging.getLogger(__name__)

DIMENSIONS = ("ROWS", "COLUMNS")

_PRIMITIVES = (str, int, float, bool)

# keys of CellData that hold the cell's value (cleared by values:clear)
_VALUE_KEYS = ("userEnteredValue", "effectiveValue", "formattedValue")

CellGrid = list[list[Cell | None]]


class Worksheet:
    """One sheet of a Spreadsheet and its local cache."""

    def __init__(
        self,
        spreadsheet: Spreadsheet,
        properties: SheetProperties,
        data: list[GridData] | None = None,
    ) -> None:
        self._spreadsheet_ref = weakref.ref(spreadsheet)
        self._properties: SheetProperties | None = None
        self._cells: CellGrid = []
        self._header_values: list[str] | None = None
        self._header_row_index = 1
        self._apply_remote(properties, data)

    def __repr__(self) -> str:
        title = self._properties.get("title") if self._properties else None
        return f"<Worksheet {title!r}>"

    # -- Cache merging --

    def _apply_remote(
        self, properties: SheetProperties, data: list[GridData] | None = None
    ) -> None:
        """Merge echoed sheet state into this cache. Idempotent."""
        self._properties = copy.deepcopy(properties)
        if self._cells:
            self._fit_cells()
        if data:
            self._fill_cell_data(data)

    def _fill_cell_data(self, data: list[GridData]) -> None:
        for grid in data:
            row_data = grid.get("rowData", [])
            start_row = grid.get("startRow", 0)
            start_column = grid.get("startColumn", 0)
            num_rows = len(grid.get("rowMetadata", [])) or len(row_data)
            num_columns = len(grid.get("columnMetadata", [])) or max(
                (len(row.get("values", [])) for row in row_data), default=0
            )
            if not num_rows or not num_columns:
                continue
            if not self._cells:
                self._cells = [
                    [None] * self.column_count for _ in range(self.row_count)
                ]
            for i in range(num_rows):
                row_index = start_row + i
                if row_index >= len(self._cells):
                    break
                values = row_data[i].get("values", []) if i < len(row_data) else []
                cached_row = self._cells[row_index]
                for j in range(num_columns):
                    column_index = start_column + j
                    if column_index >= len(cached_row):
                        break
                    raw = values[j] if j < len(values) else None
                    cell = cached_row[column_index]
                    if cell is None:
                        cached_row[column_index] = Cell(
                            self, row_index, column_index, raw
                        )
                    else:
                        cell._update_raw_data(raw)

    def _fit_cells(self) -> None:
        """Resize the cell cache to the current grid dimensions."""
        rows, columns = self.row_count, self.column_count
        del self._cells[rows:]
        for row_index, row in enumerate(self._cells):
            del row[columns:]
            row.extend(
                Cell(self, row_index, column_index)
                for column_index in range(len(row), columns)
            )
        for row_index in range(len(self._cells), rows):
            self._cells.append(
                [Cell(self, row_index, column_index) for column_index in range(columns)]
            )

    def _splice_cells(
        self, snapshot: CellGrid, dimension: str, start: int, end: int, insert: bool
    ) -> None:
        """Rebuild the cache from `snapshot` after inserting/deleting a span."""
        if not snapshot:
            return
        count = end - start
        if dimension == "ROWS":
            width = len(snapshot[0])
            if insert:
                blank: CellGrid = [[Cell(self, 0, 0) for _ in range(width)]
                                   for _ in range(count)]
                grid = snapshot[:start] + blank + snapshot[start:]
            else:
                grid = snapshot[:start] + snapshot[end:]
        else:
            grid = []
            for row in snapshot:
                if insert:
                    grid.append(
                        row[:start] + [Cell(self, 0, 0) for _ in range(count)]
                        + row[start:]
                    )
                else:
                    grid.append(row[:start] + row[end:])
        self._cells = grid
        self._fit_cells()
        self._reindex_cells()

    def _shift_cells_after_delete_range(
        self, grid_range: GridRange, shift_dimension: str
    ) -> None:
        """Shift cached cells the way deleteRange shifts them remotely."""
        if not self._cells:
            return
        rows, columns = len(self._cells), len(self._cells[0])
        row_start = grid_range.get("startRowIndex", 0)
        row_end = min(grid_range.get("endRowIndex", rows), rows)
        column_start = grid_range.get("startColumnIndex", 0)
        column_end = min(grid_range.get("endColumnIndex", columns), columns)
        if shift_dimension == "ROWS":
            for column_index in range(column_start, column_end):
                column = [row[column_index] for row in self._cells]
                kept = column[:row_start] + column[row_end:]
                kept.extend(Cell(self, 0, 0) for _ in range(rows - len(kept)))
                for row_index, cell in enumerate(kept):
                    self._cells[row_index][column_index] = cell
        else:
            for row_index in range(row_start, row_end):
                row = self._cells[row_index]
                kept = row[:column_start] + row[column_end:]
                kept.extend(Cell(self, 0, 0) for _ in range(columns - len(kept)))
                self._cells[row_index] = kept
        self._reindex_cells()

    def _reindex_cells(self) -> None:
        for row_index, row in enumerate(self._cells):
            for column_index, cell in enumerate(row):
                if cell is not None:
                    cell._row_index = row_index
                    cell._column_index = column_index

    def _clear_cached_values(self, first_row: int, last_row: int) -> None:
        """Drop the values (not formats or notes) of cached rows, 0-based inclusive."""
        for row in self._cells[first_row : last_row + 1]:
            for cell in row:
                if cell is not None:
                    raw = {k: v for k, v in cell._raw_data.items() if k not in _VALUE_KEYS}
                    cell._update_raw_data(raw)  # type: ignore[arg-type]

    def reset_local_cache(self, data_only: bool = False) -> None:
        """Forget cached cells and headers (and properties unless `data_only`)."""
        if not data_only:
            self._properties = None
        self._header_values = None
        self._header_row_index = 1
        self._cells = []

    # -- Properties --

    def _get_prop(self, name: str) -> Any:
        if self._properties is None:
            raise NotLoadedError(
                "Worksheet properties are not loaded - call `load_info()` first"
            )
        return self._properties.get(name)

    @property
    def spreadsheet(self) -> Spreadsheet:
        return deref(self._spreadsheet_ref, "spreadsheet")

    @property
    def sheet_id(self) -> int:
        return self._get_prop("sheetId")  # type: ignore[no-any-return]

    @property
    def title(self) -> str:
        return self._get_prop("title")  # type: ignore[no-any-return]

    @property
    def index(self) -> int:
        return self._get_prop("index") or 0

    @property
    def sheet_type(self) -> str | None:
        return self._get_prop("sheetType")  # type: ignore[no-any-return]

    @property
    def hidden(self) -> bool:
        return bool(self._get_prop("hidden"))

    @property
    def right_to_left(self) -> bool:
        return bool(self._get_prop("rightToLeft"))

    @property
    def tab_color(self) -> dict[str, Any] | None:
        return self._get_prop("tabColor")  # type: ignore[no-any-return]

    @property
    def grid_properties(self) -> GridProperties:
        return self._get_prop("gridProperties") or {}

    @property
    def row_count(self) -> int:
        return self.grid_properties.get("rowCount", 0)

    @property
    def column_count(self) -> int:
        return self.grid_properties.get("columnCount", 0)

    @property
    def frozen_row_count(self) -> int:
        return self.grid_properties.get("frozenRowCount", 0)

    @property
    def frozen_column_count(self) -> int:
        return self.grid_properties.get("frozenColumnCount", 0)

    @property
    def a1_sheet_name(self) -> str:
        return quote_sheet_title(self.title)

    @property
    def encoded_a1_sheet_name(self) -> str:
        return quote(self.a1_sheet_name, safe="")

    @property
    def last_column_letter(self) -> str:
        return column_index_to_letter(self.column_count - 1) if self.column_count else ""

    @property
    def cell_stats(self) -> dict[str, int]:
        loaded = [cell for row in self._cells for cell in row if cell is not None]
        non_empty = [
            cell for cell in loaded if cell._raw_data.get("effectiveValue")
        ]
        return {
            "non_empty": len(non_empty),
            "loaded": len(loaded),
            "total": self.row_count * self.column_count,
        }

    # -- Mutations --

    async def _make_single_update_request(
        self, request_type: str, params: dict[str, Any]
    ) -> dict[str, Any]:
        return await self.spreadsheet._make_single_update_request(
            request_type, params
        )

    def _add_sheet_id_to_range(self, grid_range: GridRange) -> GridRange:
        if "sheetId" in grid_range and grid_range["sheetId"] != self.sheet_id:
            raise ValueError(
                f"Range sheetId {grid_range['sheetId']} does not match "
                f"worksheet {self.sheet_id}"
            )
        return {**grid_range, "sheetId": self.sheet_id}

    async def update_properties(self, properties: SheetProperties) -> dict[str, Any]:
        """Update sheet properties (title, index, gridProperties, tabColor, ...).

        See https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets/sheets#SheetProperties
        """
        return await self._make_single_update_request(
            "updateSheetProperties",
            {
                "properties": {**properties, "sheetId": self.sheet_id},
                "fields": get_field_mask(properties),
            },
        )

    async def update_grid_properties(
        self, grid_properties: GridProperties
    ) -> dict[str, Any]:
        return await self.update_properties({"gridProperties": grid_properties})

    async def resize(
        self, row_count: int | None = None, column_count: int | None = None
    ) -> dict[str, Any]:
        """Change the grid size. Cached cells outside the new bounds are dropped."""
        grid: GridProperties = {}
        if row_count is not None:
            grid["rowCount"] = row_count
        if column_count is not None:
            grid["columnCount"] = column_count
        if not grid:
            raise ValueError("Pass row_count and/or column_count")
        return await self.update_grid_properties(grid)

    async def freeze_rows(self, count: int) -> dict[str, Any]:
        return await self.update_grid_properties({"frozenRowCount": count})

    async def freeze_columns(self, count: int) -> dict[str, Any]:
        return await self.update_grid_properties({"frozenColumnCount": count})

    async def update_dimension_properties(
        self,
        dimension: str,
        properties: Mapping[str, Any],
        start_index: int | None = None,
        end_index: int | None = None,
    ) -> dict[str, Any]:
        """Update row/column properties such as pixelSize or hiddenByUser."""
        _check_dimension(dimension)
        dimension_range: dict[str, Any] = {
            "sheetId": self.sheet_id,
            "dimension": dimension,
        }
        if start_index is not None:
            dimension_range["startIndex"] = start_index
        if end_index is not None:
            dimension_range["endIndex"] = end_index
        return await self._make_single_update_request(
            "updateDimensionProperties",
            {
                "range": dimension_range,
                "properties": dict(properties),
                "fields": get_field_mask(properties),
            },
        )

    async def insert_dimension(
        self,
        dimension: str,
        start_index: int,
        end_index: int,
        inherit_from_before: bool | None = None,
    ) -> dict[str, Any]:
        """Insert empty rows or columns in [start_index, end_index).

        `inherit_from_before` defaults to True unless inserting at index 0.
        """
        _check_dimension(dimension)
        _check_span(start_index, end_index)
        if inherit_from_before is None:
            inherit_from_before = start_index > 0
        if inherit_from_before and start_index == 0:
            raise ValueError(
                "Cannot inherit from before when inserting at the first row/column"
            )
        snapshot = [list(row) for row in self._cells]
        reply = await self._make_single_update_request(
            "insertDimension",
            {
                "range": {
                    "sheetId": self.sheet_id,
                    "dimension": dimension,
                    "startIndex": start_index,
                    "endIndex": end_index,
                },
                "inheritFromBefore": inherit_from_before,
            },
        )
        self._splice_cells(snapshot, dimension, start_index, end_index, insert=True)
        logger.debug(
            "Inserted %s %d-%d into %r", dimension, start_index, end_index, self.title
        )
        return reply

    async def delete_dimension(
        self, dimension: str, start_index: int, end_index: int
    ) -> dict[str, Any]:
        """Delete rows or columns in [start_index, end_index)."""
        _check_dimension(dimension)
        _check_span(start_index, end_index)
        snapshot = [list(row) for row in self._cells]
        reply = await self._make_single_update_request(
            "deleteDimension",
            {
                "range": {
                    "sheetId": self.sheet_id,
                    "dimension": dimension,
                    "startIndex": start_index,
                    "endIndex": end_index,
                }
            },
        )
        self._splice_cells(snapshot, dimension, start_index, end_index, insert=False)
        logger.debug(
            "Deleted %s %d-%d from %r", dimension, start_index, end_index, self.title
        )
        return reply

    async def delete_range(
        self, grid_range: GridRange, shift_dimension: str = "ROWS"
    ) -> dict[str, Any]:
        """Delete a range of cells, shifting the remaining ones into its place."""
        _check_dimension(shift_dimension)
        full_range = self._add_sheet_id_to_range(grid_range)
        reply = await self._make_single_update_request(
            "deleteRange", {"range": full_range, "shiftDimension": shift_dimension}
        )
        self._shift_cells_after_delete_range(full_range, shift_dimension)
        return reply

    async def merge_cells(
        self, grid_range: GridRange, merge_type: str = "MERGE_ALL"
    ) -> dict[str, Any]:
        return await self._make_single_update_request(
            "mergeCells",
            {"mergeType": merge_type, "range": self._add_sheet_id_to_range(grid_range)},
        )

    async def unmerge_cells(self, grid_range: GridRange) -> dict[str, Any]:
        return await self._make_single_update_request(
            "unmergeCells", {"range": self._add_sheet_id_to_range(grid_range)}
        )

    async def duplicate(
        self,
        title: str | None = None,
        index: int | None = None,
        sheet_id: int | None = None,
    ) -> Worksheet:
        """Duplicate this sheet and return the new Worksheet."""
        params: dict[str, Any] = {"sourceSheetId": self.sheet_id}
        if index is not None:
            params["insertSheetIndex"] = index
        if sheet_id is not None:
            params["newSheetId"] = sheet_id
        if title is not None:
            params["newSheetName"] = title
        reply = await self._make_single_update_request("duplicateSheet", params)
        return self.spreadsheet.sheets_by_id[reply["properties"]["sheetId"]]

    async def copy_to_spreadsheet(
        self, destination_spreadsheet_id: str
    ) -> dict[str, Any]:
        """Copy this sheet into another spreadsheet; returns its SheetProperties."""
        return await self.spreadsheet.sheets_api.post(
            f"/sheets/{self.sheet_id}:copyTo",
            json={"destinationSpreadsheetId": destination_spreadsheet_id},
        )

    async def clear(self, a1_range: str | None = None) -> None:
        """Clear values of the whole sheet, or of `a1_range` within it."""
        target = f"{self.a1_sheet_name}!{a1_range}" if a1_range else self.a1_sheet_name
        await self.spreadsheet.sheets_api.post(f"/values/{quote(target, safe='')}:clear")
        self.reset_local_cache(data_only=True)

    async def delete(self) -> None:
        await self.spreadsheet.delete_sheet(self.sheet_id)

    # -- Values and rows --

    async def get_cells_in_range(
        self,
        a1_range: str,
        *,
        value_render_option: str | None = None,
        date_time_render_option: str | None = None,
    ) -> list[list[Any]]:
        """Read raw values of `a1_range` (relative to this sheet) row by row."""
        target = f"{self.a1_sheet_name}!{a1_range}"
        response = await self.spreadsheet.sheets_api.get(
            f"/values/{quote(target, safe='')}",
            params={
                "valueRenderOption": value_render_option,
                "dateTimeRenderOption": date_time_render_option,
            },
        )
        values: list[list[Any]] = response.get("values", [])
        return values

    @property
    def header_row_index(self) -> int:
        return self._header_row_index

    @property
    def header_values(self) -> list[str]:
        if self._header_values is None:
            raise HeadersNotLoadedError()
        return self._header_values

    async def load_header_row(self, header_row_index: int | None = None) -> list[str]:
        """Fetch the header row (default: the current header row index, 1)."""
        if header_row_index is not None:
            self._header_row_index = header_row_index
        row = self._header_row_index
        rows = await self.get_cells_in_range(f"A{row}:{self.last_column_letter}{row}")
        if not rows:
            raise InvalidHeaderError(
                f"No values in header row {row} - fill it with header values "
                "before interacting with rows"
            )
        headers = ["" if h is None else str(h).strip() for h in rows[0]]
        named = [h for h in headers if h]
        if not named:
            raise InvalidHeaderError(f"All header cells in row {row} are blank")
        if len(set(named)) != len(named):
            raise InvalidHeaderError(
                f"Duplicate header detected in row {row} - headers must be unique"
            )
        self._header_values = headers
        return headers

    async def _ensure_header_row_loaded(self) -> None:
        if self._header_values is None:
            await self.load_header_row()

    async def set_header_row(
        self, header_values: Sequence[str], header_row_index: int | None = None
    ) -> list[str]:
        """Write `header_values` into the header row and cache them.

        The rest of the row is blanked out so stale headers don't linger.

        Raises:
            InvalidHeaderError: For blank or duplicate names, or more headers
                than the sheet has columns.
        """
        if not header_values:
            raise InvalidHeaderError("Header values cannot be empty")
        if len(header_values) > self.column_count:
            raise InvalidHeaderError(
                f"Sheet is not large enough to fit {len(header_values)} columns. "
                "Resize the sheet first."
            )
        trimmed: list[str] = []
        for header in header_values:
            if not isinstance(header, str) or not header.strip():
                raise InvalidHeaderError(
                    f"Header values must be non-empty strings, got {header!r}"
                )
            trimmed.append(header.strip())
        if len(set(trimmed)) != len(trimmed):
            raise InvalidHeaderError("Duplicate header detected - headers must be unique")

        if header_row_index is not None:
            self._header_row_index = header_row_index
        row = self._header_row_index
        target = f"{self.a1_sheet_name}!{row}:{row}"
        response = await self.spreadsheet.sheets_api.put(
            f"/values/{quote(target, safe='')}",
            params={"valueInputOption": "USER_ENTERED", "includeValuesInResponse": True},
            json={
                "range": target,
                "majorDimension": "ROWS",
                "values": [trimmed + [""] * (self.column_count - len(trimmed))],
            },
        )
        echoed = response.get("updatedData", {}).get("values") or [trimmed]
        self._header_values = [str(value) for value in echoed[0]]
        return self._header_values

    async def get_rows(self, offset: int = 0, limit: int | None = None) -> list[Row]:
        """Fetch the data rows below the header row, in sheet order.

        Args:
            offset: Number of data rows to skip
            limit: Maximum number of rows (default: all remaining rows)
        """
        await self._ensure_header_row_loaded()
        first_row = self._header_row_index + 1 + offset
        if limit is None:
            limit = self.row_count - first_row + 1
        if limit <= 0:
            return []
        last_row = first_row + limit - 1
        last_column = column_index_to_letter(len(self.header_values) - 1)
        values = await self.get_cells_in_range(
            f"A{first_row}:{last_column}{last_row}"
        )
        return [
            Row(self, first_row + i, row_values) for i, row_values in enumerate(values)
        ]

    async def add_row(
        self,
        values: Mapping[str, Any] | Sequence[Any],
        *,
        raw: bool = False,
        insert: bool = False,
    ) -> Row:
        rows = await self.add_rows([values], raw=raw, insert=insert)
        return rows[0]

    async def add_rows(
        self,
        rows: Sequence[Mapping[str, Any] | Sequence[Any]],
        *,
        raw: bool = False,
        insert: bool = False,
    ) -> list[Row]:
        """Append rows after the last row of the table.

        Mapping rows are laid out through the header row; sequence rows are
        used positionally.

        Args:
            rows: Rows to append
            raw: Store values as-is instead of parsing them as user input
            insert: Insert new grid rows instead of overwriting empty ones

        Raises:
            InvalidRowError: For unknown header keys or non-scalar values.
        """
        if not rows:
            return []
        if ":" in self.title:
            raise InvalidRowError(
                "Please remove the ':' from the sheet title - the append "
                "endpoint cannot handle colons in sheet titles"
            )
        await self._ensure_header_row_loaded()
        headers = self.header_values
        rows_as_lists = [_row_to_list(row, headers) for row in rows]

        anchor = f"{self.a1_sheet_name}!A{self._header_row_index}"
        response = await self.spreadsheet.sheets_api.post(
            f"/values/{quote(anchor, safe='')}:append",
            params={
                "valueInputOption": "RAW" if raw else "USER_ENTERED",
                "insertDataOption": "INSERT_ROWS" if insert else "OVERWRITE",
                "includeValuesInResponse": True,
            },
            json={"values": rows_as_lists},
        )
        updates = response.get("updates", {})
        first_row = row_number_from_updated_range(updates["updatedRange"])

        row_count = self.row_count
        if insert:
            row_count += len(rows_as_lists)
        else:
            row_count = max(row_count, first_row + len(rows_as_lists) - 1)
        if self._properties is not None:
            self._properties.setdefault("gridProperties", {})["rowCount"] = row_count
        if self._cells:
            self._fit_cells()

        echoed = updates.get("updatedData", {}).get("values", [])
        return [
            Row(self, first_row + i, echoed[i] if i < len(echoed) else [])
            for i in range(len(rows_as_lists))
        ]

    async def clear_rows(self, start: int | None = None, end: int | None = None) -> None:
        """Clear the values of rows `start`..`end` (1-based, inclusive).

        Defaults to every row below the header row. Formatting is kept.
        Previously fetched Row objects are not updated.
        """
        start = start or self._header_row_index + 1
        end = end or self.row_count
        target = f"{self.a1_sheet_name}!{start}:{end}"
        await self.spreadsheet.sheets_api.post(f"/values/{quote(target, safe='')}:clear")
        self._clear_cached_values(start - 1, end - 1)

    # -- Cells --

    def get_cell(self, row_index: int, column_index: int) -> Cell:
        """Return the cached cell at zero-based (row_index, column_index).

        Raises:
            CellOutOfBoundsError: If the coordinate is outside the grid.
            CellNotLoadedError: If the cell was never loaded.
        """
        if (
            row_index < 0
            or column_index < 0
            or row_index >= self.row_count
            or column_index >= self.column_count
        ):
            raise CellOutOfBoundsError(
                row_index, column_index, self.row_count, self.column_count
            )
        cell = None
        if row_index < len(self._cells) and column_index < len(self._cells[row_index]):
            cell = self._cells[row_index][column_index]
        if cell is None:
            raise CellNotLoadedError(cell_to_a1(row_index, column_index))
        return cell

    def get_cell_by_a1(self, a1_address: str) -> Cell:
        row_index, column_index = a1_to_cell(a1_address)
        return self.get_cell(row_index, column_index)

    async def load_cells(
        self, filters: DataFilter | Sequence[DataFilter] | None = None
    ) -> None:
        """Load cells of this sheet into the cache (all cells if no filters)."""
        if filters is None:
            await self.spreadsheet.load_cells([self.a1_sheet_name])
            return
        if isinstance(filters, (str, Mapping)):
            filters = [filters]
        scoped: list[DataFilter] = []
        for sheet_filter in filters:
            if isinstance(sheet_filter, str):
                if sheet_filter.startswith(f"{self.a1_sheet_name}!"):
                    scoped.append(sheet_filter)
                else:
                    scoped.append(f"{self.a1_sheet_name}!{sheet_filter}")
            elif isinstance(sheet_filter, Mapping):
                scoped.append(self._add_sheet_id_to_range(sheet_filter))
            else:
                raise TypeError(
                    "Each filter must be an A1 range string or a GridRange mapping"
                )
        await self.spreadsheet.load_cells(scoped)

    async def save_updated_cells(self) -> None:
        """Save every cell with unsaved changes in one batch."""
        dirty = [
            cell
            for row in self._cells
            for cell in row
            if cell is not None and cell.is_dirty
        ]
        if dirty:
            await self.save_cells(dirty)

    async def save_cells(self, cells: Sequence[Cell]) -> None:
        """Save `cells` in one batch update and refresh them from the echo."""
        requests = []
        for cell in cells:
            update = cell._get_update_request()
            if update is not None:
                requests.append(update)
        if not requests:
            raise ValueError("At least one cell must have something to update")
        response_ranges = [f"{self.a1_sheet_name}!{cell.a1_address}" for cell in cells]
        await self.spreadsheet._make_batch_update_request(requests, response_ranges)

    # -- Export --

    async def download_as_csv(self) -> bytes:
        return await self.spreadsheet.download_as("csv", self.sheet_id)

    async def download_as_tsv(self) -> bytes:
        return await self.spreadsheet.download_as("tsv", self.sheet_id)

    async def download_as_pdf(self) -> bytes:
        return await self.spreadsheet.download_as("pdf", self.sheet_id)

    def stream_download_as(self, file_type: str) -> AsyncIterator[bytes]:
        """Stream this sheet exported as csv, tsv or pdf."""
        return self.spreadsheet.stream_download_as(file_type, self.sheet_id)


def _check_dimension(dimension: str) -> None:
    if dimension not in DIMENSIONS:
        raise ValueError(f"dimension must be one of {DIMENSIONS}, got {dimension!r}")


def _check_span(start_index: int, end_index: int) -> None:
    if start_index < 0 or end_index < 0:
        raise ValueError("start_index and end_index must be >= 0")
    if end_index <= start_index:
        raise ValueError("end_index must be greater than start_index")


def _row_to_list(
    row: Mapping[str, Any] | Sequence[Any], headers: Sequence[str]
) -> list[Any]:
    """Lay out one row to append as a positional list of scalar values."""
    if isinstance(row, Mapping):
        unknown = [key for key in row if not key or key not in headers]
        if unknown:
            names = ', '.join(map(repr, unknown))
            raise InvalidRowError(f"Unknown header key(s): {names}")
        values = [row.get(header, "") if header else "" for header in headers]
    elif isinstance(row, Sequence) and not isinstance(row, str):
        values = list(row)
    else:
        raise InvalidRowError("Each row must be a mapping or a sequence of values")
    for value in values:
        if value is not None and not isinstance(value, _PRIMITIVES):
            raise InvalidRowError(
                f"Row values must be str, number, bool or None, "
                f"got {type(value).__name__}"
            )
    return values
