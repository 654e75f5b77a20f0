"""Row view: a header-keyed projection over one line of worksheet values.

Rows are snapshots. Any structural change to the sheet (inserting or deleting
rows elsewhere, clearing rows, resizing) can leave a Row pointing at the wrong
physical line; call `Worksheet.get_rows()` again after such changes.
"""

from __future__ import annotations

import weakref
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from extragrid.exceptions import RowDeletedError
from extragrid.utils import column_index_to_letter, deref

if TYPE_CHECKING:
    from extragrid.worksheet import Worksheet


class Row:
    """One data row of a worksheet, addressed through the header row."""

    def __init__(
        self, worksheet: Worksheet, row_number: int, raw_data: list[Any]
    ) -> None:
        """Initialize the row.

        Args:
            worksheet: The worksheet the row belongs to
            row_number: A1 row number (1-based)
            raw_data: Backing values, positionally aligned with the headers
        """
        self._worksheet_ref = weakref.ref(worksheet)
        self._row_number = row_number
        self._raw_data = list(raw_data)
        self._deleted = False

    def __repr__(self) -> str:
        return f"<Row {self._row_number} of {self.worksheet.title!r}>"

    @property
    def worksheet(self) -> Worksheet:
        return deref(self._worksheet_ref, "worksheet")

    @property
    def row_number(self) -> int:
        return self._row_number

    @property
    def deleted(self) -> bool:
        return self._deleted

    @property
    def raw_data(self) -> list[Any]:
        return list(self._raw_data)

    @property
    def a1_range(self) -> str:
        """The A1 range spanning this row across the header width."""
        last_column = column_index_to_letter(len(self.worksheet.header_values) - 1)
        return (
            f"{self.worksheet.a1_sheet_name}!"
            f"A{self._row_number}:{last_column}{self._row_number}"
        )

    def get(self, key: str) -> Any:
        """Return the value under header `key`, or None if there is none."""
        headers = self.worksheet.header_values
        if not key or key not in headers:
            return None
        index = headers.index(key)
        if index >= len(self._raw_data):
            return None
        return self._raw_data[index]

    def set(self, key: str, value: Any) -> None:
        """Set the value under header `key` (locally, until `save()`)."""
        index = self._header_index(key)
        if index >= len(self._raw_data):
            self._raw_data.extend([""] * (index + 1 - len(self._raw_data)))
        self._raw_data[index] = value

    def assign(self, values: Mapping[str, Any]) -> None:
        """Set several values at once. Nothing changes if any key is unknown."""
        indexes = {key: self._header_index(key) for key in values}
        for key, value in values.items():
            index = indexes[key]
            if index >= len(self._raw_data):
                self._raw_data.extend([""] * (index + 1 - len(self._raw_data)))
            self._raw_data[index] = value

    def to_dict(self) -> dict[str, Any]:
        """Return the row as a header -> value mapping (blank headers skipped)."""
        result: dict[str, Any] = {}
        for index, header in enumerate(self.worksheet.header_values):
            if not header:
                continue
            result[header] = (
                self._raw_data[index] if index < len(self._raw_data) else None
            )
        return result

    async def save(self, *, raw: bool = False) -> None:
        """Write the row values back and refresh them from the echoed data.

        Args:
            raw: If True values are stored as-is, otherwise they are parsed as
                if typed by a user (formulas, numbers, dates)

        Raises:
            RowDeletedError: If the row was deleted.
        """
        if self._deleted:
            raise RowDeletedError(self._row_number)
        a1_range = self.a1_range
        response = await self.worksheet.spreadsheet.sheets_api.put(
            f"/values/{quote(a1_range, safe='')}",
            params={
                "valueInputOption": "RAW" if raw else "USER_ENTERED",
                "includeValuesInResponse": True,
            },
            json={
                "range": a1_range,
                "majorDimension": "ROWS",
                "values": [self._raw_data],
            },
        )
        updated_values = response.get("updatedData", {}).get("values") or [[]]
        self._raw_data = list(updated_values[0])

    async def delete(self) -> dict[str, Any]:
        """Delete this row, shifting the rows below it up.

        Raises:
            RowDeletedError: If the row was already deleted.
        """
        if self._deleted:
            raise RowDeletedError(self._row_number)
        result = await self.worksheet.delete_range(
            {
                "startRowIndex": self._row_number - 1,
                "endRowIndex": self._row_number,
            },
            shift_dimension="ROWS",
        )
        self._deleted = True
        return result

    def _header_index(self, key: str) -> int:
        headers = self.worksheet.header_values
        if not key or key not in headers:
            raise KeyError(f"No header named {key!r} in {self.worksheet.title!r}")
        return headers.index(key)
