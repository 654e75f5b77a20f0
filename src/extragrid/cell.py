"""Cell view: one addressable position of a worksheet grid."""

from __future__ import annotations

import math
import weakref
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Generic, TypeVar, Union, overload

from extragrid.exceptions import UnsavedCellError
from extragrid.utils import column_index_to_letter, deref

if TYPE_CHECKING:
    from collections.abc import Mapping

    from extragrid.api_types import CellData, ErrorValue
    from extragrid.worksheet import Worksheet

_T = TypeVar("_T")


@dataclass(frozen=True)
class FormulaError:
    """An evaluation error reported by the service for a cell (e.g. #DIV/0!).

    Returned as the cell's value instead of being raised.
    """

    type: str
    message: str

    @classmethod
    def from_api(cls, error: ErrorValue) -> FormulaError:
        return cls(type=error.get("type", "ERROR"), message=error.get("message", ""))


CellValue = Union[str, float, int, bool, None, FormulaError]


class _FormatField(Generic[_T]):
    """Descriptor exposing one key of the cell's userEnteredFormat."""

    def __init__(self, api_name: str) -> None:
        self.api_name = api_name

    @overload
    def __get__(self, cell: None, owner: type[Cell]) -> _FormatField[_T]: ...

    @overload
    def __get__(self, cell: Cell, owner: type[Cell]) -> _T | None: ...

    def __get__(self, cell: Cell | None, owner: type[Cell]) -> Any:
        if cell is None:
            return self
        return cell._get_format_param(self.api_name)

    def __set__(self, cell: Cell, value: _T | None) -> None:
        cell._set_format_param(self.api_name, value)


class Cell:
    """A single cell of a worksheet with its cached remote data.

    Changes (value, note, formatting) are kept as a local draft until
    `save()` (or the worksheet's `save_updated_cells()`) sends them; the
    echoed cell data then replaces both the raw data and the draft.
    """

    number_format: _FormatField[dict[str, Any]] = _FormatField("numberFormat")
    background_color: _FormatField[dict[str, Any]] = _FormatField("backgroundColor")
    background_color_style: _FormatField[dict[str, Any]] = _FormatField(
        "backgroundColorStyle"
    )
    borders: _FormatField[dict[str, Any]] = _FormatField("borders")
    padding: _FormatField[dict[str, Any]] = _FormatField("padding")
    horizontal_alignment: _FormatField[str] = _FormatField("horizontalAlignment")
    vertical_alignment: _FormatField[str] = _FormatField("verticalAlignment")
    wrap_strategy: _FormatField[str] = _FormatField("wrapStrategy")
    text_direction: _FormatField[str] = _FormatField("textDirection")
    text_format: _FormatField[dict[str, Any]] = _FormatField("textFormat")
    hyperlink_display_type: _FormatField[str] = _FormatField("hyperlinkDisplayType")
    text_rotation: _FormatField[dict[str, Any]] = _FormatField("textRotation")

    def __init__(
        self,
        worksheet: Worksheet,
        row_index: int,
        column_index: int,
        raw_data: CellData | None = None,
    ) -> None:
        self._worksheet_ref = weakref.ref(worksheet)
        self._row_index = row_index
        self._column_index = column_index
        self._raw_data: CellData = {}
        self._draft: dict[str, Any] = {}
        self._error: FormulaError | None = None
        self._update_raw_data(raw_data)

    def __repr__(self) -> str:
        return f"<Cell {self.a1_address} raw={self._raw_data!r}>"

    def _update_raw_data(self, raw_data: CellData | None) -> None:
        self._raw_data = raw_data or {}
        self._draft = {}
        error = self._raw_data.get("effectiveValue", {}).get("errorValue")
        self._error = FormulaError.from_api(error) if error is not None else None

    # -- Coordinates --

    @property
    def worksheet(self) -> Worksheet:
        return deref(self._worksheet_ref, "worksheet")

    @property
    def row_index(self) -> int:
        return self._row_index

    @property
    def column_index(self) -> int:
        return self._column_index

    @property
    def a1_row(self) -> int:
        return self._row_index + 1

    @property
    def a1_column(self) -> str:
        return column_index_to_letter(self._column_index)

    @property
    def a1_address(self) -> str:
        return f"{self.a1_column}{self.a1_row}"

    # -- Values --

    @property
    def value(self) -> CellValue:
        """The effective (computed) value, or a FormulaError.

        Raises:
            UnsavedCellError: If a new value was set but not saved yet.
        """
        if "value" in self._draft:
            raise UnsavedCellError(
                f"Value of {self.a1_address} has been changed - save the cell "
                "to read its computed value"
            )
        if self._error is not None:
            return self._error
        effective = self._raw_data.get("effectiveValue")
        if not effective:
            return None
        return next(iter(effective.values()))  # type: ignore[no-any-return]

    @value.setter
    def value(self, new_value: CellValue) -> None:
        if isinstance(new_value, FormulaError):
            raise TypeError("A cell value cannot be set to an error")
        if isinstance(new_value, bool):
            value_type = "boolValue"
        elif isinstance(new_value, str):
            value_type = "formulaValue" if new_value.startswith("=") else "stringValue"
        elif isinstance(new_value, (int, float)):
            if not math.isfinite(new_value):
                raise ValueError("Numeric cell values must be finite")
            value_type = "numberValue"
        elif new_value is None:
            value_type, new_value = "stringValue", ""
        else:
            raise TypeError(
                f"Cell value must be a bool, str, number or None, "
                f"got {type(new_value).__name__}"
            )
        self._draft["value_type"] = value_type
        self._draft["value"] = new_value

    @property
    def value_type(self) -> str | None:
        """The ExtendedValue key of the effective value, e.g. "numberValue"."""
        if self._error is not None:
            return "errorValue"
        effective = self._raw_data.get("effectiveValue")
        if not effective:
            return None
        return next(iter(effective))

    @property
    def formatted_value(self) -> str | None:
        return self._raw_data.get("formattedValue")

    @property
    def formula(self) -> str | None:
        """The formula the user authored, if any.

        A pending literal value hides the stored formula, since saving it
        replaces the formula.
        """
        if "value" in self._draft:
            if self._draft["value_type"] == "formulaValue":
                return self._draft["value"]  # type: ignore[no-any-return]
            return None
        return self._raw_data.get("userEnteredValue", {}).get("formulaValue")

    @formula.setter
    def formula(self, new_formula: str) -> None:
        if not new_formula:
            raise ValueError("To clear a formula, set `cell.value = None`")
        if not new_formula.startswith("="):
            raise ValueError('Formula must begin with "="')
        self.value = new_formula

    @property
    def error_value(self) -> FormulaError | None:
        return self._error

    @property
    def number_value(self) -> float | None:
        return self.value if self.value_type == "numberValue" else None  # type: ignore[return-value]

    @number_value.setter
    def number_value(self, new_value: float) -> None:
        self.value = new_value

    @property
    def bool_value(self) -> bool | None:
        return self.value if self.value_type == "boolValue" else None  # type: ignore[return-value]

    @bool_value.setter
    def bool_value(self, new_value: bool) -> None:
        self.value = new_value

    @property
    def string_value(self) -> str | None:
        return self.value if self.value_type == "stringValue" else None  # type: ignore[return-value]

    @string_value.setter
    def string_value(self, new_value: str) -> None:
        if new_value.startswith("="):
            raise ValueError("Use `cell.formula` to set a formula")
        self.value = new_value

    @property
    def hyperlink(self) -> str | None:
        if "value" in self._draft:
            raise UnsavedCellError("Save the cell to be able to read its hyperlink")
        return self._raw_data.get("hyperlink")

    @property
    def note(self) -> str:
        if "note" in self._draft:
            return self._draft["note"]  # type: ignore[no-any-return]
        return self._raw_data.get("note", "")

    @note.setter
    def note(self, new_note: str | None) -> None:
        if new_note is None:
            new_note = ""
        if not isinstance(new_note, str):
            raise TypeError("Note must be a string")
        if new_note == self._raw_data.get("note", ""):
            self._draft.pop("note", None)
        else:
            self._draft["note"] = new_note

    # -- Formatting --

    @property
    def user_entered_format(self) -> Mapping[str, Any]:
        return MappingProxyType(dict(self._raw_data.get("userEnteredFormat", {})))

    @property
    def effective_format(self) -> Mapping[str, Any]:
        return MappingProxyType(dict(self._raw_data.get("effectiveFormat", {})))

    def _get_format_param(self, name: str) -> Any:
        if name in self._draft.get("format", {}):
            raise UnsavedCellError(
                f"{name} of {self.a1_address} is unsaved - save the cell to read it"
            )
        value = self._raw_data.get("userEnteredFormat", {}).get(name)
        if isinstance(value, dict):
            return MappingProxyType(value)
        return value

    def _set_format_param(self, name: str, value: Any) -> None:
        current = self._raw_data.get("userEnteredFormat", {}).get(name)
        draft_format: dict[str, Any] = self._draft.setdefault("format", {})
        if value == current:
            draft_format.pop(name, None)
        else:
            draft_format[name] = value
            self._draft["clear_format"] = False

    def clear_all_formatting(self) -> None:
        """Mark the cell's user-entered format to be reset on the next save."""
        self._draft["clear_format"] = True
        self._draft.pop("format", None)

    # -- Saving --

    @property
    def is_dirty(self) -> bool:
        return (
            "value" in self._draft
            or "note" in self._draft
            or bool(self._draft.get("format"))
            or bool(self._draft.get("clear_format"))
        )

    def discard_unsaved_changes(self) -> None:
        self._draft = {}

    async def save(self) -> None:
        """Save this cell alone; see `Worksheet.save_cells` for batching."""
        await self.worksheet.save_cells([self])

    def _get_update_request(self) -> dict[str, Any] | None:
        """Build the updateCells request for the pending draft, or None."""
        value_updated = "value" in self._draft
        note_updated = "note" in self._draft
        format_updated = bool(self._draft.get("format"))
        format_cleared = bool(self._draft.get("clear_format"))
        if not (value_updated or note_updated or format_updated or format_cleared):
            return None

        cell_data: dict[str, Any] = {}
        fields: list[str] = []
        if value_updated:
            cell_data["userEnteredValue"] = {
                self._draft["value_type"]: self._draft["value"]
            }
            fields.append("userEnteredValue")
        if note_updated:
            cell_data["note"] = self._draft["note"]
            fields.append("note")
        if format_cleared:
            cell_data["userEnteredFormat"] = {}
            fields.append("userEnteredFormat")
        elif format_updated:
            # the whole format is sent, otherwise unspecified keys are cleared
            user_format: dict[str, Any] = {
                **self._raw_data.get("userEnteredFormat", {}),
                **self._draft["format"],
            }
            if "backgroundColor" in self._draft["format"]:
                user_format.pop("backgroundColorStyle", None)
            cell_data["userEnteredFormat"] = user_format
            fields.append("userEnteredFormat")

        return {
            "updateCells": {
                "rows": [{"values": [cell_data]}],
                "fields": ",".join(fields),
                "start": {
                    "sheetId": self.worksheet.sheet_id,
                    "rowIndex": self._row_index,
                    "columnIndex": self._column_index,
                },
            }
        }