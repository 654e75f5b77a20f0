"""Exceptions raised by extragrid."""

from __future__ import annotations


class ExtragridError(Exception):
    """Base exception for all extragrid errors."""


class NotLoadedError(ExtragridError):
    """Raised when cached state is accessed before it has been loaded."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Spreadsheet info is not loaded - call `load_info()` before accessing it"
        )


class CellNotLoadedError(NotLoadedError):
    """Raised when a cell inside the grid has never been fetched."""

    def __init__(self, a1_address: str) -> None:
        self.a1_address = a1_address
        super().__init__(
            f"Cell {a1_address} has not been loaded yet - call `load_cells()` first"
        )


class HeadersNotLoadedError(ExtragridError):
    """Raised when header values are read before the header row was fetched."""

    def __init__(self) -> None:
        super().__init__(
            "Header values are not yet loaded - call `load_header_row()` first"
        )


class InvalidHeaderError(ExtragridError, ValueError):
    """Raised when header values are blank, duplicated or don't fit the sheet."""


class InvalidRowError(ExtragridError, ValueError):
    """Raised when row values cannot be mapped onto the header row."""


class RowDeletedError(ExtragridError):
    """Raised when a deleted row is saved or deleted again."""

    def __init__(self, row_number: int) -> None:
        self.row_number = row_number
        super().__init__(
            f"Row {row_number} has been deleted - call `get_rows()` again "
            "before making updates"
        )


class CellOutOfBoundsError(ExtragridError, IndexError):
    """Raised when cell coordinates fall outside the known grid."""

    def __init__(
        self, row_index: int, column_index: int, row_count: int, column_count: int
    ) -> None:
        self.row_index = row_index
        self.column_index = column_index
        super().__init__(
            f"Cell ({row_index}, {column_index}) is out of bounds, "
            f"sheet is {row_count} by {column_count}"
        )


class UnsavedCellError(ExtragridError):
    """Raised when reading a remote-computed field of a cell with pending edits."""


class InvalidCredentialError(ExtragridError):
    """Raised when a credential has no supported shape or yields no token."""


class UnsupportedFilterError(ExtragridError):
    """Raised when a cell filter is not allowed for the active credential."""


class UnsupportedExportError(ExtragridError):
    """Raised for unknown export formats or a wrong worksheet/document target."""


class RemoteServiceError(ExtragridError):
    """Raised when the service answers with a structured error body."""

    def __init__(self, message: str, status_code: int, code: int | None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class PrivateDocumentError(ExtragridError):
    """Raised when an API key is used against a document that is not public."""

    def __init__(self) -> None:
        super().__init__(
            "Spreadsheet is private. Use a token or service account credential, "
            "or make the document public."
        )
