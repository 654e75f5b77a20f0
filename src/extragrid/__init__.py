"""extragrid - Cached, batch-synchronized object model for Google Sheets.

Spreadsheets, worksheets, rows and cells are plain Python objects backed by a
local cache that is kept in sync with the Sheets v4 and Drive v3 REST APIs.
"""

__version__ = "0.1.0"

from extragrid.cell import Cell, FormulaError
from extragrid.config import Settings, get_settings
from extragrid.credentials import (
    AccessToken,
    ApiKey,
    AuthMode,
    ServiceAccount,
    TokenProvider,
    as_credential,
)
from extragrid.exceptions import (
    CellNotLoadedError,
    CellOutOfBoundsError,
    ExtragridError,
    HeadersNotLoadedError,
    InvalidCredentialError,
    InvalidHeaderError,
    InvalidRowError,
    NotLoadedError,
    PrivateDocumentError,
    RemoteServiceError,
    RowDeletedError,
    UnsavedCellError,
    UnsupportedExportError,
    UnsupportedFilterError,
)
from extragrid.row import Row
from extragrid.spreadsheet import Spreadsheet
from extragrid.worksheet import Worksheet

__all__ = [
    "AccessToken",
    "ApiKey",
    "AuthMode",
    "Cell",
    "CellNotLoadedError",
    "CellOutOfBoundsError",
    "ExtragridError",
    "FormulaError",
    "HeadersNotLoadedError",
    "InvalidCredentialError",
    "InvalidHeaderError",
    "InvalidRowError",
    "NotLoadedError",
    "PrivateDocumentError",
    "RemoteServiceError",
    "Row",
    "RowDeletedError",
    "ServiceAccount",
    "Settings",
    "Spreadsheet",
    "TokenProvider",
    "UnsavedCellError",
    "UnsupportedExportError",
    "UnsupportedFilterError",
    "Worksheet",
    "__version__",
    "as_credential",
    "get_settings",
]
