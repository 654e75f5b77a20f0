"""Document cache: a Google Sheets spreadsheet and its worksheets.

A `Spreadsheet` starts unloaded; `load_info()` fetches document properties
and sheet metadata. Every mutation goes through a batchUpdate request with
``includeSpreadsheetInResponse`` and the echoed document is merged back into
the cache by `_apply_spreadsheet_payload`, the single merge path.

Example:
    async with Spreadsheet(doc_id, ServiceAccount.from_file("key.json")) as doc:
        await doc.load_info()
        sheet = doc.sheets_by_index[0]
        rows = await sheet.get_rows()
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Literal

import httpx

from extragrid.api_types import PERMISSION_FIELDS
from extragrid.config import Settings, get_settings
from extragrid.credentials import AuthMode, Credential, as_credential
from extragrid.exceptions import (
    InvalidCredentialError,
    NotLoadedError,
    UnsupportedExportError,
    UnsupportedFilterError,
)
from extragrid.transport import ApiClient
from extragrid.utils import get_field_mask
from extragrid.worksheet import Worksheet

if TYPE_CHECKING:
    from extragrid.api_types import (
        DataFilter,
        GridRange,
        Permission,
        PermissionRole,
        PublicPermissionRole,
        SheetProperties,
        SpreadsheetProperties,
    )
    from extragrid.api_types import Spreadsheet as SpreadsheetPayload

logger = logging.getLogger(__name__)

# Export formats; True means the format covers one worksheet only
EXPORT_FORMATS: dict[str, bool] = {
    "html": False,
    "zip": False,
    "xlsx": False,
    "ods": False,
    "csv": True,
    "tsv": True,
    "pdf": True,
}


class Spreadsheet:
    """A spreadsheet document and its local cache."""

    def __init__(
        self,
        spreadsheet_id: str,
        credential: Any,
        *,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the document handle. Nothing is fetched until `load_info()`.

        Args:
            spreadsheet_id: Document id (the long id in the document URL)
            credential: A Credential variant or anything `as_credential` accepts
            settings: Settings override (default: `get_settings()`)
            transport: Optional httpx transport shared by both API clients
        """
        if not spreadsheet_id:
            raise ValueError("spreadsheet_id is required")
        self._spreadsheet_id = spreadsheet_id
        self._credential: Credential = as_credential(credential)
        self._settings = settings or get_settings()
        self._transport = transport

        self.sheets_api = ApiClient(
            f"{self._settings.sheets_api_base}/{spreadsheet_id}",
            self._credential,
            timeout=self._settings.timeout,
            transport=transport,
        )
        self.drive_api = ApiClient(
            f"{self._settings.drive_api_base}/{spreadsheet_id}",
            self._credential,
            timeout=self._settings.timeout,
            transport=transport,
        )

        self._properties: SpreadsheetProperties | None = None
        self._spreadsheet_url: str | None = None
        self._worksheets: dict[int, Worksheet] = {}
        self._deleted = False

    def __repr__(self) -> str:
        return f"<Spreadsheet {self._spreadsheet_id!r}>"

    async def close(self) -> None:
        """Close both HTTP clients."""
        await self.sheets_api.close()
        await self.drive_api.close()

    async def __aenter__(self) -> Spreadsheet:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # -- Cache --

    def _apply_spreadsheet_payload(self, payload: SpreadsheetPayload) -> None:
        """Merge a document payload (loaded or echoed) into the cache.

        Sheets are upserted by sheetId, so existing Worksheet objects keep
        their identity. Applying the same payload twice is a no-op.
        """
        if "properties" in payload:
            self._properties = payload["properties"]
        if "spreadsheetUrl" in payload:
            self._spreadsheet_url = payload["spreadsheetUrl"]
        for sheet in payload.get("sheets", []):
            properties = sheet["properties"]
            sheet_id = properties["sheetId"]
            worksheet = self._worksheets.get(sheet_id)
            if worksheet is None:
                self._worksheets[sheet_id] = Worksheet(
                    self, properties, sheet.get("data")
                )
            else:
                worksheet._apply_remote(properties, sheet.get("data"))

    def reset_local_cache(self) -> None:
        """Forget everything loaded so far. No remote call is made."""
        self._properties = None
        self._spreadsheet_url = None
        self._worksheets = {}

    def _ensure_info_loaded(self) -> None:
        if self._properties is None:
            raise NotLoadedError()

    def _get_prop(self, name: str) -> Any:
        if self._properties is None:
            raise NotLoadedError()
        return self._properties.get(name)

    # -- Properties --

    @property
    def spreadsheet_id(self) -> str:
        return self._spreadsheet_id

    @property
    def credential(self) -> Credential:
        return self._credential

    @property
    def spreadsheet_url(self) -> str | None:
        return self._spreadsheet_url

    @property
    def deleted(self) -> bool:
        return self._deleted

    @property
    def title(self) -> str:
        return self._get_prop("title")  # type: ignore[no-any-return]

    @property
    def locale(self) -> str | None:
        return self._get_prop("locale")  # type: ignore[no-any-return]

    @property
    def time_zone(self) -> str | None:
        return self._get_prop("timeZone")  # type: ignore[no-any-return]

    @property
    def auto_recalc(self) -> str | None:
        return self._get_prop("autoRecalc")  # type: ignore[no-any-return]

    @property
    def default_format(self) -> dict[str, Any] | None:
        return self._get_prop("defaultFormat")  # type: ignore[no-any-return]

    @property
    def spreadsheet_theme(self) -> dict[str, Any] | None:
        return self._get_prop("spreadsheetTheme")  # type: ignore[no-any-return]

    @property
    def iterative_calculation_settings(self) -> dict[str, Any] | None:
        return self._get_prop("iterativeCalculationSettings")  # type: ignore[no-any-return]

    @property
    def sheet_count(self) -> int:
        self._ensure_info_loaded()
        return len(self._worksheets)

    @property
    def sheets_by_id(self) -> dict[int, Worksheet]:
        self._ensure_info_loaded()
        return self._worksheets

    @property
    def sheets_by_index(self) -> list[Worksheet]:
        self._ensure_info_loaded()
        return sorted(self._worksheets.values(), key=lambda ws: ws.index)

    @property
    def sheets_by_title(self) -> dict[str, Worksheet]:
        self._ensure_info_loaded()
        return {ws.title: ws for ws in self._worksheets.values()}

    # -- Loading --

    async def load_info(self, include_cells: bool = False) -> None:
        """Fetch document properties and every sheet's metadata.

        Args:
            include_cells: Also fetch the full grid data of every sheet
        """
        payload = await self.sheets_api.get(
            params={"includeGridData": True if include_cells else None}
        )
        self._apply_spreadsheet_payload(payload)  # type: ignore[arg-type]

    async def load_cells(
        self, filters: DataFilter | Sequence[DataFilter] | None = None
    ) -> None:
        """Fetch cell data into the worksheet caches.

        Args:
            filters: A1 range strings and/or GridRange mappings. None loads
                every cell of the document.

        Raises:
            UnsupportedFilterError: For GridRange filters under an API key,
                which can only use the plain GET endpoint.
        """
        if filters is None:
            payload = await self.sheets_api.get(params={"includeGridData": True})
            self._apply_spreadsheet_payload(payload)  # type: ignore[arg-type]
            return

        if isinstance(filters, (str, Mapping)):
            filters = [filters]

        if self._credential.mode is AuthMode.API_KEY:
            ranges: list[str] = []
            for sheet_filter in filters:
                if not isinstance(sheet_filter, str):
                    raise UnsupportedFilterError(
                        "Only A1 ranges are supported when fetching cells with "
                        "read-only access (API key)"
                    )
                ranges.append(sheet_filter)
            payload = await self.sheets_api.get(
                params={"includeGridData": True, "ranges": ranges}
            )
        else:
            data_filters: list[dict[str, Any]] = []
            for sheet_filter in filters:
                if isinstance(sheet_filter, str):
                    data_filters.append({"a1Range": sheet_filter})
                elif isinstance(sheet_filter, Mapping):
                    data_filters.append({"gridRange": dict(sheet_filter)})
                else:
                    raise TypeError(
                        "Each filter must be an A1 range string or a GridRange mapping"
                    )
            payload = await self.sheets_api.post(
                ":getByDataFilter",
                json={"includeGridData": True, "dataFilters": data_filters},
            )
        self._apply_spreadsheet_payload(payload)  # type: ignore[arg-type]

    # -- Mutations --

    async def _make_batch_update_request(
        self,
        requests: Sequence[Mapping[str, Any]],
        response_ranges: str | Sequence[str] | None = None,
    ) -> dict[str, Any]:
        """Send a batchUpdate and merge the echoed document.

        Args:
            requests: batchUpdate request objects
            response_ranges: Ranges whose grid data should be echoed, or "*"
                for all grid data

        Returns:
            The raw batchUpdate response
        """
        body: dict[str, Any] = {
            "requests": list(requests),
            "includeSpreadsheetInResponse": True,
        }
        if response_ranges:
            body["responseIncludeGridData"] = True
            if response_ranges != "*":
                if isinstance(response_ranges, str):
                    response_ranges = [response_ranges]
                body["responseRanges"] = list(response_ranges)
        response = await self.sheets_api.post(":batchUpdate", json=body)
        self._apply_spreadsheet_payload(response.get("updatedSpreadsheet", {}))
        return response

    async def _make_single_update_request(
        self, request_type: str, params: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Send one batchUpdate request and return its reply body."""
        response = await self._make_batch_update_request(
            [{request_type: dict(params)}]
        )
        replies = response.get("replies") or [{}]
        reply: dict[str, Any] = (replies[0] or {}).get(request_type, {})
        return reply

    async def update_properties(self, properties: SpreadsheetProperties) -> None:
        """Update document properties such as title, locale or timeZone.

        See https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets#SpreadsheetProperties
        """
        await self._make_single_update_request(
            "updateSpreadsheetProperties",
            {"properties": properties, "fields": get_field_mask(properties)},
        )

    async def add_sheet(
        self,
        properties: SheetProperties | None = None,
        *,
        header_values: Sequence[str] | None = None,
        header_row_index: int | None = None,
    ) -> Worksheet:
        """Add a worksheet, optionally writing its header row.

        Args:
            properties: SheetProperties of the new sheet (title, gridProperties, ...)
            header_values: Header row to write once the sheet exists
            header_row_index: 1-based header row (default 1)
        """
        reply = await self._make_single_update_request(
            "addSheet", {"properties": dict(properties or {})}
        )
        worksheet = self._worksheets[reply["properties"]["sheetId"]]
        logger.info("Added sheet %r to %s", worksheet.title, self._spreadsheet_id)
        if header_values:
            await worksheet.set_header_row(header_values, header_row_index)
        return worksheet

    async def delete_sheet(self, sheet_id: int) -> None:
        await self._make_single_update_request("deleteSheet", {"sheetId": sheet_id})
        self._worksheets.pop(sheet_id, None)
        logger.info("Deleted sheet %s from %s", sheet_id, self._spreadsheet_id)

    async def add_named_range(
        self, name: str, grid_range: GridRange, named_range_id: str | None = None
    ) -> dict[str, Any]:
        """Create a named range; returns the created NamedRange."""
        named_range: dict[str, Any] = {"name": name, "range": grid_range}
        if named_range_id is not None:
            named_range["namedRangeId"] = named_range_id
        return await self._make_single_update_request(
            "addNamedRange", {"namedRange": named_range}
        )

    async def delete_named_range(self, named_range_id: str) -> None:
        await self._make_single_update_request(
            "deleteNamedRange", {"namedRangeId": named_range_id}
        )

    # -- Export --

    def _export_request(
        self, file_type: str, worksheet_id: int | None
    ) -> tuple[str, dict[str, Any]]:
        if file_type not in EXPORT_FORMATS:
            raise UnsupportedExportError(f"Unsupported export file type: {file_type}")
        if EXPORT_FORMATS[file_type]:
            if worksheet_id is None:
                raise UnsupportedExportError(
                    f"Must specify a worksheet id when exporting as {file_type}"
                )
        elif worksheet_id is not None:
            raise UnsupportedExportError(
                f"Cannot specify a worksheet id when exporting as {file_type}"
            )
        # the web UI offers "html" but the export endpoint calls it "zip"
        if file_type == "html":
            file_type = "zip"
        if not self._spreadsheet_url:
            raise NotLoadedError("Cannot export a spreadsheet that is not loaded")
        url = self._spreadsheet_url.replace("/edit", "/export")
        return url, {"id": self._spreadsheet_id, "format": file_type, "gid": worksheet_id}

    async def download_as(self, file_type: str, worksheet_id: int | None = None) -> bytes:
        """Export the document (or one worksheet) and return the file contents.

        Raises:
            UnsupportedExportError: For unknown formats, or a worksheet id
                passed to (or missing from) a format that needs (or rejects) it.
        """
        url, params = self._export_request(file_type, worksheet_id)
        return await self.sheets_api.get_bytes(url, params=params)

    def stream_download_as(
        self, file_type: str, worksheet_id: int | None = None
    ) -> AsyncIterator[bytes]:
        """Like `download_as`, but yield the file in chunks as they arrive.

        The format and worksheet id are checked when this is called, before
        any iteration.
        """
        url, params = self._export_request(file_type, worksheet_id)
        return self._stream_export(url, params)

    async def _stream_export(
        self, url: str, params: dict[str, Any]
    ) -> AsyncIterator[bytes]:
        async with self.sheets_api.stream("GET", url, params=params) as response:
            async for chunk in response.aiter_bytes():
                yield chunk

    async def download_as_html(self) -> bytes:
        """Export the whole document as zipped html."""
        return await self.download_as("html")

    async def download_as_xlsx(self) -> bytes:
        return await self.download_as("xlsx")

    async def download_as_ods(self) -> bytes:
        return await self.download_as("ods")

    # -- Drive --

    async def delete(self) -> None:
        """Delete the whole document from Drive."""
        await self.drive_api.delete()
        self._deleted = True
        logger.info("Deleted spreadsheet %s", self._spreadsheet_id)

    async def list_permissions(self) -> list[Permission]:
        response = await self.drive_api.get(
            "/permissions", params={"fields": PERMISSION_FIELDS}
        )
        permissions: list[Permission] = response.get("permissions", [])
        return permissions

    async def set_public_access_level(
        self, role: PublicPermissionRole | Literal[False]
    ) -> None:
        """Set (or with False, remove) link-sharing access for anyone.

        Args:
            role: "reader", "commenter" or "writer", or False to make the
                document private again
        """
        permissions = await self.list_permissions()
        existing = next((p for p in permissions if p.get("type") == "anyone"), None)

        if role is False:
            if existing is None:
                return
            await self.drive_api.delete(f"/permissions/{existing['id']}")
            logger.info("Removed public access from %s", self._spreadsheet_id)
            return

        if not isinstance(role, str):
            raise ValueError(f"Invalid public access role: {role!r}")
        if existing is not None:
            if existing.get("role") != role:
                await self.drive_api.patch(
                    f"/permissions/{existing['id']}", json={"role": role}
                )
        else:
            await self.drive_api.post(
                "/permissions", json={"role": role, "type": "anyone"}
            )
        logger.info("Set public access of %s to %s", self._spreadsheet_id, role)

    async def share(
        self,
        email_or_domain: str,
        *,
        role: PermissionRole = "writer",
        is_group: bool = False,
        email_message: str | bool | None = None,
    ) -> Permission:
        """Share the document with a user, group or whole domain.

        Args:
            email_or_domain: An email address (user or group) or a domain name
            role: Permission role; "owner" transfers ownership
            is_group: Treat the email address as a group
            email_message: Custom notification text, or False to skip the
                notification email
        """
        params: dict[str, Any] = {}
        if email_message is False:
            params["sendNotificationEmail"] = False
        elif isinstance(email_message, str):
            params["emailMessage"] = email_message
        if role == "owner":
            params["transferOwnership"] = True

        body: dict[str, Any] = {"role": role}
        if "@" in email_or_domain:
            body["type"] = "group" if is_group else "user"
            body["emailAddress"] = email_or_domain
        else:
            body["type"] = "domain"
            body["domain"] = email_or_domain

        permission: Permission = await self.drive_api.post(  # type: ignore[assignment]
            "/permissions", params=params, json=body
        )
        logger.info(
            "Shared %s with %s as %s", self._spreadsheet_id, email_or_domain, role
        )
        return permission

    # -- Creation --

    @classmethod
    async def create(
        cls,
        credential: Any,
        properties: SpreadsheetProperties | None = None,
        *,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> Spreadsheet:
        """Create a new spreadsheet document and return it loaded.

        Raises:
            InvalidCredentialError: If `credential` is an API key, which only
                grants read access to public documents.
        """
        resolved = as_credential(credential)
        if resolved.mode is AuthMode.API_KEY:
            raise InvalidCredentialError(
                "Cannot use an API key to create a spreadsheet - it only grants "
                "read-only access to public documents"
            )
        settings = settings or get_settings()
        async with ApiClient(
            settings.sheets_api_base,
            resolved,
            timeout=settings.timeout,
            transport=transport,
        ) as client:
            payload = await client.post(json={"properties": dict(properties or {})})

        spreadsheet = cls(
            payload["spreadsheetId"], resolved, settings=settings, transport=transport
        )
        spreadsheet._apply_spreadsheet_payload(payload)  # type: ignore[arg-type]
        logger.info("Created spreadsheet %s", spreadsheet.spreadsheet_id)
        return spreadsheet
