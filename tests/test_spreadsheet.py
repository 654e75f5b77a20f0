"""Tests for the Spreadsheet document cache."""

from __future__ import annotations

import json

import httpx
import pytest

from extragrid import (
    AccessToken,
    ApiKey,
    InvalidCredentialError,
    NotLoadedError,
    PrivateDocumentError,
    RemoteServiceError,
    Spreadsheet,
    UnsupportedExportError,
    UnsupportedFilterError,
)
from extragrid.config import Settings

from tests.fakes import DOC_ID, FakeGoogle


class TestLoading:
    """Tests for load_info and the unloaded state."""

    async def test_accessors_raise_before_load(self, doc: Spreadsheet) -> None:
        with pytest.raises(NotLoadedError):
            _ = doc.title
        with pytest.raises(NotLoadedError):
            _ = doc.sheet_count
        with pytest.raises(NotLoadedError):
            _ = doc.sheets_by_index

    async def test_load_info(self, doc: Spreadsheet, fake: FakeGoogle) -> None:
        fake.add_sheet("Second")
        await doc.load_info()
        assert doc.title == "Test Doc"
        assert doc.locale == "en_US"
        assert doc.time_zone == "Etc/GMT"
        assert doc.sheet_count == 2
        assert [ws.title for ws in doc.sheets_by_index] == ["Sheet1", "Second"]
        assert doc.sheets_by_title["Second"].sheet_id == 100
        assert doc.spreadsheet_url == fake.spreadsheet_url

    async def test_load_info_without_grid_data(
        self, doc: Spreadsheet, fake: FakeGoogle
    ) -> None:
        await doc.load_info()
        request = fake.calls("GET")[0]
        assert "includeGridData" not in request.url.params

    async def test_load_info_with_cells(self, doc: Spreadsheet, fake: FakeGoogle) -> None:
        fake.add_sheet("Data", rows=3, columns=2, values=[["a", "b"], ["1", "2"]])
        await doc.load_info(include_cells=True)
        sheet = doc.sheets_by_title["Data"]
        assert sheet.get_cell(1, 1).value == 2
        assert sheet.get_cell(2, 0).value is None

    async def test_reload_keeps_worksheet_identity(self, loaded_doc: Spreadsheet) -> None:
        sheet = loaded_doc.sheets_by_id[0]
        await loaded_doc.load_info()
        assert loaded_doc.sheets_by_id[0] is sheet

    async def test_reset_local_cache(self, loaded_doc: Spreadsheet) -> None:
        loaded_doc.reset_local_cache()
        with pytest.raises(NotLoadedError):
            _ = loaded_doc.sheets_by_id

    async def test_remote_error(self, doc: Spreadsheet, fake: FakeGoogle) -> None:
        fake.fail_next(404, "Requested entity was not found.")
        with pytest.raises(RemoteServiceError, match=r"\[404\]"):
            await doc.load_info()
        with pytest.raises(NotLoadedError):
            _ = doc.title

    async def test_private_document_with_api_key(
        self, public_doc: Spreadsheet, fake: FakeGoogle
    ) -> None:
        fake.public = False
        with pytest.raises(PrivateDocumentError):
            await public_doc.load_info()

    async def test_public_document_with_api_key(
        self, public_doc: Spreadsheet, fake: FakeGoogle
    ) -> None:
        await public_doc.load_info()
        assert public_doc.title == "Test Doc"
        assert fake.requests[0].url.params["key"] == "test-key"


class TestMerge:
    """Tests for merging document payloads into the cache."""

    async def test_apply_payload_creates_and_updates(self, doc: Spreadsheet) -> None:
        payload = {
            "properties": {"title": "T"},
            "sheets": [
                {"properties": {"sheetId": 7, "title": "A", "index": 0,
                                "gridProperties": {"rowCount": 2, "columnCount": 2}}}
            ],
        }
        doc._apply_spreadsheet_payload(payload)  # type: ignore[arg-type]
        sheet = doc.sheets_by_id[7]
        payload["sheets"][0]["properties"]["title"] = "B"  # type: ignore[index]
        doc._apply_spreadsheet_payload(payload)  # type: ignore[arg-type]
        assert doc.sheets_by_id[7] is sheet
        assert sheet.title == "B"

    async def test_apply_payload_is_idempotent(self, doc: Spreadsheet, fake: FakeGoogle) -> None:
        fake.add_sheet("Data", rows=2, columns=2, values=[["x", "y"]])
        payload = fake.document(all_data=True)
        doc._apply_spreadsheet_payload(payload)  # type: ignore[arg-type]
        first = {
            ws.sheet_id: (ws.title, ws.row_count, ws.cell_stats)
            for ws in doc.sheets_by_index
        }
        doc._apply_spreadsheet_payload(payload)  # type: ignore[arg-type]
        second = {
            ws.sheet_id: (ws.title, ws.row_count, ws.cell_stats)
            for ws in doc.sheets_by_index
        }
        assert first == second
        assert doc.sheets_by_title["Data"].get_cell(0, 1).value == "y"


class TestSheets:
    """Tests for adding and removing worksheets."""

    async def test_add_sheet(self, loaded_doc: Spreadsheet, fake: FakeGoogle) -> None:
        sheet = await loaded_doc.add_sheet(
            {"title": "People", "gridProperties": {"rowCount": 10, "columnCount": 3}}
        )
        assert sheet.title == "People"
        assert sheet.row_count == 10
        assert loaded_doc.sheets_by_id[sheet.sheet_id] is sheet
        assert loaded_doc.sheet_count == 2

    async def test_add_sheet_with_headers(
        self, loaded_doc: Spreadsheet, fake: FakeGoogle
    ) -> None:
        sheet = await loaded_doc.add_sheet(
            {"title": "People"}, header_values=["name", "age"]
        )
        assert sheet.header_values == ["name", "age"]
        assert fake.value_at("People", "B1") == "age"
        add_request = fake.batch_requests()[0]["addSheet"]
        assert "header_values" not in add_request["properties"]

    async def test_delete_sheet(self, loaded_doc: Spreadsheet, fake: FakeGoogle) -> None:
        sheet = await loaded_doc.add_sheet({"title": "Temp"})
        await sheet.delete()
        assert sheet.sheet_id not in loaded_doc.sheets_by_id
        assert [s["properties"]["title"] for s in fake.sheets] == ["Sheet1"]

    async def test_failed_mutation_leaves_cache(
        self, loaded_doc: Spreadsheet, fake: FakeGoogle
    ) -> None:
        with pytest.raises(RemoteServiceError, match="already exists"):
            await loaded_doc.add_sheet({"title": "Sheet1"})
        assert loaded_doc.sheet_count == 1

    async def test_update_properties(
        self, loaded_doc: Spreadsheet, fake: FakeGoogle
    ) -> None:
        await loaded_doc.update_properties({"title": "Renamed", "locale": "fr_FR"})
        assert loaded_doc.title == "Renamed"
        assert loaded_doc.locale == "fr_FR"
        request = fake.batch_requests()[0]["updateSpreadsheetProperties"]
        assert request["fields"] == "title,locale"

    async def test_named_ranges(self, loaded_doc: Spreadsheet, fake: FakeGoogle) -> None:
        named = await loaded_doc.add_named_range(
            "totals", {"sheetId": 0, "startRowIndex": 0, "endRowIndex": 1}
        )
        assert named["namedRange"]["name"] == "totals"
        await loaded_doc.delete_named_range(named["namedRange"]["namedRangeId"])
        assert fake.named_ranges == []

    async def test_batch_update_envelope(
        self, loaded_doc: Spreadsheet, fake: FakeGoogle
    ) -> None:
        await loaded_doc._make_batch_update_request(
            [{"updateSpreadsheetProperties": {"properties": {"title": "x"},
                                              "fields": "title"}}],
            response_ranges="*",
        )
        body = json.loads(fake.calls("POST")[-1].content)
        assert body["includeSpreadsheetInResponse"] is True
        assert body["responseIncludeGridData"] is True
        assert "responseRanges" not in body


class TestLoadCells:
    """Tests for loading cells with data filters."""

    async def test_token_uses_get_by_data_filter(
        self, loaded_doc: Spreadsheet, fake: FakeGoogle
    ) -> None:
        fake.write(fake.sheet(0), 0, 0, "hello", "RAW")
        await loaded_doc.load_cells(["Sheet1!A1:B2", {"sheetId": 0, "endRowIndex": 1}])
        request = fake.calls("POST")[-1]
        assert request.url.path.endswith(":getByDataFilter")
        body = json.loads(request.content)
        assert body["dataFilters"][0] == {"a1Range": "Sheet1!A1:B2"}
        assert body["dataFilters"][1] == {"gridRange": {"sheetId": 0, "endRowIndex": 1}}
        assert loaded_doc.sheets_by_id[0].get_cell(0, 0).value == "hello"

    async def test_api_key_uses_get_with_ranges(
        self, public_doc: Spreadsheet, fake: FakeGoogle
    ) -> None:
        await public_doc.load_info()
        await public_doc.load_cells(["Sheet1!A1:B2", "Sheet1!C3"])
        request = fake.calls("GET")[-1]
        assert request.url.params.get_list("ranges") == ["Sheet1!A1:B2", "Sheet1!C3"]
        assert request.url.params["includeGridData"] == "true"
        sheet = public_doc.sheets_by_id[0]
        assert sheet.get_cell(2, 2).value is None

    async def test_api_key_rejects_grid_ranges(self, public_doc: Spreadsheet) -> None:
        with pytest.raises(UnsupportedFilterError):
            await public_doc.load_cells({"sheetId": 0})

    async def test_load_all_cells(self, loaded_doc: Spreadsheet, fake: FakeGoogle) -> None:
        fake.add_sheet("Small", rows=2, columns=2, values=[["a"]])
        await loaded_doc.load_cells()
        assert loaded_doc.sheets_by_title["Small"].get_cell(0, 0).value == "a"


class TestExport:
    """Tests for document and worksheet export."""

    async def test_requires_load(self, doc: Spreadsheet) -> None:
        with pytest.raises(NotLoadedError):
            await doc.download_as_xlsx()

    async def test_csv_requires_worksheet(self, loaded_doc: Spreadsheet) -> None:
        with pytest.raises(UnsupportedExportError):
            await loaded_doc.download_as("csv")

    async def test_xlsx_rejects_worksheet(self, loaded_doc: Spreadsheet) -> None:
        with pytest.raises(UnsupportedExportError):
            await loaded_doc.download_as("xlsx", 0)

    async def test_unknown_format(self, loaded_doc: Spreadsheet) -> None:
        with pytest.raises(UnsupportedExportError):
            await loaded_doc.download_as("docx")

    async def test_csv_with_worksheet(
        self, loaded_doc: Spreadsheet, fake: FakeGoogle
    ) -> None:
        content = await loaded_doc.download_as("csv", 0)
        assert content == f"csv:{DOC_ID}:0".encode()
        request = fake.requests[-1]
        assert request.url.host == "docs.google.com"
        assert request.url.path == f"/spreadsheets/d/{DOC_ID}/export"

    async def test_html_is_sent_as_zip(self, loaded_doc: Spreadsheet) -> None:
        assert await loaded_doc.download_as_html() == f"zip:{DOC_ID}:".encode()

    async def test_stream(self, loaded_doc: Spreadsheet) -> None:
        chunks = [chunk async for chunk in loaded_doc.stream_download_as("ods")]
        assert b"".join(chunks) == f"ods:{DOC_ID}:".encode()

    async def test_stream_checks_target_when_called(
        self, loaded_doc: Spreadsheet, fake: FakeGoogle
    ) -> None:
        before = len(fake.requests)
        with pytest.raises(UnsupportedExportError):
            loaded_doc.stream_download_as("csv")
        assert len(fake.requests) == before

    async def test_stream_before_load(self, doc: Spreadsheet) -> None:
        with pytest.raises(NotLoadedError):
            doc.stream_download_as("xlsx")


class TestDrive:
    """Tests for Drive file operations and sharing."""

    async def test_delete(self, doc: Spreadsheet, fake: FakeGoogle) -> None:
        await doc.delete()
        assert fake.deleted
        assert doc.deleted

    async def test_list_permissions(self, doc: Spreadsheet) -> None:
        permissions = await doc.list_permissions()
        assert permissions[0]["role"] == "owner"

    async def test_make_public(self, doc: Spreadsheet, fake: FakeGoogle) -> None:
        await doc.set_public_access_level("reader")
        public = [p for p in fake.permissions if p["type"] == "anyone"]
        assert public == [{"id": "anyoneWithLink", "role": "reader", "type": "anyone"}]

    async def test_change_public_role(self, doc: Spreadsheet, fake: FakeGoogle) -> None:
        await doc.set_public_access_level("reader")
        await doc.set_public_access_level("writer")
        public = [p for p in fake.permissions if p["type"] == "anyone"]
        assert len(public) == 1
        assert public[0]["role"] == "writer"
        assert fake.calls("PATCH")

    async def test_same_public_role_is_noop(
        self, doc: Spreadsheet, fake: FakeGoogle
    ) -> None:
        await doc.set_public_access_level("reader")
        before = len(fake.requests)
        await doc.set_public_access_level("reader")
        assert len(fake.requests) == before + 1

    async def test_remove_public_access(self, doc: Spreadsheet, fake: FakeGoogle) -> None:
        await doc.set_public_access_level("commenter")
        await doc.set_public_access_level(False)
        assert all(p["type"] != "anyone" for p in fake.permissions)

    async def test_remove_absent_public_access_is_noop(
        self, doc: Spreadsheet, fake: FakeGoogle
    ) -> None:
        await doc.set_public_access_level(False)
        assert [r.method for r in fake.requests] == ["GET"]

    async def test_share_with_user(self, doc: Spreadsheet, fake: FakeGoogle) -> None:
        permission = await doc.share("al@example.com", email_message=False)
        assert permission["type"] == "user"
        request = fake.calls("POST")[-1]
        assert request.url.params["sendNotificationEmail"] == "false"
        assert json.loads(request.content) == {
            "role": "writer",
            "type": "user",
            "emailAddress": "al@example.com",
        }

    async def test_share_with_group_message(
        self, doc: Spreadsheet, fake: FakeGoogle
    ) -> None:
        await doc.share("team@example.com", role="reader", is_group=True,
                        email_message="hi")
        request = fake.calls("POST")[-1]
        assert request.url.params["emailMessage"] == "hi"
        assert json.loads(request.content)["type"] == "group"

    async def test_share_with_domain(self, doc: Spreadsheet, fake: FakeGoogle) -> None:
        await doc.share("example.com", role="commenter")
        body = json.loads(fake.calls("POST")[-1].content)
        assert body == {"role": "commenter", "type": "domain", "domain": "example.com"}

    async def test_transfer_ownership(self, doc: Spreadsheet, fake: FakeGoogle) -> None:
        await doc.share("new@example.com", role="owner")
        assert fake.calls("POST")[-1].url.params["transferOwnership"] == "true"


class TestCreate:
    """Tests for creating documents."""

    async def test_api_key_rejected(self) -> None:
        with pytest.raises(InvalidCredentialError):
            await Spreadsheet.create(ApiKey("k"))

    async def test_create(
        self, fake: FakeGoogle, transport: httpx.MockTransport, settings: Settings
    ) -> None:
        doc = await Spreadsheet.create(
            AccessToken("t"), {"title": "Fresh"}, settings=settings, transport=transport
        )
        async with doc:
            assert doc.spreadsheet_id == DOC_ID
            assert doc.title == "Fresh"
            assert doc.sheets_by_index[0].title == "Sheet1"
        request = fake.requests[0]
        assert request.url.path == "/v4/spreadsheets"
        assert json.loads(request.content) == {"properties": {"title": "Fresh"}}

    def test_requires_id(self) -> None:
        with pytest.raises(ValueError):
            Spreadsheet("", AccessToken("t"))
