"""Transport layer for the Sheets and Drive REST APIs.

`ApiClient` wraps one `httpx.AsyncClient` bound to a base URL. A Spreadsheet
owns two of them: one for the Sheets document endpoint and one for the Drive
file endpoint, both scoped to the spreadsheet id.

Every request re-resolves the credential, so refreshed tokens are picked up,
and every error response is normalized:

- a structured `{"error": {"code", "message"}}` body -> RemoteServiceError
- 403 while using an API key -> PrivateDocumentError
- anything else -> the raw httpx exception
"""

from __future__ import annotations

import logging
import ssl
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

import certifi
import httpx

from extragrid.config import DEFAULT_TIMEOUT
from extragrid.credentials import AuthMode, Credential, resolve
from extragrid.exceptions import PrivateDocumentError, RemoteServiceError
from extragrid.utils import serialize_params

logger = logging.getLogger(__name__)


class ApiClient:
    """Authenticated JSON client for one API surface.

    Paths passed to the request methods are appended verbatim to the base
    URL, so both ``":batchUpdate"`` and ``"/values/A1"`` work. Absolute URLs
    are used as is.
    """

    def __init__(
        self,
        base_url: str,
        credential: Credential,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: URL every relative path is appended to
            credential: Credential resolved before each request
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self._credential = credential
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._client = httpx.AsyncClient(
            timeout=timeout,
            verify=ssl_context,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @property
    def credential(self) -> Credential:
        return self._credential

    def url_for(self, path: str = "") -> str:
        if path.startswith(("http://", "https://")):
            return path
        return self.base_url + path

    async def request(
        self,
        method: str,
        path: str = "",
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """Send an authenticated request and return the successful response."""
        url, query, headers = await self._prepare(path, params)
        logger.debug("%s %s", method, url)
        response = await self._client.request(
            method, url, params=query, headers=headers, json=json
        )
        self._raise_for_status(response)
        return response

    async def get(
        self, path: str = "", *, params: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        return _json_body(await self.request("GET", path, params=params))

    async def post(
        self,
        path: str = "",
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        return _json_body(await self.request("POST", path, params=params, json=json))

    async def put(
        self,
        path: str = "",
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        return _json_body(await self.request("PUT", path, params=params, json=json))

    async def patch(
        self,
        path: str = "",
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        return _json_body(await self.request("PATCH", path, params=params, json=json))

    async def delete(
        self, path: str = "", *, params: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        return _json_body(await self.request("DELETE", path, params=params))

    async def get_bytes(
        self, path: str = "", *, params: Mapping[str, Any] | None = None
    ) -> bytes:
        response = await self.request("GET", path, params=params)
        return response.content

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        path: str = "",
        *,
        params: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streaming request; the body is read by the caller."""
        url, query, headers = await self._prepare(path, params)
        logger.debug("%s %s (stream)", method, url)
        async with self._client.stream(
            method, url, params=query, headers=headers
        ) as response:
            if response.is_error:
                await response.aread()
                self._raise_for_status(response)
            yield response

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _prepare(
        self, path: str, params: Mapping[str, Any] | None
    ) -> tuple[str, list[tuple[str, str]], dict[str, str]]:
        # resolved per request; tokens may expire between calls
        directive = await resolve(self._credential)
        query = serialize_params({**(params or {}), **directive.params})
        return self.url_for(path), query, dict(directive.headers)

    def _raise_for_status(self, response: httpx.Response) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self._handle_http_error(e)
            raise

    def _handle_http_error(self, e: httpx.HTTPStatusError) -> None:
        status = e.response.status_code
        error = _error_payload(e.response)
        if error is not None:
            code = error.get("code", status)
            message = error.get("message", "")
            raise RemoteServiceError(
                f"Service error - [{code}] {message}", status_code=status, code=code
            ) from e
        if status == 403 and self._credential.mode is AuthMode.API_KEY:
            raise PrivateDocumentError() from e


def _error_payload(response: httpx.Response) -> dict[str, Any] | None:
    """Return the structured `error` object of a response body, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error: dict[str, Any] = body["error"]
        return error
    return None


def _json_body(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    result: dict[str, Any] = response.json()
    return result
