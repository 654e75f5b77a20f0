"""Tests for credential detection and resolution."""

from __future__ import annotations

from typing import Any

import google.oauth2.credentials
import pytest
from google.auth.exceptions import RefreshError

from extragrid.credentials import (
    AccessToken,
    ApiKey,
    AuthMode,
    ServiceAccount,
    TokenProvider,
    as_credential,
    resolve,
)
from extragrid.exceptions import InvalidCredentialError


class FakeGoogleCredentials:
    """Quacks like google.auth.credentials.Credentials."""

    def __init__(self, valid: bool = False, fail: bool = False) -> None:
        self.valid = valid
        self.token: str | None = "cached-token" if valid else None
        self.fail = fail
        self.refresh_calls = 0

    def refresh(self, request: Any) -> None:
        self.refresh_calls += 1
        if self.fail:
            raise RefreshError("invalid_grant")
        self.token = f"fresh-token-{self.refresh_calls}"
        self.valid = True


class TestAsCredential:
    """Tests for credential shape detection."""

    def test_variant_passthrough(self) -> None:
        key = ApiKey("k")
        assert as_credential(key) is key

    def test_api_key_mapping(self) -> None:
        assert as_credential({"apiKey": "k"}) == ApiKey("k")
        assert as_credential({"api_key": "k"}) == ApiKey("k")

    def test_token_mapping(self) -> None:
        assert as_credential({"token": "t"}) == AccessToken("t")

    def test_refreshable_object(self) -> None:
        google_credentials = FakeGoogleCredentials()
        credential = as_credential(google_credentials)
        assert isinstance(credential, ServiceAccount)
        assert credential.mode is AuthMode.SERVICE_ACCOUNT

    def test_token_without_validity_rejected(self) -> None:
        class HalfCredentials:
            token = "t"

            def refresh(self, request: Any) -> None:
                pass

        with pytest.raises(InvalidCredentialError):
            as_credential(HalfCredentials())

    def test_google_auth_credentials(self) -> None:
        credentials = google.oauth2.credentials.Credentials("t")
        credential = as_credential(credentials)
        assert isinstance(credential, ServiceAccount)
        assert credential.credentials is credentials

    def test_async_callable(self) -> None:
        async def fetch() -> str:
            return "t"

        credential = as_credential(fetch)
        assert isinstance(credential, TokenProvider)
        assert credential.mode is AuthMode.TOKEN_PROVIDER

    def test_empty_mapping_rejected(self) -> None:
        with pytest.raises(InvalidCredentialError):
            as_credential({})

    def test_unknown_shape_rejected(self) -> None:
        with pytest.raises(InvalidCredentialError):
            as_credential(42)


class TestResolve:
    """Tests for per-request auth directives."""

    async def test_api_key_is_query_param(self) -> None:
        directive = await resolve(ApiKey("secret"))
        assert directive.params == {"key": "secret"}
        assert directive.headers == {}

    async def test_access_token_is_bearer_header(self) -> None:
        directive = await resolve(AccessToken("abc"))
        assert directive.headers == {"Authorization": "Bearer abc"}
        assert directive.params == {}

    async def test_service_account_refreshes_when_invalid(self) -> None:
        google_credentials = FakeGoogleCredentials(valid=False)
        credential = ServiceAccount(google_credentials)  # type: ignore[arg-type]
        directive = await resolve(credential)
        assert directive.headers == {"Authorization": "Bearer fresh-token-1"}
        assert google_credentials.refresh_calls == 1

    async def test_service_account_skips_refresh_when_valid(self) -> None:
        google_credentials = FakeGoogleCredentials(valid=True)
        credential = ServiceAccount(google_credentials)  # type: ignore[arg-type]
        directive = await resolve(credential)
        assert directive.headers == {"Authorization": "Bearer cached-token"}
        assert google_credentials.refresh_calls == 0

    async def test_service_account_refresh_failure(self) -> None:
        credential = ServiceAccount(FakeGoogleCredentials(fail=True))  # type: ignore[arg-type]
        with pytest.raises(InvalidCredentialError, match="refresh failed"):
            await resolve(credential)

    async def test_token_provider_called_every_time(self) -> None:
        calls = []

        async def fetch() -> str:
            calls.append(1)
            return f"t{len(calls)}"

        credential = TokenProvider(fetch)
        first = await resolve(credential)
        second = await resolve(credential)
        assert first.headers["Authorization"] == "Bearer t1"
        assert second.headers["Authorization"] == "Bearer t2"

    async def test_token_provider_without_token(self) -> None:
        async def fetch() -> None:
            return None

        with pytest.raises(InvalidCredentialError):
            await resolve(TokenProvider(fetch))

    async def test_empty_access_token(self) -> None:
        with pytest.raises(InvalidCredentialError):
            await resolve(AccessToken(""))

    async def test_sync_token_provider(self) -> None:
        directive = await resolve(as_credential(lambda: "sync-token"))
        assert directive.headers == {"Authorization": "Bearer sync-token"}

    async def test_sync_token_provider_without_token(self) -> None:
        with pytest.raises(InvalidCredentialError):
            await resolve(TokenProvider(lambda: None))
