"""Credential handling for Google API access.

Supports four credential shapes:
1. ApiKey - a bare API key, read-only access to public documents
2. AccessToken - a raw OAuth2 bearer token
3. ServiceAccount - a refreshable google-auth credentials object
4. TokenProvider - a callable (sync or async) that hands out fresh bearer tokens

The shape is decided once, when the credential is constructed (or detected by
`as_credential`), and kept as an explicit `mode` tag. `resolve` turns a
credential into the query parameter or header to attach to one request; it is
called for every request so that expiring tokens are refreshed in time.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Union

import google.auth.credentials
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from extragrid.config import DEFAULT_SCOPES
from extragrid.exceptions import InvalidCredentialError

logger = logging.getLogger(__name__)


class AuthMode(Enum):
    """Which credential shape is active."""

    API_KEY = "api_key"
    ACCESS_TOKEN = "access_token"
    SERVICE_ACCOUNT = "service_account"
    TOKEN_PROVIDER = "token_provider"


@dataclass(frozen=True)
class AuthDirective:
    """What to attach to a single request: query parameters or headers.

    Exactly one of the two mappings is populated.
    """

    params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ApiKey:
    """API key credential. Only usable for reading public documents."""

    key: str
    mode: ClassVar[AuthMode] = AuthMode.API_KEY


@dataclass(frozen=True)
class AccessToken:
    """A raw OAuth2 access token. extragrid never refreshes it."""

    token: str
    mode: ClassVar[AuthMode] = AuthMode.ACCESS_TOKEN


@dataclass(frozen=True)
class ServiceAccount:
    """A refreshable google-auth credentials object.

    Usually a `google.oauth2.service_account.Credentials`, but any
    `google.auth.credentials.Credentials` works (user OAuth credentials,
    impersonated credentials, ...).
    """

    credentials: google.auth.credentials.Credentials
    mode: ClassVar[AuthMode] = AuthMode.SERVICE_ACCOUNT

    @classmethod
    def from_file(
        cls, path: str | Path, scopes: tuple[str, ...] | list[str] = DEFAULT_SCOPES
    ) -> ServiceAccount:
        """Load service account credentials from a JSON key file."""
        credentials = service_account.Credentials.from_service_account_file(
            str(path), scopes=list(scopes)
        )
        return cls(credentials)

    @classmethod
    def from_info(
        cls,
        info: Mapping[str, Any],
        scopes: tuple[str, ...] | list[str] = DEFAULT_SCOPES,
    ) -> ServiceAccount:
        """Load service account credentials from a parsed JSON key."""
        credentials = service_account.Credentials.from_service_account_info(
            dict(info), scopes=list(scopes)
        )
        return cls(credentials)


@dataclass(frozen=True)
class TokenProvider:
    """Delegates token acquisition to a callable.

    The callable is invoked before every request (and awaited if it returns an
    awaitable) and must return a bearer token. It is free to cache internally.
    """

    fetch: Callable[[], Awaitable[str | None] | str | None]
    mode: ClassVar[AuthMode] = AuthMode.TOKEN_PROVIDER


Credential = Union[ApiKey, AccessToken, ServiceAccount, TokenProvider]

_CREDENTIAL_TYPES = (ApiKey, AccessToken, ServiceAccount, TokenProvider)


def as_credential(obj: Any) -> Credential:
    """Detect the credential shape of `obj` and return the tagged variant.

    Accepted inputs:
        - an ApiKey/AccessToken/ServiceAccount/TokenProvider instance
        - a mapping with an "apiKey" (or "api_key") key
        - a mapping with a "token" key
        - a google-auth credentials object (or one exposing `refresh()`,
          `token` and `valid` the same way)
        - a callable returning a token, sync or async

    Raises:
        InvalidCredentialError: If none of the shapes match.
    """
    if isinstance(obj, _CREDENTIAL_TYPES):
        return obj
    if isinstance(obj, Mapping):
        api_key = obj.get("apiKey") or obj.get("api_key")
        if isinstance(api_key, str) and api_key:
            return ApiKey(api_key)
        token = obj.get("token")
        if isinstance(token, str) and token:
            return AccessToken(token)
        raise InvalidCredentialError(
            "Credential mapping must contain a non-empty 'apiKey' or 'token'"
        )
    if isinstance(obj, google.auth.credentials.Credentials) or _is_refreshable(obj):
        return ServiceAccount(obj)
    if callable(obj):
        return TokenProvider(obj)
    raise InvalidCredentialError(
        f"Unsupported credential of type {type(obj).__name__}"
    )


def _is_refreshable(obj: Any) -> bool:
    return (
        callable(getattr(obj, "refresh", None))
        and hasattr(obj, "token")
        and hasattr(obj, "valid")
    )


async def resolve(credential: Credential) -> AuthDirective:
    """Produce the auth directive for one request.

    API keys travel as the `key` query parameter; every other shape becomes
    an `Authorization: Bearer` header.

    Raises:
        InvalidCredentialError: If the credential yields no usable token.
    """
    token: str | None
    if isinstance(credential, ApiKey):
        if not credential.key:
            raise InvalidCredentialError("API key is empty")
        return AuthDirective(params={"key": credential.key})

    if isinstance(credential, AccessToken):
        token = credential.token
    elif isinstance(credential, ServiceAccount):
        token = await _service_account_token(credential.credentials)
    elif isinstance(credential, TokenProvider):
        result = credential.fetch()
        token = await result if inspect.isawaitable(result) else result
    else:
        raise InvalidCredentialError(
            f"Unsupported credential of type {type(credential).__name__}"
        )

    if not token:
        raise InvalidCredentialError(
            f"{credential.mode.value} credential did not produce an access token"
        )
    return AuthDirective(headers={"Authorization": f"Bearer {token}"})


async def _service_account_token(
    credentials: google.auth.credentials.Credentials,
) -> str | None:
    """Return a valid token, refreshing the credentials first when needed.

    google-auth only ships a blocking refresh, so it runs in a worker thread.
    """
    if not credentials.valid:
        logger.debug("Refreshing %s credentials", type(credentials).__name__)
        try:
            await asyncio.to_thread(credentials.refresh, Request())
        except RefreshError as e:
            raise InvalidCredentialError(f"Credential refresh failed: {e}") from e
    token: str | None = credentials.token
    return token
