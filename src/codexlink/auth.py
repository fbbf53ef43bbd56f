"""Credential session manager.

Resolves request credentials in one of four mutually exclusive modes and
keeps them fresh:

- explicit key: a fixed key from ``ProviderSettings.api_key``
- refresh token: an in-memory session, refreshed through the OAuth token
  endpoint whenever it nears expiry
- environment key: ``OPENAI_API_KEY``
- auth file: the Codex CLI's ``auth.json``, refreshed and rewritten in place

Concurrent refreshes are collapsed onto a single in-flight exchange. All
state is per manager instance; nothing is process-global.
"""

from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
import json
import logging
import os
import time
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from codexlink._http import (
    ACCOUNT_ID_HEADER,
    CLIENT_ID,
    EVENT_STREAM_MIME,
    TOKEN_ENDPOINT,
    TOKEN_SCOPE,
    merge_headers,
)
from codexlink._singleflight import SingleFlight
from codexlink.config import API_KEY_ENV_VAR
from codexlink.errors import AuthenticationError

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from codexlink.config import ProviderSettings

log = logging.getLogger(__name__)

_LOGIN_HINT = "Run 'codex login' to re-authenticate, or pass ProviderSettings(api_key=...)."
_REFRESH_TOKEN_HINT = (
    "Check ProviderSettings(refresh_token=...); the token may be revoked or expired."
)

_ACCOUNT_ID_CLAIMS = ("account_id", "https://labs.openai.com/account_id")
_AUTH_CLAIM = "https://api.openai.com/auth"


# --- Persisted record ---


class TokenData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id_token: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    account_id: str | None = None


class AuthRecord(BaseModel):
    """Contents of ``auth.json``. Unknown keys survive a read-modify-write."""

    model_config = ConfigDict(extra="allow")

    tokens: TokenData | None = None
    api_key: str | None = None
    last_refresh: str | None = None


class TokenResponse(BaseModel):
    """Token endpoint response body."""

    model_config = ConfigDict(extra="ignore")

    id_token: str
    access_token: str
    refresh_token: str | None = None


# --- Identity token ---


@dataclass(frozen=True)
class IdTokenInfo:
    email: str | None = None
    name: str | None = None
    exp: float | None = None
    iat: float | None = None
    account_id: str | None = None


def _number_or_none(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def parse_id_token(id_token: str) -> IdTokenInfo:
    """Decode the JWT payload segment. The signature is not verified."""
    parts = id_token.split(".")
    if len(parts) != 3:
        raise AuthenticationError(
            "Failed to parse ID token: invalid JWT token format", hint=_LOGIN_HINT
        )

    payload = parts[1]
    padded = payload + "=" * (-len(payload) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(padded).decode("utf-8"))
    except ValueError as e:
        raise AuthenticationError(
            f"Failed to parse ID token: {e}", hint=_LOGIN_HINT
        ) from e
    if not isinstance(claims, dict):
        raise AuthenticationError(
            "Failed to parse ID token: payload is not a JSON object", hint=_LOGIN_HINT
        )

    account_id = None
    for claim in _ACCOUNT_ID_CLAIMS:
        account_id = _str_or_none(claims.get(claim))
        if account_id:
            break
    if account_id is None:
        auth_claims = claims.get(_AUTH_CLAIM)
        if isinstance(auth_claims, dict):
            account_id = _str_or_none(auth_claims.get("chatgpt_account_id"))

    return IdTokenInfo(
        email=_str_or_none(claims.get("email")),
        name=_str_or_none(claims.get("name")),
        exp=_number_or_none(claims.get("exp")),
        iat=_number_or_none(claims.get("iat")),
        account_id=account_id,
    )


# --- Manager ---


@dataclass(frozen=True)
class Session:
    """Refresh-token mode credentials. Replaced wholesale on each refresh."""

    access_token: str
    refresh_token: str
    account_id: str
    #: Epoch seconds; None when the identity token carried no ``exp``.
    expires_at: float | None = None


class AuthMode(Enum):
    EXPLICIT_KEY = "explicit_key"
    REFRESH_TOKEN = "refresh_token"
    ENV_KEY = "env_key"
    FILE = "file"


def select_mode(settings: ProviderSettings) -> AuthMode:
    """Pick the authentication mode by strict precedence."""
    if settings.api_key:
        return AuthMode.EXPLICIT_KEY
    if settings.refresh_token:
        return AuthMode.REFRESH_TOKEN
    if settings.use_api_key:
        return AuthMode.ENV_KEY
    return AuthMode.FILE


class CredentialManager:
    """Produce request headers for one provider instance.

    Example:
        manager = CredentialManager(ProviderSettings(refresh_token="rt-..."))
        headers = await manager.get_headers()
    """

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self._clock = clock
        self._mode = select_mode(settings)
        self._session: Session | None = None
        self._record: AuthRecord | None = None
        self._token_info: dict[str, IdTokenInfo] = {}
        self._session_flight: SingleFlight[str, Session] = SingleFlight()
        self._file_flight: SingleFlight[Path, None] = SingleFlight()
        log.debug("Credential mode selected: %s", self._mode.value)

    @property
    def mode(self) -> AuthMode:
        return self._mode

    # Headers

    async def get_headers(self) -> dict[str, str]:
        """Build auth plus protocol headers; provider headers win on conflict."""
        token, account_id = await self._credentials()
        headers = {"Authorization": f"Bearer {token}"}
        if account_id:
            headers[ACCOUNT_ID_HEADER] = account_id
        headers["Content-Type"] = "application/json"
        headers["Accept"] = EVENT_STREAM_MIME
        headers["originator"] = "codex"
        return merge_headers(headers, self.settings.headers)

    async def _credentials(self) -> tuple[str, str | None]:
        if self._mode is AuthMode.EXPLICIT_KEY:
            return self.settings.api_key or "", None
        if self._mode is AuthMode.REFRESH_TOKEN:
            session = await self.ensure_session()
            return session.access_token, session.account_id
        if self._mode is AuthMode.ENV_KEY:
            return self._env_api_key(), None
        token = await self.get_access_token()
        return token, await self.get_account_id()

    @staticmethod
    def _env_api_key() -> str:
        key = (os.environ.get(API_KEY_ENV_VAR) or "").strip()
        if not key:
            raise AuthenticationError(
                f"{API_KEY_ENV_VAR} is not set",
                hint=f"Export {API_KEY_ENV_VAR} or pass ProviderSettings(api_key=...).",
            )
        return key

    # Expiry

    def _expires_soon(self, expires_at: float) -> bool:
        return expires_at - self._clock() < self.settings.expiry_margin_s

    def is_token_expired(self, info: IdTokenInfo) -> bool:
        """True when ``exp`` is missing or closer than the expiry margin."""
        return info.exp is None or self._expires_soon(info.exp)

    def token_info(self, id_token: str) -> IdTokenInfo:
        """Decode *id_token*, cached per token string."""
        info = self._token_info.get(id_token)
        if info is None:
            info = parse_id_token(id_token)
            self._token_info[id_token] = info
        return info

    # Refresh-token mode

    async def ensure_session(self) -> Session:
        """Return a usable session, refreshing it when missing or near expiry."""
        session = self._session
        if session is not None and (
            session.expires_at is None or not self._expires_soon(session.expires_at)
        ):
            return session
        return await self._session_flight.do("session", self._refresh_session)

    async def _refresh_session(self) -> Session:
        previous = self._session
        current = previous.refresh_token if previous else self.settings.refresh_token
        if not current:
            raise AuthenticationError(
                "No refresh token configured", hint=_REFRESH_TOKEN_HINT
            )

        tokens = await self._exchange(current)
        info = self.token_info(tokens.id_token)
        if not info.account_id:
            raise AuthenticationError(
                "No account ID found in the refreshed ID token",
                hint=_REFRESH_TOKEN_HINT,
            )

        session = Session(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token or current,
            account_id=info.account_id,
            expires_at=info.exp,
        )
        self._session = session
        log.info("Refreshed Codex session")
        return session

    # File mode

    async def load_auth_record(self) -> AuthRecord:
        """Read and cache the auth file."""
        if self._record is not None:
            return self._record

        path = self.settings.resolved_auth_file()
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError as e:
            raise AuthenticationError(
                "Authentication not found. Please run 'codex login' first.\n"
                f"Expected auth file at: {path}",
                hint="Run 'codex login', or pass ProviderSettings(api_key=...).",
            ) from e
        except OSError as e:
            raise AuthenticationError(
                f"Failed to read auth.json: {e}", hint=_LOGIN_HINT
            ) from e

        try:
            record = AuthRecord.model_validate_json(raw)
        except ValidationError as e:
            raise AuthenticationError(
                f"Failed to read auth.json: {e}", hint=_LOGIN_HINT
            ) from e

        self._record = record
        return record

    async def get_access_token(self) -> str:
        """Return the file-mode bearer token, refreshing it first if expired."""
        record = await self.load_auth_record()
        tokens = record.tokens

        if tokens is not None and tokens.id_token:
            info = self.token_info(tokens.id_token)
            if self.is_token_expired(info) and tokens.refresh_token:
                await self.refresh_auth_file()
                refreshed = await self.load_auth_record()
                if refreshed.tokens is not None and refreshed.tokens.access_token:
                    return refreshed.tokens.access_token

        if tokens is not None and tokens.access_token:
            return tokens.access_token
        if record.api_key:
            return record.api_key
        raise AuthenticationError(
            "No access token or API key found in auth.json", hint=_LOGIN_HINT
        )

    async def get_account_id(self) -> str | None:
        """Return the account id; None only for an api-key-only record."""
        record = await self.load_auth_record()
        tokens = record.tokens

        if tokens is None and record.api_key:
            return None
        if tokens is not None:
            if tokens.account_id:
                return tokens.account_id
            if tokens.id_token:
                info = self.token_info(tokens.id_token)
                if info.account_id:
                    return info.account_id
        raise AuthenticationError("No account ID found in auth.json", hint=_LOGIN_HINT)

    async def refresh_auth_file(self) -> None:
        """Exchange the file's refresh token and rewrite the file in place."""
        path = self.settings.resolved_auth_file()
        await self._file_flight.do(path, lambda: self._rewrite_auth_file(path))

    async def _rewrite_auth_file(self, path: Path) -> None:
        record = await self.load_auth_record()
        tokens = record.tokens
        if tokens is None or not tokens.refresh_token:
            raise AuthenticationError(
                "No refresh token available in auth.json",
                hint="Run 'codex login' to authenticate.",
            )

        fresh = await self._exchange(tokens.refresh_token)

        data = record.model_dump(mode="json", exclude_unset=True)
        token_data = dict(data.get("tokens") or {})
        token_data["id_token"] = fresh.id_token
        token_data["access_token"] = fresh.access_token
        token_data["refresh_token"] = fresh.refresh_token or tokens.refresh_token
        data["tokens"] = token_data
        data["last_refresh"] = datetime.fromtimestamp(
            self._clock(), tz=timezone.utc
        ).isoformat()

        await asyncio.to_thread(
            path.write_text, json.dumps(data, indent=2), encoding="utf-8"
        )
        self.invalidate()
        log.info("Refreshed Codex tokens in %s", path)

    def invalidate(self) -> None:
        """Drop the cached auth record and decoded identity tokens."""
        self._record = None
        self._token_info.clear()

    # Token exchange

    async def _exchange(self, refresh_token: str) -> TokenResponse:
        payload = {
            "client_id": CLIENT_ID,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "scope": TOKEN_SCOPE,
        }
        try:
            if self.settings.http_client is not None:
                response = await self.settings.http_client.post(
                    TOKEN_ENDPOINT, json=payload
                )
            else:
                async with httpx.AsyncClient(timeout=None) as client:
                    response = await client.post(TOKEN_ENDPOINT, json=payload)
        except httpx.HTTPError as e:
            log.warning("Token refresh failed: %s", type(e).__name__)
            raise AuthenticationError(
                f"Token refresh failed: {e}", hint=_LOGIN_HINT
            ) from e

        if not response.is_success:
            log.warning("Token refresh failed with HTTP %s", response.status_code)
            raise AuthenticationError(
                f"Token refresh failed: {response.text}", hint=_LOGIN_HINT
            )

        try:
            return TokenResponse.model_validate_json(response.content)
        except ValidationError as e:
            log.warning("Token refresh returned an unexpected body")
            raise AuthenticationError(
                "Token refresh returned an invalid response", hint=_LOGIN_HINT
            ) from e
