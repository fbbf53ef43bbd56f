"""Upstream error mapping helpers.

Every HTTP failure becomes an APIError carrying stable retry metadata, so a
caller-side retry policy never needs brittle substring matching.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

import httpx

from codexlink._http import RETRYABLE_STATUS_CODES
from codexlink.errors import APIError, RateLimitError

if TYPE_CHECKING:
    from collections.abc import Mapping

PROVIDER = "codex"


def try_parse_error_message(body: str) -> str | None:
    """Return ``error.message`` from a JSON error body, or None."""
    try:
        parsed: Any = json.loads(body)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    error = parsed.get("error")
    if not isinstance(error, dict):
        return None
    message = error.get("message")
    return message if isinstance(message, str) else None


def parse_retry_after(headers: Mapping[str, str] | None) -> float | None:
    """Return the ``Retry-After`` delay in seconds when it is numeric."""
    if headers is None:
        return None
    raw = headers.get("Retry-After")
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _auth_hint(status_code: int) -> str | None:
    if status_code in {401, 403}:
        return (
            "Check credentials: run 'codex login' to refresh ~/.codex/auth.json, "
            "or pass ProviderSettings(api_key=...)."
        )
    return None


def api_error_from_response(
    status_code: int,
    body: str,
    *,
    headers: Mapping[str, str] | None = None,
    phase: str = "generate",
) -> APIError:
    """Map a non-success upstream response into APIError."""
    message = try_parse_error_message(body) or body
    retry_after_s = parse_retry_after(headers)

    err_cls: type[APIError] = RateLimitError if status_code == 429 else APIError
    return err_cls(
        f"Codex API error {status_code}: {message}",
        hint=_auth_hint(status_code),
        retryable=status_code in RETRYABLE_STATUS_CODES or retry_after_s is not None,
        status_code=status_code,
        retry_after_s=retry_after_s,
        provider=PROVIDER,
        phase=phase,
    )


def wrap_transport_error(
    exc: BaseException,
    *,
    phase: str,
    message: str | None = None,
) -> APIError:
    """Map httpx transport failures into APIError with retry metadata."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    if isinstance(exc, APIError):
        if exc.provider is None:
            exc.provider = PROVIDER
        if exc.phase is None:
            exc.phase = phase
        return exc

    retryable = isinstance(exc, (httpx.TimeoutException, httpx.RequestError))
    msg = message or f"{PROVIDER} {phase} failed"
    cause = str(exc)
    return APIError(
        f"{msg}: {cause}" if cause else msg,
        retryable=retryable,
        provider=PROVIDER,
        phase=phase,
    )
