"""Small HTTP constants and helpers shared across codexlink.

Dependency-free so any module can import it without cycles.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

DEFAULT_BASE_URL = "https://chatgpt.com/backend-api"
RESPONSES_PATH = "/codex/responses"

TOKEN_ENDPOINT = "https://auth.openai.com/oauth/token"
CLIENT_ID = "app_EMoamEEZ73f0CkXaXp7hrann"
TOKEN_SCOPE = "openid profile email"

ACCOUNT_ID_HEADER = "chatgpt-account-id"
EVENT_STREAM_MIME = "text/event-stream"

# Retryable status codes; surfaced as error metadata only, the core never retries.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 409, 429, 500, 502, 503, 504})


def merge_headers(
    base: Mapping[str, str], override: Mapping[str, str] | None
) -> dict[str, str]:
    """Layer *override* onto *base*; header names compare case-insensitively."""
    merged = dict(base)
    if not override:
        return merged
    for name, value in override.items():
        for existing in [k for k in merged if k.lower() == name.lower()]:
            del merged[existing]
        merged[name] = value
    return merged
