"""Configuration: frozen provider and model settings."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import TYPE_CHECKING, Literal
from urllib.parse import urlparse

from dotenv import load_dotenv

from codexlink._http import DEFAULT_BASE_URL
from codexlink.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

    import httpx

load_dotenv()

ReasoningEffort = Literal["low", "medium", "high"]
ReasoningSummary = Literal["auto", "concise", "detailed"]

#: Known Codex model ids. Any string is accepted for forward compatibility.
CODEX_MODEL_IDS: tuple[str, ...] = (
    "gpt-5",
    "gpt-5.1-codex",
    "gpt-5.1-codex-max",
    "gpt-5.1-codex-mini",
    "gpt-5.2",
    "gpt-5.2-codex",
    "gpt-5.3-codex",
)

API_KEY_ENV_VAR = "OPENAI_API_KEY"
BASE_URL_ENV_VAR = "CODEX_BASE_URL"
CODEX_HOME_ENV_VAR = "CODEX_HOME"

#: Safety margin (seconds) used both to refresh proactively and to decide
#: whether a cached token is still usable.
DEFAULT_EXPIRY_MARGIN_S = 60.0 * 60.0

_REASONING_EFFORTS = ("low", "medium", "high")
_REASONING_SUMMARIES = ("auto", "concise", "detailed")


def default_auth_file() -> Path:
    """Return the well-known auth file path, honoring ``CODEX_HOME``."""
    home = os.environ.get(CODEX_HOME_ENV_VAR)
    base = Path(home).expanduser() if home else Path.home() / ".codex"
    return base / "auth.json"


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


@dataclass(frozen=True)
class ProviderSettings:
    """Immutable provider configuration.

    Authentication is chosen once, by strict precedence: ``api_key`` >
    ``refresh_token`` > ``use_api_key`` (reads ``OPENAI_API_KEY``) > the
    Codex CLI auth file. Modes never combine.

    Example:
        settings = ProviderSettings(refresh_token="rt-...")
        codex = create_codex(settings)
    """

    #: Defaults to ``CODEX_BASE_URL`` or the ChatGPT backend when *None*.
    base_url: str | None = None
    #: Applied after the auth headers; these win on conflict.
    headers: Mapping[str, str] | None = None
    api_key: str | None = None
    refresh_token: str | None = None
    use_api_key: bool = False
    #: Defaults to ``$CODEX_HOME/auth.json`` or ``~/.codex/auth.json``.
    auth_file: Path | None = None
    #: Injected transport; when *None* a client without timeouts is created per call.
    http_client: httpx.AsyncClient | None = None
    expiry_margin_s: float = DEFAULT_EXPIRY_MARGIN_S

    def __post_init__(self) -> None:
        """Normalize secrets and URL, then validate."""
        object.__setattr__(self, "api_key", _blank_to_none(self.api_key))
        object.__setattr__(self, "refresh_token", _blank_to_none(self.refresh_token))

        base_url = self.base_url or os.environ.get(BASE_URL_ENV_VAR) or DEFAULT_BASE_URL
        base_url = base_url.rstrip("/")
        parsed = urlparse(base_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ConfigurationError(
                f"base_url must be an http(s) URL, got {base_url!r}",
                hint=f"Omit base_url to use {DEFAULT_BASE_URL}.",
            )
        object.__setattr__(self, "base_url", base_url)

        if self.auth_file is not None:
            object.__setattr__(self, "auth_file", Path(self.auth_file).expanduser())

        if self.expiry_margin_s < 0:
            raise ConfigurationError(
                f"expiry_margin_s must be >= 0, got {self.expiry_margin_s}",
                hint="This controls how early tokens are refreshed (seconds).",
            )

    def resolved_auth_file(self) -> Path:
        """Return the auth file path in effect for file-based authentication."""
        return self.auth_file if self.auth_file is not None else default_auth_file()

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"ProviderSettings(base_url={self.base_url!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"refresh_token={'[REDACTED]' if self.refresh_token else None}, "
            f"use_api_key={self.use_api_key}, auth_file={self.auth_file!r})"
        )

    __repr__ = __str__


@dataclass(frozen=True)
class ReasoningSettings:
    """How much the model thinks, and how its reasoning is summarized."""

    effort: ReasoningEffort | None = None
    summary: ReasoningSummary | None = None

    def __post_init__(self) -> None:
        """Reject unknown effort/summary levels early."""
        if self.effort is not None and self.effort not in _REASONING_EFFORTS:
            raise ConfigurationError(
                f"Unknown reasoning effort: {self.effort!r}",
                hint="Use one of 'low', 'medium', 'high'.",
            )
        if self.summary is not None and self.summary not in _REASONING_SUMMARIES:
            raise ConfigurationError(
                f"Unknown reasoning summary: {self.summary!r}",
                hint="Use one of 'auto', 'concise', 'detailed'.",
            )


@dataclass(frozen=True)
class ModelSettings:
    """Per-model settings passed when constructing a language model."""

    reasoning: ReasoningSettings | None = None
    #: Whether the upstream stores the response server-side.
    store: bool = False
    #: Used when a call does not pass its own seed.
    seed: int | None = None

    def __post_init__(self) -> None:
        """Validate setting shapes for clear errors."""
        if self.reasoning is not None and not isinstance(
            self.reasoning, ReasoningSettings
        ):
            raise ConfigurationError(
                "reasoning must be a ReasoningSettings instance",
                hint="Pass reasoning=ReasoningSettings(effort='high').",
            )
        if self.seed is not None and (
            not isinstance(self.seed, int) or isinstance(self.seed, bool)
        ):
            raise ConfigurationError(
                "seed must be an integer",
                hint="Pass seed=42 for reproducible sampling.",
            )
