"""codexlink: a Codex Responses API language-model provider.

Public API:
    - create_codex(): Provider factory
    - codex: Default provider (Codex CLI auth file), created on first access
    - CallOptions / messages: What to send
    - GenerateResult / StreamResult: What comes back
"""

from __future__ import annotations

import logging
from typing import Any

from codexlink.auth import CredentialManager
from codexlink.config import (
    CODEX_MODEL_IDS,
    ModelSettings,
    ProviderSettings,
    ReasoningSettings,
)
from codexlink.errors import (
    APIError,
    AuthenticationError,
    CodexError,
    ConfigurationError,
    NoSuchModelError,
    ProtocolError,
    RateLimitError,
)
from codexlink.events import (
    ErrorEvent,
    Finish,
    FinishReason,
    GenerateResult,
    StreamResult,
    UnsupportedFeatureWarning,
    Usage,
)
from codexlink.model import CodexLanguageModel
from codexlink.prompt import (
    AssistantMessage,
    CallOptions,
    FilePart,
    FunctionTool,
    ReasoningPart,
    ResponseFormat,
    SystemMessage,
    TextPart,
    ToolCallPart,
    ToolChoice,
    ToolMessage,
    ToolResultOutput,
    ToolResultPart,
    UserMessage,
)
from codexlink.provider import CodexProvider, create_codex, default_provider

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("codexlink")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("codexlink").addHandler(logging.NullHandler())

__all__ = [
    "CODEX_MODEL_IDS",
    "APIError",
    "AssistantMessage",
    "AuthenticationError",
    "CallOptions",
    "CodexError",
    "CodexLanguageModel",
    "CodexProvider",
    "ConfigurationError",
    "CredentialManager",
    "ErrorEvent",
    "FilePart",
    "Finish",
    "FinishReason",
    "FunctionTool",
    "GenerateResult",
    "ModelSettings",
    "NoSuchModelError",
    "ProtocolError",
    "ProviderSettings",
    "RateLimitError",
    "ReasoningPart",
    "ReasoningSettings",
    "ResponseFormat",
    "StreamResult",
    "SystemMessage",
    "TextPart",
    "ToolCallPart",
    "ToolChoice",
    "ToolMessage",
    "ToolResultOutput",
    "ToolResultPart",
    "UnsupportedFeatureWarning",
    "Usage",
    "UserMessage",
    "codex",
    "create_codex",
    "default_provider",
]


def __getattr__(name: str) -> Any:
    # ``codexlink.codex`` resolves lazily; see default_provider().
    if name == "codex":
        return default_provider()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
