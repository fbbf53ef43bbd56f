"""Exception hierarchy for codexlink."""

from __future__ import annotations


class CodexError(Exception):
    """Base exception for all codexlink errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(CodexError):
    """Settings or call options failed validation."""


class AuthenticationError(CodexError):
    """Credentials could not be loaded, decoded, or refreshed.

    Always fatal to the current call; the hint carries the remediation step.
    """


class ProtocolError(CodexError):
    """A single upstream event record could not be decoded."""


class NoSuchModelError(CodexError):
    """The provider does not offer the requested model type."""

    def __init__(self, model_id: str, *, model_type: str) -> None:
        super().__init__(
            f"No such {model_type}: {model_id}",
            hint="The Codex provider only offers language models.",
        )
        self.model_id = model_id
        self.model_type = model_type


class APIError(CodexError):
    """Upstream API call failed.

    Retry metadata is attached for callers that implement their own retry
    policy; codexlink itself never retries.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.phase = phase


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""
