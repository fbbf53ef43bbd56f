"""Provider factory: binds settings and credentials to language models."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from codexlink._errors import PROVIDER
from codexlink.auth import AuthMode, CredentialManager
from codexlink.config import ProviderSettings
from codexlink.errors import AuthenticationError, NoSuchModelError
from codexlink.model import CodexLanguageModel, ModelConfig

if TYPE_CHECKING:
    from typing import NoReturn

    from codexlink.config import ModelSettings


class CodexProvider:
    """Create Codex language models sharing one credential manager.

    ``provider("gpt-5.3-codex")`` is shorthand for
    ``provider.language_model("gpt-5.3-codex")``.
    """

    specification_version = "v3"

    def __init__(
        self,
        settings: ProviderSettings | None = None,
        *,
        credentials: CredentialManager | None = None,
    ) -> None:
        self.settings = settings or ProviderSettings()
        self.credentials = credentials or CredentialManager(self.settings)

    async def get_headers(self) -> dict[str, str]:
        """Resolve request headers; file-mode failures carry a login hint."""
        if self.credentials.mode is not AuthMode.FILE:
            return await self.credentials.get_headers()
        try:
            return await self.credentials.get_headers()
        except AuthenticationError as e:
            path = self.settings.resolved_auth_file()
            raise AuthenticationError(
                f"Failed to load authentication from {path}. Error: {e}",
                hint=(
                    "Run 'codex login' first, or provide an API key via "
                    "ProviderSettings(api_key=...) or use_api_key=True."
                ),
            ) from e

    def language_model(
        self, model_id: str, settings: ModelSettings | None = None
    ) -> CodexLanguageModel:
        return CodexLanguageModel(
            model_id,
            settings,
            ModelConfig(
                provider=PROVIDER,
                base_url=self.settings.base_url or "",
                headers=self.get_headers,
                http_client=self.settings.http_client,
            ),
        )

    def __call__(
        self, model_id: str, settings: ModelSettings | None = None
    ) -> CodexLanguageModel:
        return self.language_model(model_id, settings)

    def embedding_model(self, model_id: str) -> NoReturn:
        raise NoSuchModelError(model_id, model_type="embeddingModel")

    def image_model(self, model_id: str) -> NoReturn:
        raise NoSuchModelError(model_id, model_type="imageModel")

    def __repr__(self) -> str:
        return f"CodexProvider(settings={self.settings})"


def create_codex(settings: ProviderSettings | None = None) -> CodexProvider:
    """Create a provider.

    Example:
        codex = create_codex(ProviderSettings(use_api_key=True))
        model = codex("gpt-5.3-codex")
    """
    return CodexProvider(settings)


_default: CodexProvider | None = None


def default_provider() -> CodexProvider:
    """Return the shared provider using the Codex CLI auth file.

    Built on first use, not at import, so environment problems surface
    at the call site.
    """
    global _default
    if _default is None:
        _default = create_codex()
    return _default


def __getattr__(name: str) -> Any:
    # ``codex`` is the lazily created default provider.
    if name == "codex":
        return default_provider()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
