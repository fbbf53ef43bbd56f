"""Settings and call-option validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from codexlink.config import (
    CODEX_MODEL_IDS,
    DEFAULT_EXPIRY_MARGIN_S,
    ModelSettings,
    ProviderSettings,
    ReasoningSettings,
    default_auth_file,
)
from codexlink.errors import ConfigurationError
from codexlink.prompt import (
    AssistantMessage,
    CallOptions,
    FilePart,
    ReasoningPart,
    SystemMessage,
    TextPart,
    ToolCallPart,
    ToolChoice,
    ToolMessage,
    ToolResultOutput,
    ToolResultPart,
    UserMessage,
    coerce_prompt,
)

pytestmark = pytest.mark.unit

# =============================================================================
# ProviderSettings
# =============================================================================


def test_provider_settings_defaults() -> None:
    settings = ProviderSettings()

    assert settings.base_url == "https://chatgpt.com/backend-api"
    assert settings.api_key is None
    assert settings.use_api_key is False
    assert settings.expiry_margin_s == DEFAULT_EXPIRY_MARGIN_S == 3600


def test_trailing_slash_is_stripped_from_base_url() -> None:
    assert ProviderSettings(base_url="https://x.test/api/").base_url == "https://x.test/api"


@pytest.mark.parametrize("url", ["ftp://x.test", "not a url", "https://"])
def test_invalid_base_url_is_rejected_with_hint(url: str) -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        ProviderSettings(base_url=url)

    assert exc_info.value.hint is not None


def test_blank_secrets_are_normalized_to_none() -> None:
    settings = ProviderSettings(api_key="  ", refresh_token="")

    assert settings.api_key is None
    assert settings.refresh_token is None


def test_negative_expiry_margin_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="expiry_margin_s"):
        ProviderSettings(expiry_margin_s=-1)


def test_auth_file_resolution(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("CODEX_HOME", str(tmp_path))
    assert default_auth_file() == tmp_path / "auth.json"
    assert ProviderSettings().resolved_auth_file() == tmp_path / "auth.json"

    explicit = ProviderSettings(auth_file=Path("~/elsewhere/auth.json"))
    assert explicit.resolved_auth_file() == Path.home() / "elsewhere" / "auth.json"

    monkeypatch.delenv("CODEX_HOME")
    assert default_auth_file() == Path.home() / ".codex" / "auth.json"


def test_str_and_repr_redact_secrets() -> None:
    settings = ProviderSettings(api_key="sk-secret", refresh_token="rt-secret")

    for text in (str(settings), repr(settings)):
        assert "sk-secret" not in text
        assert "rt-secret" not in text
        assert text.count("[REDACTED]") == 2


def test_known_model_ids() -> None:
    assert "gpt-5.3-codex" in CODEX_MODEL_IDS
    assert "gpt-5.1-codex-mini" in CODEX_MODEL_IDS


# =============================================================================
# Model settings
# =============================================================================


def test_reasoning_settings_reject_unknown_levels() -> None:
    with pytest.raises(ConfigurationError, match="effort"):
        ReasoningSettings(effort="extreme")  # type: ignore[arg-type]
    with pytest.raises(ConfigurationError, match="summary"):
        ReasoningSettings(summary="verbose")  # type: ignore[arg-type]


def test_model_settings_validation() -> None:
    assert ModelSettings().store is False

    with pytest.raises(ConfigurationError, match="ReasoningSettings"):
        ModelSettings(reasoning={"effort": "high"})  # type: ignore[arg-type]
    with pytest.raises(ConfigurationError, match="seed"):
        ModelSettings(seed=True)  # type: ignore[arg-type]


# =============================================================================
# Prompt and call options
# =============================================================================


def test_coerce_prompt_accepts_dicts_and_messages() -> None:
    prompt = coerce_prompt(
        [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "hi"},
            AssistantMessage("hello"),
            {"role": "tool", "content": []},
        ]
    )

    assert prompt == [
        SystemMessage("Be brief."),
        UserMessage((TextPart("hi"),)),
        AssistantMessage((TextPart("hello"),)),
        ToolMessage(()),
    ]


@pytest.mark.parametrize(
    "prompt",
    ["hi", [{"content": "no role"}], [{"role": "narrator", "content": "x"}], [42]],
)
def test_coerce_prompt_rejects_bad_input(prompt) -> None:
    with pytest.raises(ConfigurationError):
        coerce_prompt(prompt)


def test_coerce_prompt_converts_part_dicts() -> None:
    prompt = coerce_prompt(
        [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "look"},
                    {"type": "file", "media_type": "image/png", "url": "https://x.test/a.png"},
                ],
            },
            {
                "role": "assistant",
                "content": [
                    {"type": "reasoning", "text": "thinking"},
                    {
                        "type": "tool-call",
                        "tool_call_id": "call_1",
                        "tool_name": "search",
                        "input": {"q": "x"},
                    },
                ],
            },
            {
                "role": "tool",
                "content": [
                    {
                        "type": "tool-result",
                        "tool_call_id": "call_1",
                        "tool_name": "search",
                        "output": {
                            "type": "content",
                            "value": [{"type": "text", "text": "found"}],
                        },
                    }
                ],
            },
        ]
    )

    assert prompt[0].content == (
        TextPart("look"),
        FilePart("image/png", url="https://x.test/a.png"),
    )
    assert prompt[1].content == (
        ReasoningPart("thinking"),
        ToolCallPart("call_1", "search", {"q": "x"}),
    )
    assert prompt[2].content == (
        ToolResultPart(
            "call_1", "search", ToolResultOutput("content", [TextPart("found")])
        ),
    )


@pytest.mark.parametrize(
    "message",
    [
        {"role": "user", "content": [{"type": "audio", "data": "x"}]},
        {"role": "user", "content": [{"text": "no type"}]},
        {"role": "user", "content": ["bare string part"]},
        {"role": "user", "content": [{"type": "text", "body": "wrong field"}]},
        {"role": "user", "content": 42},
        {"role": "tool", "content": "oops"},
        {
            "role": "tool",
            "content": [
                {
                    "type": "tool-result",
                    "tool_call_id": "c",
                    "tool_name": "t",
                    "output": {"kind": "text"},
                }
            ],
        },
    ],
)
def test_coerce_prompt_rejects_unknown_parts(message) -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        coerce_prompt([message])

    assert exc_info.value.hint is not None


def test_tool_message_rejects_string_content() -> None:
    with pytest.raises(ConfigurationError, match="not a string"):
        ToolMessage("oops")  # type: ignore[arg-type]


def test_file_part_needs_exactly_one_source() -> None:
    with pytest.raises(ConfigurationError):
        FilePart("image/png")
    with pytest.raises(ConfigurationError):
        FilePart("image/png", data=b"x", url="https://x.test/a.png")

    assert FilePart("image/png", url="https://x.test/a.png").is_image
    assert not FilePart("application/pdf", data=b"x").is_image


def test_call_options_normalize_string_tool_choice() -> None:
    options = CallOptions(prompt=[UserMessage("hi")], tool_choice="none")

    assert options.tool_choice == ToolChoice(type="none")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_output_tokens": 0},
        {"stop_sequences": "END"},
        {"tool_choice": "sometimes"},
    ],
)
def test_call_options_reject_invalid_values(kwargs) -> None:
    with pytest.raises(ConfigurationError):
        CallOptions(prompt=[UserMessage("hi")], **kwargs)


def test_forced_tool_choice_requires_a_name() -> None:
    with pytest.raises(ConfigurationError, match="tool_name"):
        ToolChoice(type="tool")
