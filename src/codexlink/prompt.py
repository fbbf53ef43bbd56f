"""Conversation and call-option types accepted by the language model."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, ClassVar, Literal, Union

from codexlink.errors import ConfigurationError

# --- Parts ---


@dataclass(frozen=True)
class TextPart:
    """Plain text."""

    type: ClassVar[str] = "text"

    text: str


@dataclass(frozen=True)
class ReasoningPart:
    """Model reasoning carried forward as assistant context."""

    type: ClassVar[str] = "reasoning"

    text: str


@dataclass(frozen=True)
class FilePart:
    """A file attachment: inline bytes, base64 text, or a URL reference."""

    type: ClassVar[str] = "file"

    media_type: str
    #: Raw bytes or base64-encoded text. Mutually exclusive with *url*.
    data: bytes | str | None = None
    url: str | None = None
    filename: str | None = None

    def __post_init__(self) -> None:
        """Require exactly one payload source."""
        if (self.data is None) == (self.url is None):
            raise ConfigurationError(
                "FilePart needs exactly one of data or url",
                hint="Pass data=b'...' (or base64 text) or url='https://...'.",
            )

    @property
    def is_image(self) -> bool:
        """Whether the media type is an image type."""
        return self.media_type.startswith("image/")


@dataclass(frozen=True)
class ToolCallPart:
    """A tool invocation previously made by the assistant."""

    type: ClassVar[str] = "tool-call"

    tool_call_id: str
    tool_name: str
    #: Serialized arguments, or any JSON value (serialized on encode).
    input: Any = None


ToolResultKind = Literal[
    "text", "json", "error-text", "error-json", "execution-denied", "content"
]


@dataclass(frozen=True)
class ToolResultOutput:
    """Payload of a tool result.

    ``value`` holds a string for text kinds, any JSON value for json kinds,
    and a list of TextPart/FilePart sub-parts for ``content``.
    """

    type: ToolResultKind
    value: Any = None
    #: Only used by ``execution-denied``.
    reason: str | None = None


@dataclass(frozen=True)
class ToolResultPart:
    """The result of running a tool, keyed by the call id."""

    type: ClassVar[str] = "tool-result"

    tool_call_id: str
    tool_name: str
    output: ToolResultOutput


UserPart = Union[TextPart, FilePart]
AssistantPart = Union[TextPart, ReasoningPart, ToolCallPart, FilePart, ToolResultPart]

_PART_TYPES: dict[str, type[Any]] = {
    "text": TextPart,
    "reasoning": ReasoningPart,
    "file": FilePart,
    "tool-call": ToolCallPart,
    "tool-result": ToolResultPart,
}


def coerce_part(part: Any) -> Any:
    """Accept a part object or a ``{"type": ..., ...}`` dict."""
    if isinstance(part, tuple(_PART_TYPES.values())):
        return part
    cls = _PART_TYPES.get(part.get("type")) if isinstance(part, dict) else None
    if cls is None:
        raise ConfigurationError(
            f"Unsupported content part: {part!r}",
            hint="Use TextPart/FilePart/... or a dict with 'type' set to one of: "
            + ", ".join(repr(t) for t in _PART_TYPES)
            + ".",
        )

    fields = {k: v for k, v in part.items() if k != "type"}
    if cls is ToolResultPart and isinstance(fields.get("output"), dict):
        fields["output"] = _coerce_tool_output(fields["output"])
    try:
        return cls(**fields)
    except TypeError as e:
        raise ConfigurationError(
            f"Invalid {part['type']!r} part: {e}",
            hint=f"See {cls.__name__} for the accepted fields.",
        ) from e


def _coerce_tool_output(output: dict[str, Any]) -> ToolResultOutput:
    try:
        result = ToolResultOutput(**output)
    except TypeError as e:
        raise ConfigurationError(
            f"Invalid tool result output: {e}",
            hint="Pass {'type': 'text', 'value': '...'} or a ToolResultOutput.",
        ) from e
    if result.type == "content" and isinstance(result.value, (list, tuple)):
        result = replace(result, value=[coerce_part(p) for p in result.value])
    return result


# --- Messages ---


def _as_parts(content: Any) -> tuple[Any, ...]:
    if isinstance(content, str):
        return (TextPart(content),)
    if not isinstance(content, (list, tuple)):
        raise ConfigurationError(
            "Message content must be a string or a list of parts, "
            f"got {type(content).__name__}",
            hint="Pass content='hi' or content=[{'type': 'text', 'text': 'hi'}].",
        )
    return tuple(coerce_part(p) for p in content)


@dataclass(frozen=True)
class SystemMessage:
    """System-level guidance. Plain text only."""

    role: ClassVar[str] = "system"

    content: str


@dataclass(frozen=True)
class UserMessage:
    """A user turn. A bare string becomes a single TextPart."""

    role: ClassVar[str] = "user"

    content: tuple[UserPart, ...]

    def __post_init__(self) -> None:
        """Normalize content into a tuple of parts."""
        object.__setattr__(self, "content", _as_parts(self.content))


@dataclass(frozen=True)
class AssistantMessage:
    """An assistant turn: text, reasoning and tool calls."""

    role: ClassVar[str] = "assistant"

    content: tuple[AssistantPart, ...]

    def __post_init__(self) -> None:
        """Normalize content into a tuple of parts."""
        object.__setattr__(self, "content", _as_parts(self.content))


@dataclass(frozen=True)
class ToolMessage:
    """Tool results answering earlier assistant tool calls."""

    role: ClassVar[str] = "tool"

    content: tuple[ToolResultPart, ...]

    def __post_init__(self) -> None:
        """Normalize content into a tuple of tool results; text is not allowed."""
        if isinstance(self.content, str):
            raise ConfigurationError(
                "Tool message content must be a list of tool results, not a string",
                hint="Pass content=[ToolResultPart(tool_call_id, tool_name, output)].",
            )
        object.__setattr__(self, "content", _as_parts(self.content))


Message = Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage]

_MESSAGE_TYPES: dict[str, type[Any]] = {
    "system": SystemMessage,
    "user": UserMessage,
    "assistant": AssistantMessage,
    "tool": ToolMessage,
}


def coerce_prompt(items: Any) -> list[Message]:
    """Accept Message objects or ``{"role": ..., "content": ...}`` dicts."""
    if isinstance(items, (str, bytes)) or not hasattr(items, "__iter__"):
        raise ConfigurationError(
            "prompt must be a list of messages",
            hint="Pass prompt=[UserMessage('hi')] or [{'role': 'user', 'content': 'hi'}].",
        )

    messages: list[Message] = []
    for item in items:
        if isinstance(item, tuple(_MESSAGE_TYPES.values())):
            messages.append(item)
            continue
        if not isinstance(item, dict) or not isinstance(item.get("role"), str):
            raise ConfigurationError(
                "prompt items must be messages or dicts with a string 'role' field",
                hint="Each item needs at least {'role': 'user', 'content': ...}.",
            )
        cls = _MESSAGE_TYPES.get(item["role"])
        if cls is None:
            raise ConfigurationError(
                f"Unknown message role: {item['role']!r}",
                hint="Supported roles: 'system', 'user', 'assistant', 'tool'.",
            )
        messages.append(cls(item.get("content", "")))
    return messages


# --- Tools ---


@dataclass(frozen=True)
class FunctionTool:
    """A caller-defined function the model may call."""

    type: ClassVar[str] = "function"

    name: str
    #: JSON Schema for the function arguments.
    input_schema: dict[str, Any]
    description: str | None = None


@dataclass(frozen=True)
class ProviderTool:
    """A provider-defined tool. The Codex endpoint does not accept these."""

    type: ClassVar[str] = "provider"

    id: str
    name: str
    args: dict[str, Any] | None = None


Tool = Union[FunctionTool, ProviderTool]


@dataclass(frozen=True)
class ToolChoice:
    """Tool-choice policy; ``tool`` forces a specific tool by name."""

    type: Literal["auto", "none", "required", "tool"]
    tool_name: str | None = None

    def __post_init__(self) -> None:
        """A forced tool choice needs a tool name."""
        if self.type == "tool" and not self.tool_name:
            raise ConfigurationError(
                "ToolChoice(type='tool') requires tool_name",
                hint="Pass ToolChoice(type='tool', tool_name='search').",
            )


@dataclass(frozen=True)
class ResponseFormat:
    """Requested response format. JSON is not supported upstream."""

    type: Literal["text", "json"] = "text"
    schema: dict[str, Any] | None = None


# --- Call options ---


@dataclass(frozen=True)
class CallOptions:
    """Per-call generation request."""

    prompt: list[Message]
    max_output_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    #: Not supported upstream; produces a warning.
    top_k: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stop_sequences: list[str] | None = None
    #: Overrides ModelSettings.seed when set.
    seed: int | None = None
    response_format: ResponseFormat | None = None
    tools: list[Tool] | None = None
    tool_choice: ToolChoice | Literal["auto", "none", "required"] | None = None
    #: Emit a RawChunk event for every parsed upstream record.
    include_raw_chunks: bool = False
    #: Per-call headers; applied last, so they override everything.
    headers: dict[str, str] | None = None

    def __post_init__(self) -> None:
        """Validate option shapes early for clear errors."""
        object.__setattr__(self, "prompt", coerce_prompt(self.prompt))

        if self.max_output_tokens is not None and (
            not isinstance(self.max_output_tokens, int) or self.max_output_tokens <= 0
        ):
            raise ConfigurationError(
                "max_output_tokens must be a positive integer",
                hint="Pass max_output_tokens=4096 or greater for reasoning models.",
            )

        if self.stop_sequences is not None and (
            not isinstance(self.stop_sequences, list)
            or not all(isinstance(s, str) for s in self.stop_sequences)
        ):
            raise ConfigurationError(
                "stop_sequences must be a list of strings",
                hint="Pass stop_sequences=['\\n\\n'].",
            )

        if isinstance(self.tool_choice, str):
            if self.tool_choice not in ("auto", "none", "required"):
                raise ConfigurationError(
                    f"Unknown tool_choice: {self.tool_choice!r}",
                    hint="Use 'auto', 'none', 'required' or ToolChoice(type='tool', ...).",
                )
            object.__setattr__(self, "tool_choice", ToolChoice(type=self.tool_choice))
