"""Normalized output vocabulary: stream events, usage, and results.

These types are independent of the upstream protocol's event names; the
translator maps upstream records onto them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar, Literal, Union

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

FinishKind = Literal["stop", "length", "tool-calls", "content-filter", "error", "other"]


@dataclass(frozen=True)
class UnsupportedFeatureWarning:
    """A requested feature with no upstream equivalent; advisory only."""

    feature: str
    details: str | None = None


@dataclass(frozen=True)
class FinishReason:
    """Why generation stopped: normalized kind plus the raw upstream value."""

    unified: FinishKind
    raw: str | None = None


@dataclass(frozen=True)
class InputTokens:
    total: int | None = None
    no_cache: int | None = None
    cache_read: int | None = None
    cache_write: int | None = None


@dataclass(frozen=True)
class OutputTokens:
    total: int | None = None
    text: int | None = None
    reasoning: int | None = None


@dataclass(frozen=True)
class Usage:
    """Token accounting; fields stay None unless the upstream reported them."""

    input_tokens: InputTokens = field(default_factory=InputTokens)
    output_tokens: OutputTokens = field(default_factory=OutputTokens)
    raw: dict[str, Any] | None = None


# --- Stream events ---


@dataclass(frozen=True)
class StreamStart:
    type: ClassVar[str] = "stream-start"

    warnings: tuple[UnsupportedFeatureWarning, ...] = ()


@dataclass(frozen=True)
class TextStart:
    type: ClassVar[str] = "text-start"

    id: str


@dataclass(frozen=True)
class TextDelta:
    type: ClassVar[str] = "text-delta"

    id: str
    delta: str


@dataclass(frozen=True)
class TextEnd:
    type: ClassVar[str] = "text-end"

    id: str


@dataclass(frozen=True)
class ReasoningStart:
    type: ClassVar[str] = "reasoning-start"

    id: str


@dataclass(frozen=True)
class ReasoningDelta:
    type: ClassVar[str] = "reasoning-delta"

    id: str
    delta: str


@dataclass(frozen=True)
class ReasoningEnd:
    type: ClassVar[str] = "reasoning-end"

    id: str


@dataclass(frozen=True)
class ToolInputStart:
    type: ClassVar[str] = "tool-input-start"

    id: str
    tool_name: str


@dataclass(frozen=True)
class ToolInputDelta:
    type: ClassVar[str] = "tool-input-delta"

    id: str
    delta: str


@dataclass(frozen=True)
class ToolInputEnd:
    type: ClassVar[str] = "tool-input-end"

    id: str


@dataclass(frozen=True)
class ToolCall:
    """A complete tool call; ``input`` is the serialized argument string."""

    type: ClassVar[str] = "tool-call"

    tool_call_id: str
    tool_name: str
    input: str


@dataclass(frozen=True)
class ResponseMetadata:
    type: ClassVar[str] = "response-metadata"

    id: str | None
    model_id: str | None
    timestamp: datetime


@dataclass(frozen=True)
class Finish:
    type: ClassVar[str] = "finish"

    finish_reason: FinishReason
    usage: Usage


@dataclass(frozen=True)
class ErrorEvent:
    """A contained failure; iteration continues unless the stream aborted."""

    type: ClassVar[str] = "error"

    error: BaseException


@dataclass(frozen=True)
class RawChunk:
    type: ClassVar[str] = "raw"

    raw_value: Any


StreamPart = Union[
    StreamStart,
    TextStart,
    TextDelta,
    TextEnd,
    ReasoningStart,
    ReasoningDelta,
    ReasoningEnd,
    ToolInputStart,
    ToolInputDelta,
    ToolInputEnd,
    ToolCall,
    ResponseMetadata,
    Finish,
    ErrorEvent,
    RawChunk,
]

# --- Results ---


@dataclass(frozen=True)
class TextContent:
    type: ClassVar[str] = "text"

    text: str


@dataclass(frozen=True)
class ReasoningContent:
    type: ClassVar[str] = "reasoning"

    text: str


Content = Union[TextContent, ReasoningContent, ToolCall]


@dataclass(frozen=True)
class ResponseInfo:
    id: str | None
    model_id: str
    timestamp: datetime


@dataclass(frozen=True)
class GenerateResult:
    """Aggregated outcome of a non-streaming call."""

    content: list[Content]
    finish_reason: FinishReason
    usage: Usage
    warnings: list[UnsupportedFeatureWarning]
    request_body: dict[str, Any]
    response: ResponseInfo

    @property
    def text(self) -> str:
        """Concatenated text content."""
        return "".join(c.text for c in self.content if isinstance(c, TextContent))

    @property
    def tool_calls(self) -> list[ToolCall]:
        """Tool calls in the order they completed."""
        return [c for c in self.content if isinstance(c, ToolCall)]


@dataclass(frozen=True)
class StreamResult:
    """A live event stream plus the request body that produced it.

    The stream holds an open HTTP response until it is exhausted. Call
    ``aclose()`` when abandoning it early, including before the first event.
    """

    stream: AsyncIterator[StreamPart]
    request_body: dict[str, Any]
    release: Callable[[], Awaitable[None]] | None = field(
        default=None, repr=False, compare=False
    )

    async def aclose(self) -> None:
        """Stop the stream and release its HTTP resources. Safe to call twice."""
        try:
            aclose = getattr(self.stream, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            if self.release is not None:
                await self.release()
