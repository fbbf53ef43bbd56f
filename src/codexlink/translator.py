"""Response protocol translation: upstream event records to normalized events.

One dispatch path serves both consumption modes. It writes into a sink:
``StreamSink`` queues events for live iteration, ``BufferSink`` folds them
into a single ``BufferedResult``. Because both modes run the exact same
``feed``/``close`` logic, they observe the protocol identically.

Each request owns its own ``ResponseTranslator``; nothing here is shared
across requests.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import logging
from typing import TYPE_CHECKING, Any, Protocol
import uuid

from codexlink.errors import ProtocolError
from codexlink.events import (
    ErrorEvent,
    Finish,
    FinishReason,
    InputTokens,
    OutputTokens,
    RawChunk,
    ReasoningDelta,
    ReasoningEnd,
    ReasoningStart,
    ResponseMetadata,
    StreamStart,
    TextDelta,
    TextEnd,
    TextStart,
    ToolCall,
    ToolInputDelta,
    ToolInputEnd,
    ToolInputStart,
    Usage,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable

    from codexlink.events import FinishKind, StreamPart, UnsupportedFeatureWarning
    from codexlink.sse import EventRecord

log = logging.getLogger(__name__)

_FINISH_REASONS: dict[str, FinishKind] = {
    "stop": "stop",
    "completed": "stop",
    "length": "length",
    "max_output_tokens": "length",
    "tool_calls": "tool-calls",
    "incomplete": "tool-calls",
    "content_filter": "content-filter",
    "error": "error",
    "failed": "error",
}

#: Reported when the upstream stream ends without ``response.completed``.
UNFINISHED = FinishReason(unified="other", raw=None)


def map_finish_reason(reason: str) -> FinishReason:
    """Map an upstream status/finish string to a FinishReason."""
    return FinishReason(unified=_FINISH_REASONS.get(reason, "other"), raw=reason)


def _int_or_none(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def extract_usage(response: dict[str, Any] | None) -> Usage:
    """Build Usage from a terminal response; derived fields need both operands."""
    usage = response.get("usage") if isinstance(response, dict) else None
    if not isinstance(usage, dict):
        return Usage()

    input_details = usage.get("input_tokens_details")
    output_details = usage.get("output_tokens_details")
    input_total = _int_or_none(usage.get("input_tokens"))
    output_total = _int_or_none(usage.get("output_tokens"))
    cached = (
        _int_or_none(input_details.get("cached_tokens"))
        if isinstance(input_details, dict)
        else None
    )
    reasoning = (
        _int_or_none(output_details.get("reasoning_tokens"))
        if isinstance(output_details, dict)
        else None
    )

    return Usage(
        input_tokens=InputTokens(
            total=input_total,
            no_cache=(
                input_total - cached
                if input_total is not None and cached is not None
                else None
            ),
            cache_read=cached,
            cache_write=None,
        ),
        output_tokens=OutputTokens(
            total=output_total,
            text=(
                output_total - reasoning
                if output_total is not None and reasoning is not None
                else None
            ),
            reasoning=reasoning,
        ),
        raw=usage,
    )


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def new_id() -> str:
    """Return a random segment identifier."""
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Sinks ---


class EventSink(Protocol):
    """Where the dispatcher writes normalized events."""

    #: Whether partial tool-input events (start/delta/end) are wanted.
    partial: bool

    def emit(self, event: StreamPart) -> None: ...


class StreamSink:
    """Queue events for live, in-order iteration."""

    partial = True

    def __init__(self) -> None:
        self._pending: deque[StreamPart] = deque()

    def emit(self, event: StreamPart) -> None:
        self._pending.append(event)

    def drain(self) -> list[StreamPart]:
        """Return and clear the queued events."""
        events = list(self._pending)
        self._pending.clear()
        return events


@dataclass
class BufferedResult:
    """Scalar fold of one response."""

    text: str = ""
    reasoning: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: FinishReason = UNFINISHED
    usage: Usage = field(default_factory=Usage)
    response_id: str | None = None
    model_id: str | None = None


class BufferSink:
    """Fold events into a BufferedResult instead of emitting them."""

    partial = False

    def __init__(self) -> None:
        self.result = BufferedResult()

    def emit(self, event: StreamPart) -> None:
        result = self.result
        if isinstance(event, TextDelta):
            result.text += event.delta
        elif isinstance(event, ReasoningDelta):
            result.reasoning += event.delta
        elif isinstance(event, ToolCall):
            result.tool_calls.append(event)
        elif isinstance(event, ResponseMetadata):
            result.response_id = event.id
            result.model_id = event.model_id
        elif isinstance(event, Finish):
            result.finish_reason = event.finish_reason
            result.usage = event.usage
        elif isinstance(event, ErrorEvent):
            log.debug("Skipping malformed record in buffered mode: %s", event.error)


# --- Translator ---


@dataclass
class TranslatorState:
    """Mutable per-request state; never shared across requests."""

    text_id: str | None = None
    reasoning_id: str | None = None
    tool_names: dict[str, str] = field(default_factory=dict)
    tool_args: dict[str, str] = field(default_factory=dict)
    #: Insertion-ordered set of tool inputs that were started but not ended.
    open_tool_inputs: dict[str, None] = field(default_factory=dict)
    started: bool = False
    finished: bool = False


class ResponseTranslator:
    """Stateful per-request machine from EventRecords to StreamParts."""

    def __init__(
        self,
        *,
        warnings: Iterable[UnsupportedFeatureWarning] = (),
        include_raw_chunks: bool = False,
        generate_id: Callable[[], str] = new_id,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.warnings = tuple(warnings)
        self.include_raw_chunks = include_raw_chunks
        self.state = TranslatorState()
        self._generate_id = generate_id
        self._clock = clock
        self._handlers: dict[str, Callable[[dict[str, Any], EventSink], None]] = {
            "response.output_text.delta": self._on_text_delta,
            "response.output_text.done": self._on_text_done,
            "response.reasoning_summary_text.delta": self._on_reasoning_delta,
            "response.reasoning_summary_text.done": self._on_reasoning_done,
            "response.output_item.added": self._on_output_item_added,
            "response.function_call_arguments.delta": self._on_arguments_delta,
            "response.function_call_arguments.done": self._on_arguments_done,
            "response.completed": self._on_completed,
        }

    # Public protocol

    def feed(self, record: EventRecord, sink: EventSink) -> None:
        """Dispatch one record. Malformed records never abort the stream."""
        if record.is_marker:
            return
        if self.state.finished:
            log.debug("Ignoring event record after finish")
            return

        if not self.state.started:
            self.state.started = True
            sink.emit(StreamStart(warnings=self.warnings))

        try:
            payload = json.loads(record.data or "")
        except ValueError as e:
            log.debug("Ignoring undecodable event record: %s", e)
            sink.emit(ErrorEvent(ProtocolError(f"Malformed event record: {e}")))
            return
        if not isinstance(payload, dict):
            log.debug("Ignoring non-object event record: %r", payload)
            sink.emit(
                ErrorEvent(ProtocolError("Malformed event record: expected a JSON object"))
            )
            return

        if self.include_raw_chunks:
            sink.emit(RawChunk(raw_value=payload))

        event_type = payload.get("type")
        handler = self._handlers.get(event_type) if isinstance(event_type, str) else None
        if handler is None:
            log.debug("Ignoring event type %r", event_type)
            return

        try:
            handler(payload, sink)
        except Exception as e:
            error = ProtocolError(f"Failed to translate {event_type}: {e}")
            error.__cause__ = e
            sink.emit(ErrorEvent(error))

    def close(self, sink: EventSink) -> None:
        """End of stream: close dangling segments and guarantee a finish."""
        if not self.state.started:
            self.state.started = True
            sink.emit(StreamStart(warnings=self.warnings))
        self._close_open_segments(sink)
        if not self.state.finished:
            self.state.finished = True
            sink.emit(Finish(finish_reason=UNFINISHED, usage=Usage()))

    def abort(self, sink: EventSink, error: BaseException) -> None:
        """Upstream failed mid-stream: close dangling segments, then report."""
        self._close_open_segments(sink)
        self.state.finished = True
        sink.emit(ErrorEvent(error))

    # Segment lifecycle

    def _close_text(self, sink: EventSink) -> None:
        if self.state.text_id is not None:
            sink.emit(TextEnd(id=self.state.text_id))
            self.state.text_id = None

    def _close_reasoning(self, sink: EventSink) -> None:
        if self.state.reasoning_id is not None:
            sink.emit(ReasoningEnd(id=self.state.reasoning_id))
            self.state.reasoning_id = None

    def _close_open_segments(self, sink: EventSink) -> None:
        self._close_text(sink)
        self._close_reasoning(sink)
        for item_id in list(self.state.open_tool_inputs):
            sink.emit(ToolInputEnd(id=item_id))
        self.state.open_tool_inputs.clear()

    # Handlers

    def _on_text_delta(self, payload: dict[str, Any], sink: EventSink) -> None:
        if self.state.text_id is None:
            self.state.text_id = self._generate_id()
            sink.emit(TextStart(id=self.state.text_id))
        sink.emit(TextDelta(id=self.state.text_id, delta=_as_str(payload.get("delta"))))

    def _on_text_done(self, payload: dict[str, Any], sink: EventSink) -> None:
        _ = payload
        self._close_text(sink)

    def _on_reasoning_delta(self, payload: dict[str, Any], sink: EventSink) -> None:
        if self.state.reasoning_id is None:
            self.state.reasoning_id = self._generate_id()
            sink.emit(ReasoningStart(id=self.state.reasoning_id))
        sink.emit(
            ReasoningDelta(
                id=self.state.reasoning_id, delta=_as_str(payload.get("delta"))
            )
        )

    def _on_reasoning_done(self, payload: dict[str, Any], sink: EventSink) -> None:
        _ = payload
        self._close_reasoning(sink)

    def _on_output_item_added(self, payload: dict[str, Any], sink: EventSink) -> None:
        item = payload.get("item")
        if not isinstance(item, dict) or item.get("type") != "function_call":
            return
        name = item.get("name")
        if not name:
            return
        item_id = item.get("id") or payload.get("item_id")
        if not item_id:
            return

        self.state.tool_names[item_id] = name
        if sink.partial:
            self.state.open_tool_inputs[item_id] = None
            sink.emit(ToolInputStart(id=item_id, tool_name=name))

    def _on_arguments_delta(self, payload: dict[str, Any], sink: EventSink) -> None:
        item_id = payload.get("item_id")
        delta = payload.get("delta")
        if not item_id or not delta:
            return
        delta = _as_str(delta)
        self.state.tool_args[item_id] = self.state.tool_args.get(item_id, "") + delta
        if sink.partial:
            sink.emit(ToolInputDelta(id=item_id, delta=delta))

    def _on_arguments_done(self, payload: dict[str, Any], sink: EventSink) -> None:
        item_id = payload.get("item_id") or None

        tool_name = self.state.tool_names.get(item_id) if item_id else None
        if tool_name is None:
            tool_name = payload.get("name")
        if tool_name is None:
            tool_name = "unknown"

        args: Any = payload.get("arguments")
        if item_id and item_id in self.state.tool_args:
            args = self.state.tool_args.pop(item_id)
        if args is None:
            args_string = "{}"
        else:
            args_string = args if isinstance(args, str) else json.dumps(args)

        tool_call_id = payload.get("call_id") or item_id or self._generate_id()

        if sink.partial and item_id and item_id in self.state.open_tool_inputs:
            self.state.open_tool_inputs.pop(item_id)
            sink.emit(ToolInputEnd(id=item_id))
        sink.emit(
            ToolCall(tool_call_id=tool_call_id, tool_name=tool_name, input=args_string)
        )

    def _on_completed(self, payload: dict[str, Any], sink: EventSink) -> None:
        # Segments must be closed before the finish event.
        self._close_open_segments(sink)

        response = payload.get("response")
        if not isinstance(response, dict):
            response = {}
        status = response.get("status")
        finish_reason = map_finish_reason(status if isinstance(status, str) else "stop")

        response_id = response.get("id")
        model_id = response.get("model")
        sink.emit(
            ResponseMetadata(
                id=response_id if isinstance(response_id, str) else None,
                model_id=model_id if isinstance(model_id, str) else None,
                timestamp=self._clock(),
            )
        )
        sink.emit(Finish(finish_reason=finish_reason, usage=extract_usage(response)))
        self.state.finished = True


# --- Drivers ---


async def translate_stream(
    records: AsyncIterable[EventRecord],
    translator: ResponseTranslator,
) -> AsyncIterator[StreamPart]:
    """Yield normalized events in record order.

    A failure raised by the record source itself (the transport dying
    mid-stream) closes open segments and is reported as a final ErrorEvent.
    """
    sink = StreamSink()
    iterator = aiter(records)
    while True:
        try:
            record = await anext(iterator)
        except StopAsyncIteration:
            break
        except Exception as e:
            log.debug("Event stream aborted: %s", e)
            translator.abort(sink, e)
            for event in sink.drain():
                yield event
            return

        translator.feed(record, sink)
        for event in sink.drain():
            yield event

    translator.close(sink)
    for event in sink.drain():
        yield event


async def fold_stream(
    records: AsyncIterable[EventRecord],
    translator: ResponseTranslator,
) -> BufferedResult:
    """Consume every record and return the folded result.

    Record-source failures propagate: in buffered mode they are the terminal
    outcome of the call.
    """
    sink = BufferSink()
    async for record in records:
        translator.feed(record, sink)
    translator.close(sink)
    return sink.result
