"""Request encoding: conversation + options into a Codex Responses body.

The Codex endpoint requires system guidance in a top-level ``instructions``
field rather than as system messages inside ``input``; every system message
is folded into that one string.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
import json
from typing import TYPE_CHECKING, Any

from codexlink.events import UnsupportedFeatureWarning
from codexlink.prompt import (
    AssistantMessage,
    FilePart,
    FunctionTool,
    ReasoningPart,
    SystemMessage,
    TextPart,
    ToolCallPart,
    ToolChoice,
    ToolMessage,
    ToolResultOutput,
    ToolResultPart,
    UserMessage,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from codexlink.config import ModelSettings
    from codexlink.prompt import CallOptions, Message, Tool

DEFAULT_INSTRUCTIONS = "You are a helpful assistant."
EXECUTION_DENIED_FALLBACK = "Tool execution denied"


@dataclass(frozen=True)
class EncodedPrompt:
    instructions: str
    input: list[dict[str, Any]]


@dataclass(frozen=True)
class EncodedRequest:
    body: dict[str, Any]
    warnings: list[UnsupportedFeatureWarning]


def _to_json_string(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


def _file_to_content(part: FilePart) -> dict[str, str]:
    """Images become input_image; other files become a text placeholder."""
    if not part.is_image:
        return {
            "type": "input_text",
            "text": f"[File: {part.filename or 'unnamed'} ({part.media_type})]",
        }

    if part.url is not None:
        image_url = part.url
    elif isinstance(part.data, (bytes, bytearray)):
        encoded = base64.b64encode(bytes(part.data)).decode("ascii")
        image_url = f"data:{part.media_type};base64,{encoded}"
    else:
        image_url = f"data:{part.media_type};base64,{part.data}"
    return {"type": "input_image", "image_url": image_url}


def flatten_tool_output(output: ToolResultOutput) -> str:
    """Flatten a tool result payload into the string the upstream expects."""
    kind = output.type
    if kind in ("text", "error-text"):
        return output.value if isinstance(output.value, str) else str(output.value)
    if kind in ("json", "error-json"):
        return json.dumps(output.value)
    if kind == "execution-denied":
        return output.reason or EXECUTION_DENIED_FALLBACK
    if kind == "content":
        pieces = [item.text for item in output.value or () if isinstance(item, TextPart)]
        return "\n".join(pieces)
    return ""


def _encode_user(message: UserMessage) -> dict[str, Any]:
    content: list[dict[str, str]] = []
    for part in message.content:
        if isinstance(part, TextPart):
            content.append({"type": "input_text", "text": part.text})
        elif isinstance(part, FilePart):
            content.append(_file_to_content(part))
    return {"type": "message", "role": "user", "content": content}


def _encode_assistant(message: AssistantMessage) -> list[dict[str, Any]]:
    text_parts: list[dict[str, str]] = []
    function_calls: list[dict[str, Any]] = []

    for part in message.content:
        if isinstance(part, TextPart):
            text_parts.append({"type": "output_text", "text": part.text})
        elif isinstance(part, ReasoningPart):
            # Reasoning survives as plain-text context for the next turn.
            text_parts.append(
                {"type": "output_text", "text": f"<reasoning>\n{part.text}\n</reasoning>"}
            )
        elif isinstance(part, ToolCallPart):
            function_calls.append(
                {
                    "type": "function_call",
                    "id": part.tool_call_id,
                    "call_id": part.tool_call_id,
                    "name": part.tool_name,
                    "arguments": _to_json_string(part.input),
                }
            )
        # File and tool-result parts have no assistant-side encoding.

    items: list[dict[str, Any]] = []
    if text_parts:
        items.append({"type": "message", "role": "assistant", "content": text_parts})
    items.extend(function_calls)
    return items


def _encode_tool(message: ToolMessage) -> list[dict[str, Any]]:
    return [
        {
            "type": "function_call_output",
            "call_id": part.tool_call_id,
            "output": flatten_tool_output(part.output),
        }
        for part in message.content
        if isinstance(part, ToolResultPart)
    ]


def convert_prompt(prompt: Sequence[Message]) -> EncodedPrompt:
    """Convert a conversation into ``instructions`` plus ordered input items."""
    system_parts: list[str] = []
    items: list[dict[str, Any]] = []

    for message in prompt:
        if isinstance(message, SystemMessage):
            system_parts.append(message.content)
        elif isinstance(message, UserMessage):
            items.append(_encode_user(message))
        elif isinstance(message, AssistantMessage):
            items.extend(_encode_assistant(message))
        elif isinstance(message, ToolMessage):
            items.extend(_encode_tool(message))

    instructions = "\n\n".join(system_parts) if system_parts else DEFAULT_INSTRUCTIONS
    return EncodedPrompt(instructions=instructions, input=items)


def convert_tools(tools: Iterable[Tool]) -> list[dict[str, Any]]:
    """Convert function tools to the upstream format; provider tools are dropped."""
    converted: list[dict[str, Any]] = []
    for tool in tools:
        if not isinstance(tool, FunctionTool):
            continue
        tool_def: dict[str, Any] = {"type": "function", "name": tool.name}
        if tool.description is not None:
            tool_def["description"] = tool.description
        tool_def["parameters"] = tool.input_schema
        tool_def["strict"] = False
        converted.append(tool_def)
    return converted


def convert_tool_choice(
    tool_choice: ToolChoice | str | None,
) -> str | dict[str, Any] | None:
    """Map a tool-choice policy to the upstream ``tool_choice`` value."""
    if tool_choice is None:
        return None
    if isinstance(tool_choice, str):
        tool_choice = ToolChoice(type=tool_choice)  # type: ignore[arg-type]
    if tool_choice.type == "tool":
        return {"type": "function", "function": {"name": tool_choice.tool_name}}
    return tool_choice.type


def collect_warnings(options: CallOptions) -> list[UnsupportedFeatureWarning]:
    """Return advisory warnings for requested features with no upstream equivalent."""
    warnings: list[UnsupportedFeatureWarning] = []
    if options.top_k is not None:
        warnings.append(UnsupportedFeatureWarning(feature="topK"))
    if options.response_format is not None and options.response_format.type == "json":
        warnings.append(
            UnsupportedFeatureWarning(
                feature="responseFormat",
                details="JSON response format is not supported by the Codex API",
            )
        )
    return warnings


def encode_request(
    model_id: str,
    options: CallOptions,
    settings: ModelSettings,
) -> EncodedRequest:
    """Build the full upstream request body. Streaming is always requested."""
    encoded = convert_prompt(options.prompt)
    warnings = collect_warnings(options)

    body: dict[str, Any] = {
        "model": model_id,
        "instructions": encoded.instructions,
        "input": encoded.input,
        "store": settings.store,
        "stream": True,
    }

    # Optional parameters are only sent when set.
    if options.max_output_tokens is not None:
        body["max_output_tokens"] = options.max_output_tokens
    if options.temperature is not None:
        body["temperature"] = options.temperature
    if options.top_p is not None:
        body["top_p"] = options.top_p
    if options.frequency_penalty is not None:
        body["frequency_penalty"] = options.frequency_penalty
    if options.presence_penalty is not None:
        body["presence_penalty"] = options.presence_penalty
    if options.stop_sequences is not None:
        body["stop"] = options.stop_sequences
    seed = options.seed if options.seed is not None else settings.seed
    if seed is not None:
        body["seed"] = seed

    tools = convert_tools(options.tools) if options.tools else []
    if tools:
        body["tools"] = tools
        tool_choice = convert_tool_choice(options.tool_choice)
        if tool_choice is not None:
            body["tool_choice"] = tool_choice

    if settings.reasoning is not None:
        body["reasoning"] = {
            "effort": settings.reasoning.effort or "medium",
            "summary": settings.reasoning.summary or "auto",
        }

    return EncodedRequest(body=body, warnings=warnings)
