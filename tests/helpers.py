"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: upstream event builders, a fake JWT
builder, and an ``httpx.MockTransport`` recorder shared by the suites.
"""

from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass, field
import json
from typing import Any

import httpx

from codexlink.sse import EventRecord

TOKEN_PATH = "/oauth/token"
RESPONSES_PATH = "/backend-api/codex/responses"

# =============================================================================
# Tokens
# =============================================================================


def _segment(obj: dict[str, Any]) -> str:
    raw = json.dumps(obj).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def make_jwt(claims: dict[str, Any]) -> str:
    """Unsigned JWT carrying *claims*; good enough for payload decoding."""
    return f"{_segment({'alg': 'none', 'typ': 'JWT'})}.{_segment(claims)}.sig"


def token_payload(
    *,
    exp: float | None,
    account_id: str | None = "acct-1",
    access_token: str = "access-new",
    refresh_token: str | None = "refresh-new",
) -> dict[str, Any]:
    """Token endpoint JSON body."""
    claims: dict[str, Any] = {"email": "dev@example.com"}
    if exp is not None:
        claims["exp"] = exp
    if account_id is not None:
        claims["https://api.openai.com/auth"] = {"chatgpt_account_id": account_id}
    body: dict[str, Any] = {"id_token": make_jwt(claims), "access_token": access_token}
    if refresh_token is not None:
        body["refresh_token"] = refresh_token
    return body


# =============================================================================
# Upstream events
# =============================================================================


def text_delta(delta: str) -> dict[str, Any]:
    return {"type": "response.output_text.delta", "delta": delta}


def text_done() -> dict[str, Any]:
    return {"type": "response.output_text.done"}


def reasoning_delta(delta: str) -> dict[str, Any]:
    return {"type": "response.reasoning_summary_text.delta", "delta": delta}


def reasoning_done() -> dict[str, Any]:
    return {"type": "response.reasoning_summary_text.done"}


def tool_added(item_id: str, name: str, call_id: str | None = None) -> dict[str, Any]:
    item: dict[str, Any] = {"type": "function_call", "id": item_id, "name": name}
    if call_id is not None:
        item["call_id"] = call_id
    return {"type": "response.output_item.added", "item": item}


def args_delta(item_id: str, delta: str) -> dict[str, Any]:
    return {
        "type": "response.function_call_arguments.delta",
        "item_id": item_id,
        "delta": delta,
    }


def args_done(item_id: str | None, **fields: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"type": "response.function_call_arguments.done"}
    if item_id is not None:
        payload["item_id"] = item_id
    payload.update(fields)
    return payload


def completed(
    status: str | None = "completed",
    *,
    usage: dict[str, Any] | None = None,
    response_id: str = "resp_1",
    model: str = "gpt-5.3-codex",
) -> dict[str, Any]:
    response: dict[str, Any] = {"id": response_id, "model": model}
    if status is not None:
        response["status"] = status
    if usage is not None:
        response["usage"] = usage
    return {"type": "response.completed", "response": response}


def record(payload: dict[str, Any] | str) -> EventRecord:
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return EventRecord(data=data)


async def aiter_items(items: list[Any]):
    for item in items:
        yield item


def sse_body(*payloads: dict[str, Any] | str, done: bool = True) -> bytes:
    """Encode payloads as an event-stream body, one ``data:`` record each."""
    chunks = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        chunks.append(f"data: {data}\n\n")
    if done:
        chunks.append("data: [DONE]\n\n")
    return "".join(chunks).encode("utf-8")


def sse_response(*payloads: dict[str, Any] | str) -> httpx.Response:
    return httpx.Response(
        200,
        content=sse_body(*payloads),
        headers={"content-type": "text/event-stream"},
    )


class FailingStream(httpx.AsyncByteStream):
    """Yields *chunks*, then dies like a dropped connection."""

    def __init__(self, *chunks: bytes) -> None:
        self._chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk
        raise httpx.ReadError("connection reset")

    async def aclose(self) -> None:
        self.closed = True


# =============================================================================
# Transport recorder
# =============================================================================


@dataclass
class Recorder:
    """MockTransport handler: records requests, replays scripted responses by path.

    The last scripted response for a path is sticky, so repeated calls keep
    receiving it. ``delay`` forces a suspension inside each request so
    concurrent callers genuinely overlap.
    """

    routes: dict[str, list[httpx.Response | BaseException]] = field(
        default_factory=dict
    )
    delay: float = 0.0
    requests: list[httpx.Request] = field(default_factory=list)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        script = self.routes.get(request.url.path)
        if not script:
            return httpx.Response(404, json={"error": {"message": "no route"}})
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, BaseException):
            raise item
        if isinstance(item.stream, FailingStream):
            return item
        # Fresh copy so a sticky response can be streamed more than once.
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def json_bodies(self, path: str) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.calls_to(path)]
