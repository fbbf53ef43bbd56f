"""Codex language model: one POST per call, streamed or buffered."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging
import re
from typing import TYPE_CHECKING, ClassVar

import httpx

from codexlink._errors import api_error_from_response, wrap_transport_error
from codexlink._http import RESPONSES_PATH, merge_headers
from codexlink.config import ModelSettings
from codexlink.encoder import encode_request
from codexlink.events import (
    GenerateResult,
    ReasoningContent,
    ResponseInfo,
    StreamResult,
    TextContent,
)
from codexlink.sse import iter_event_records
from codexlink.translator import (
    ResponseTranslator,
    fold_stream,
    new_id,
    translate_stream,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable

    from codexlink.encoder import EncodedRequest
    from codexlink.events import Content, StreamPart
    from codexlink.prompt import CallOptions
    from codexlink.sse import EventRecord

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelConfig:
    """Collaborators a language model needs; supplied by the provider."""

    provider: str
    base_url: str
    #: Async callable returning the request headers for one call.
    headers: Callable[[], Awaitable[dict[str, str]]]
    #: When None, each call creates and closes its own client without timeouts.
    http_client: httpx.AsyncClient | None = None
    record_source: Callable[[AsyncIterable[str]], AsyncIterator[EventRecord]] = (
        iter_event_records
    )
    generate_id: Callable[[], str] = new_id


class CodexLanguageModel:
    """A Codex model exposing buffered (``do_generate``) and streaming calls.

    Example:
        model = codex("gpt-5.3-codex")
        result = await model.do_generate(CallOptions(prompt=[UserMessage("hi")]))
        print(result.text)
    """

    specification_version: ClassVar[str] = "v3"

    #: Image URLs the upstream can fetch itself; other URLs must be inlined.
    supported_urls: ClassVar[dict[str, tuple[re.Pattern[str], ...]]] = {
        "image/*": (
            re.compile(r"^https://cdn\.openai\.com/.*"),
            re.compile(r"^https://.+\.cloudfront\.net/.*"),
            re.compile(r"^https://.+\.s3\.amazonaws\.com/.*"),
        ),
    }

    def __init__(
        self,
        model_id: str,
        settings: ModelSettings | None,
        config: ModelConfig,
    ) -> None:
        self.model_id = model_id
        self.settings = settings or ModelSettings()
        self.config = config

    @property
    def provider(self) -> str:
        return self.config.provider

    @property
    def url(self) -> str:
        return f"{self.config.base_url}{RESPONSES_PATH}"

    async def do_generate(self, options: CallOptions) -> GenerateResult:
        """Send one request and fold the streamed response into a result."""
        encoded, response, owned = await self._send(options, phase="generate")
        translator = ResponseTranslator(
            warnings=encoded.warnings,
            generate_id=self.config.generate_id,
        )
        try:
            folded = await fold_stream(self._records(response), translator)
        finally:
            await self._release(response, owned)

        content: list[Content] = []
        if folded.text:
            content.append(TextContent(text=folded.text))
        if folded.reasoning:
            content.append(ReasoningContent(text=folded.reasoning))
        content.extend(folded.tool_calls)

        return GenerateResult(
            content=content,
            finish_reason=folded.finish_reason,
            usage=folded.usage,
            warnings=list(encoded.warnings),
            request_body=encoded.body,
            response=ResponseInfo(
                id=folded.response_id,
                model_id=folded.model_id or self.model_id,
                timestamp=datetime.now(timezone.utc),
            ),
        )

    async def do_stream(self, options: CallOptions) -> StreamResult:
        """Send one request and return its live event stream.

        The stream owns the HTTP response until it is exhausted. A caller
        that stops early, or never iterates, must ``await result.aclose()``.
        """
        encoded, response, owned = await self._send(options, phase="stream")
        translator = ResponseTranslator(
            warnings=encoded.warnings,
            include_raw_chunks=options.include_raw_chunks,
            generate_id=self.config.generate_id,
        )

        async def release() -> None:
            await self._release(response, owned)

        return StreamResult(
            stream=self._stream_events(response, owned, translator),
            request_body=encoded.body,
            release=release,
        )

    # Internals

    async def _send(
        self, options: CallOptions, *, phase: str
    ) -> tuple[EncodedRequest, httpx.Response, httpx.AsyncClient | None]:
        encoded = encode_request(self.model_id, options, self.settings)
        headers = merge_headers(await self.config.headers(), options.headers)

        client = self.config.http_client
        owned: httpx.AsyncClient | None = None
        if client is None:
            client = owned = httpx.AsyncClient(timeout=None)

        try:
            request = client.build_request(
                "POST", self.url, headers=headers, content=json.dumps(encoded.body)
            )
            response = await client.send(request, stream=True)
            if not response.is_success:
                try:
                    await response.aread()
                finally:
                    await response.aclose()
                raise api_error_from_response(
                    response.status_code,
                    response.text,
                    headers=response.headers,
                    phase=phase,
                )
        except httpx.HTTPError as e:
            await self._release(None, owned)
            raise wrap_transport_error(e, phase=phase) from e
        except BaseException:
            await self._release(None, owned)
            raise

        log.debug("Codex %s request to %s: HTTP %s", phase, self.url, response.status_code)
        return encoded, response, owned

    async def _records(self, response: httpx.Response) -> AsyncIterator[EventRecord]:
        try:
            async for record in self.config.record_source(response.aiter_lines()):
                yield record
        except httpx.HTTPError as e:
            raise wrap_transport_error(e, phase="stream") from e

    async def _stream_events(
        self,
        response: httpx.Response,
        owned: httpx.AsyncClient | None,
        translator: ResponseTranslator,
    ) -> AsyncIterator[StreamPart]:
        try:
            async for event in translate_stream(self._records(response), translator):
                yield event
        finally:
            await self._release(response, owned)

    @staticmethod
    async def _release(
        response: httpx.Response | None, owned: httpx.AsyncClient | None
    ) -> None:
        if response is not None:
            await response.aclose()
        if owned is not None:
            await owned.aclose()

    def __repr__(self) -> str:
        return f"CodexLanguageModel(model_id={self.model_id!r}, provider={self.provider!r})"
