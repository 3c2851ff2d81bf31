"""
Google Gemini driver.

Uses the REST ``generateContent`` API: the model is part of the URL path,
the API key travels in the ``x-goog-api-key`` header and turns are made of
``parts``. 429 and 503 responses are retried with linear backoff.
"""

from __future__ import annotations

import asyncio
import codecs
import json
import time
from typing import Any, Dict, List, Optional

import httpx

from ..core import (
    ApiError,
    HttpError,
    MissingApiKeyError,
    OverloadedError,
    ParseError,
    RateLimitedError,
    generate_call_id,
    get_logger,
    get_settings,
    log_api_call,
)
from ..models import (
    CompletionRequest,
    CompletionResponse,
    ContentComplete,
    ImageBlock,
    Message,
    Role,
    StopReason,
    TextBlock,
    TextDelta,
    ThinkingDelta,
    TokenUsage,
    ToolCall,
    ToolDefinition,
    ToolInputDelta,
    ToolResultBlock,
    ToolUseBlock,
    ToolUseEnd,
    ToolUseStart,
)
from ..utils import client_session
from .base import LlmDriver, emit
from .schema import normalize_schema_for_provider


def convert_messages(messages: List[Message]) -> List[Dict[str, Any]]:
    """
    Map canonical messages to Gemini ``contents``.

    System messages are skipped (they travel as ``systemInstruction``),
    assistant turns use role ``model`` and tool results whose call was
    never seen are dropped.
    """
    contents: List[Dict[str, Any]] = []
    call_names: Dict[str, str] = {}

    for message in messages:
        if message.role == Role.SYSTEM:
            continue
        role = "user" if message.role == Role.USER else "model"

        parts: List[Dict[str, Any]] = []
        for block in message.blocks():
            if isinstance(block, TextBlock):
                if block.text:
                    parts.append({"text": block.text})
            elif isinstance(block, ImageBlock):
                parts.append({"inlineData": {"mimeType": block.media_type, "data": block.data}})
            elif isinstance(block, ToolUseBlock):
                call_names[block.id] = block.name
                parts.append({"functionCall": {"name": block.name, "args": block.input}})
            elif isinstance(block, ToolResultBlock):
                name = call_names.get(block.tool_use_id)
                if name is None:
                    continue
                parts.append(
                    {
                        "functionResponse": {
                            "name": name,
                            "response": {"result": block.content},
                        }
                    }
                )

        if parts:
            contents.append({"role": role, "parts": parts})
    return contents


def convert_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
    if not tools:
        return []
    declarations = [
        {
            "name": tool.name,
            "description": tool.description,
            "parameters": normalize_schema_for_provider(tool.input_schema, "gemini"),
        }
        for tool in tools
    ]
    return [{"functionDeclarations": declarations}]


def build_request_body(request: CompletionRequest) -> Dict[str, Any]:
    body: Dict[str, Any] = {"contents": convert_messages(request.messages)}

    system = request.system_prompt()
    if system:
        body["systemInstruction"] = {"parts": [{"text": system}]}

    tools = convert_tools(request.tools)
    if tools:
        body["tools"] = tools

    generation_config: Dict[str, Any] = {
        "temperature": request.temperature,
        "maxOutputTokens": request.max_tokens,
    }
    if request.thinking is not None:
        generation_config["thinkingConfig"] = {
            "thinkingBudget": request.thinking.budget_tokens,
            "includeThoughts": True,
        }
    body["generationConfig"] = generation_config
    return body


def map_finish_reason(reason: Optional[str]) -> StopReason:
    if reason == "MAX_TOKENS":
        return StopReason.MAX_TOKENS
    return StopReason.END_TURN


def usage_from_metadata(metadata: Optional[Dict[str, Any]]) -> TokenUsage:
    metadata = metadata or {}
    return TokenUsage(
        input_tokens=int(metadata.get("promptTokenCount") or 0),
        output_tokens=int(metadata.get("candidatesTokenCount") or 0),
    )


def convert_response(data: Dict[str, Any]) -> CompletionResponse:
    """Convert a ``generateContent`` response; only the first candidate counts."""
    candidates = data.get("candidates") or []
    if not candidates:
        raise ParseError("No candidates in Gemini response")
    candidate = candidates[0]

    text = ""
    thinking = ""
    tool_calls: List[ToolCall] = []
    for part in (candidate.get("content") or {}).get("parts") or []:
        call = part.get("functionCall")
        if isinstance(call, dict):
            tool_calls.append(
                ToolCall(
                    id=generate_call_id(),
                    name=call.get("name", ""),
                    input=call.get("args") or {},
                )
            )
        elif isinstance(part.get("text"), str):
            if part.get("thought"):
                thinking += part["text"]
            else:
                text += part["text"]

    return CompletionResponse.assemble(
        text=text,
        tool_calls=tool_calls,
        stop_reason=map_finish_reason(candidate.get("finishReason")),
        usage=usage_from_metadata(data.get("usageMetadata")),
        thinking=thinking,
    )


def _error_message(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace")
    try:
        parsed = json.loads(text)
    except ValueError:
        return text
    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return text


class GeminiDriver(LlmDriver):
    """Driver for the Gemini generateContent API."""

    provider = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        model: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_step_ms: Optional[int] = None,
        retry_after_ms: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        config = get_settings().gemini
        self.logger = get_logger(__name__)
        self.api_key = api_key if api_key is not None else config.api_key
        self.base_url = (base_url or config.base_url).rstrip("/")
        self.model = model
        self.max_retries = config.max_retries if max_retries is None else max_retries
        self.retry_step_ms = config.retry_step_ms if retry_step_ms is None else retry_step_ms
        self.retry_after_ms = config.retry_after_ms if retry_after_ms is None else retry_after_ms
        self.timeout = timeout or config.timeout
        self._http_client = http_client

    def _url(self, request: CompletionRequest, streaming: bool) -> str:
        model = self.model or request.model
        if streaming:
            return f"{self.base_url}/v1beta/models/{model}:streamGenerateContent?alt=sse"
        return f"{self.base_url}/v1beta/models/{model}:generateContent"

    def _headers(self) -> Dict[str, str]:
        key = (self.api_key or "").strip()
        if not key:
            raise MissingApiKeyError("Set GEMINI_API_KEY to use the Gemini driver")
        return {"x-goog-api-key": key, "content-type": "application/json"}

    async def _send(
        self,
        client: httpx.AsyncClient,
        url: str,
        body: Dict[str, Any],
        streaming: bool,
    ) -> httpx.Response:
        """POST with the 429/503 retry policy; returns an open 2xx response."""
        headers = self._headers()
        attempt = 0
        while True:
            start_time = time.time()
            try:
                response = await client.send(
                    client.build_request("POST", url, headers=headers, json=body),
                    stream=streaming,
                )
            except httpx.HTTPError as e:
                raise HttpError(str(e)) from e

            status = response.status_code
            log_api_call(
                self.logger,
                service=self.provider,
                endpoint=url,
                method="POST",
                status_code=status,
                duration_ms=(time.time() - start_time) * 1000,
                attempt=attempt + 1,
                streaming=streaming,
            )

            if status in (429, 503):
                await response.aclose()
                if attempt < self.max_retries:
                    delay_ms = (attempt + 1) * self.retry_step_ms
                    self.logger.warning(
                        "Gemini backend busy, retrying",
                        status_code=status,
                        attempt=attempt + 1,
                        delay_ms=delay_ms,
                    )
                    await asyncio.sleep(delay_ms / 1000)
                    attempt += 1
                    continue
                if status == 429:
                    raise RateLimitedError(self.retry_after_ms)
                raise OverloadedError(self.retry_after_ms)

            if not response.is_success:
                raw = await response.aread()
                await response.aclose()
                raise ApiError(status, _error_message(raw))

            return response

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        url = self._url(request, streaming=False)
        body = build_request_body(request)

        async with client_session(self._http_client, self.timeout) as client:
            response = await self._send(client, url, body, streaming=False)
            try:
                data = response.json()
            except ValueError as e:
                raise ParseError(str(e)) from e
            finally:
                await response.aclose()

        if not isinstance(data, dict):
            raise ParseError("Gemini response is not a JSON object")
        return convert_response(data)

    async def stream(
        self,
        request: CompletionRequest,
        sink: Optional[asyncio.Queue],
    ) -> CompletionResponse:
        url = self._url(request, streaming=True)
        body = build_request_body(request)
        state = _StreamState(sink)
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""

        async with client_session(self._http_client, self.timeout) as client:
            response = await self._send(client, url, body, streaming=True)
            try:
                async for raw in response.aiter_bytes():
                    buffer = (buffer + decoder.decode(raw)).replace("\r\n", "\n")
                    buffer = await state.drain(buffer)
                buffer += decoder.decode(b"", final=True)
                await state.drain(buffer.replace("\r\n", "\n") + "\n\n")
            except httpx.HTTPError as e:
                raise HttpError(str(e)) from e
            finally:
                await response.aclose()

        result = state.build_response()
        await emit(sink, ContentComplete(stop_reason=result.stop_reason, usage=result.usage))
        return result


class _StreamState:
    """Accumulates a ``streamGenerateContent`` SSE body."""

    def __init__(self, sink: Optional[asyncio.Queue]) -> None:
        self.sink = sink
        self.text = ""
        self.thinking = ""
        self.tool_calls: List[ToolCall] = []
        self.usage = TokenUsage()
        self.finish_reason: Optional[str] = None

    async def drain(self, buffer: str) -> str:
        """Consume every complete event in ``buffer`` and return the remainder."""
        while "\n\n" in buffer:
            event, buffer = buffer.split("\n\n", 1)
            payload = _event_payload(event)
            if payload is not None:
                await self.consume(payload)
        return buffer

    async def consume(self, payload: Dict[str, Any]) -> None:
        if payload.get("usageMetadata"):
            self.usage = usage_from_metadata(payload["usageMetadata"])

        candidates = payload.get("candidates") or []
        if not candidates:
            return
        candidate = candidates[0]
        if candidate.get("finishReason"):
            self.finish_reason = candidate["finishReason"]

        for part in (candidate.get("content") or {}).get("parts") or []:
            call = part.get("functionCall")
            if isinstance(call, dict):
                tool_call = ToolCall(
                    id=generate_call_id(),
                    name=call.get("name", ""),
                    input=call.get("args") or {},
                )
                self.tool_calls.append(tool_call)
                # Arguments arrive whole, so the triple goes out at once
                await emit(self.sink, ToolUseStart(id=tool_call.id, name=tool_call.name))
                await emit(self.sink, ToolInputDelta(text=json.dumps(tool_call.input)))
                await emit(
                    self.sink,
                    ToolUseEnd(id=tool_call.id, name=tool_call.name, input=tool_call.input),
                )
            elif isinstance(part.get("text"), str) and part["text"]:
                if part.get("thought"):
                    self.thinking += part["text"]
                    await emit(self.sink, ThinkingDelta(text=part["text"]))
                else:
                    self.text += part["text"]
                    await emit(self.sink, TextDelta(text=part["text"]))

    def build_response(self) -> CompletionResponse:
        return CompletionResponse.assemble(
            text=self.text,
            tool_calls=self.tool_calls,
            stop_reason=map_finish_reason(self.finish_reason),
            usage=self.usage,
            thinking=self.thinking,
        )


def _event_payload(event: str) -> Optional[Dict[str, Any]]:
    """JSON object from the ``data:`` lines of one SSE event, if any."""
    data_lines = [
        line[len("data:"):].strip()
        for line in event.split("\n")
        if line.startswith("data:")
    ]
    data = "\n".join(data_lines).strip()
    if not data or data == "[DONE]":
        return None
    try:
        payload = json.loads(data)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None
