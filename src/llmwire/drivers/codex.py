"""
OpenAI Codex driver.

Talks to the ChatGPT Codex Responses endpoint with an OAuth bearer token and
the ``chatgpt-account-id`` header. Requests are always streamed; the SSE body
is re-framed by hand and folded back into a ``CompletionResponse``.
"""

from __future__ import annotations

import asyncio
import codecs
import json
import os
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..auth.jwt import jwt_account_id
from ..auth.runtime import CODEX_ACCESS_TOKEN_ENV, CODEX_ACCOUNT_ID_ENV, MISSING_ORG_CONTEXT_MESSAGE
from ..core import (
    ApiError,
    HttpError,
    MissingApiKeyError,
    get_logger,
    get_settings,
    log_api_call,
)
from ..models import (
    CompletionRequest,
    CompletionResponse,
    ContentComplete,
    ImageBlock,
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
from .schema import enforce_strict_object_schema, normalize_schema_for_provider


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name, "").strip()
    return value or None


def _parse_arguments(raw: Any) -> Any:
    """Tool arguments as JSON; anything unparseable becomes ``{}``."""
    if not isinstance(raw, str):
        return raw if isinstance(raw, dict) else {}
    try:
        return json.loads(raw)
    except ValueError:
        return {}


def _usage_from_response(response: Dict[str, Any]) -> TokenUsage:
    usage = response.get("usage") or {}
    return TokenUsage(
        input_tokens=int(usage.get("input_tokens") or 0),
        output_tokens=int(usage.get("output_tokens") or 0),
    )


class SseFrameParser:
    """
    Line-buffered framer for named SSE events.

    ``event:`` and ``data:`` lines accumulate until a blank line, which
    yields ``(event_name, data)``. Comment lines are ignored and several
    ``data:`` lines are joined with ``\\n``.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._event: Optional[str] = None
        self._data: List[str] = []

    def feed(self, text: str) -> List[Tuple[Optional[str], str]]:
        self._buffer += text
        frames: List[Tuple[Optional[str], str]] = []
        while True:
            pos = self._buffer.find("\n")
            if pos < 0:
                break
            line = self._buffer[:pos]
            self._buffer = self._buffer[pos + 1:]
            if line.endswith("\r"):
                line = line[:-1]

            if not line:
                frame = self._dispatch()
                if frame is not None:
                    frames.append(frame)
            elif line.startswith(":"):
                continue
            elif line.startswith("event:"):
                self._event = line[len("event:"):].strip()
            elif line.startswith("data:"):
                self._data.append(line[len("data:"):].lstrip())
        return frames

    def close(self) -> List[Tuple[Optional[str], str]]:
        """Flush a trailing event that was not followed by a blank line."""
        if self._buffer:
            frames = self.feed("\n")
        else:
            frames = []
        frame = self._dispatch()
        if frame is not None:
            frames.append(frame)
        return frames

    def _dispatch(self) -> Optional[Tuple[Optional[str], str]]:
        event, data = self._event, "\n".join(self._data).strip()
        self._event, self._data = None, []
        if event is None and not data:
            return None
        return event, data


class _StreamAssembler:
    """Folds Responses stream events into events on the sink and a final response."""

    def __init__(self, sink: Optional[asyncio.Queue]) -> None:
        self.sink = sink
        self.text = ""
        self.thinking = ""
        # item_id -> (call_id, name), insertion ordered
        self.tool_meta: Dict[str, Tuple[str, str]] = {}
        self.tool_args: Dict[str, str] = {}
        self.started_items: set = set()
        self.started_calls: set = set()
        self.ended_calls: set = set()
        self.completed_calls: List[ToolCall] = []
        self.usage = TokenUsage()
        self.completed_response: Optional[Dict[str, Any]] = None

    async def handle(self, event: str, payload: Dict[str, Any]) -> None:
        if event == "response.output_text.delta":
            delta = payload.get("delta")
            if isinstance(delta, str) and delta:
                self.text += delta
                await emit(self.sink, TextDelta(text=delta))

        elif event in ("response.reasoning_summary_text.delta", "response.reasoning_text.delta"):
            delta = payload.get("delta")
            if isinstance(delta, str) and delta:
                self.thinking += delta
                await emit(self.sink, ThinkingDelta(text=delta))

        elif event == "response.output_item.added":
            item = payload.get("item") or {}
            if item.get("type") == "function_call":
                item_id = item.get("id") or ""
                call_id = item.get("call_id") or item_id
                name = item.get("name") or ""
                if item_id:
                    self.tool_meta[item_id] = (call_id, name)
                    if item_id not in self.started_items:
                        self.started_items.add(item_id)
                        await self._start(call_id, name)

        elif event == "response.function_call_arguments.delta":
            item_id = payload.get("item_id") or ""
            delta = payload.get("delta") or ""
            if item_id:
                self.tool_args[item_id] = self.tool_args.get(item_id, "") + delta
            if delta:
                await emit(self.sink, ToolInputDelta(text=delta))

        elif event == "response.function_call_arguments.done":
            item_id = payload.get("item_id") or ""
            arguments = payload.get("arguments")
            if not isinstance(arguments, str):
                arguments = "{}"
            if item_id:
                self.tool_args[item_id] = arguments
                meta = self.tool_meta.get(item_id)
                if meta is not None:
                    call_id, name = meta
                    await self._end(call_id, name, _parse_arguments(arguments))

        elif event == "response.output_item.done":
            item = payload.get("item") or {}
            if item.get("type") == "function_call":
                call_id = item.get("call_id") or item.get("id") or ""
                name = item.get("name") or ""
                if call_id and name:
                    arguments = _parse_arguments(item.get("arguments", "{}"))
                    self.completed_calls.append(ToolCall(id=call_id, name=name, input=arguments))
                    await self._end(call_id, name, arguments)

        elif event == "response.completed":
            response = payload.get("response")
            if isinstance(response, dict):
                self.usage = _usage_from_response(response)
                self.completed_response = response

        elif event in ("response.failed", "error"):
            raise ApiError(502, self._failure_message(payload))

    async def _start(self, call_id: str, name: str) -> None:
        if call_id in self.started_calls:
            return
        self.started_calls.add(call_id)
        await emit(self.sink, ToolUseStart(id=call_id, name=name))

    async def _end(self, call_id: str, name: str, arguments: Any) -> None:
        if call_id in self.ended_calls:
            return
        await self._start(call_id, name)
        self.ended_calls.add(call_id)
        await emit(self.sink, ToolUseEnd(id=call_id, name=name, input=arguments))

    @staticmethod
    def _failure_message(payload: Dict[str, Any]) -> str:
        error = payload.get("error")
        if error is None and isinstance(payload.get("response"), dict):
            error = payload["response"].get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if payload.get("message"):
            return str(payload["message"])
        return "Codex response failed"

    def build_response(self) -> CompletionResponse:
        """Assemble the final response, most authoritative source first."""
        text = ""
        tool_calls: List[ToolCall] = []
        stop_reason = StopReason.END_TURN
        usage = self.usage

        response = self.completed_response
        if response is not None:
            if str(response.get("status", "")).lower() == "incomplete":
                stop_reason = StopReason.MAX_TOKENS
            for item in response.get("output") or []:
                item_type = item.get("type")
                if item_type == "message":
                    for part in item.get("content") or []:
                        part_type = part.get("type")
                        if part_type in ("output_text", "refusal") and isinstance(part.get("text"), str):
                            text += part["text"]
                        if part_type == "refusal" and isinstance(part.get("refusal"), str):
                            text += part["refusal"]
                elif item_type == "function_call":
                    call_id = item.get("call_id") or item.get("id") or ""
                    name = item.get("name") or ""
                    if call_id and name:
                        tool_calls.append(
                            ToolCall(
                                id=call_id,
                                name=name,
                                input=_parse_arguments(item.get("arguments", "{}")),
                            )
                        )

        if not text:
            text = self.text

        if not tool_calls and self.completed_calls:
            tool_calls = list(self.completed_calls)

        # Argument deltas arrived but no completed function_call items did
        if not tool_calls and self.tool_meta:
            for item_id, (call_id, name) in self.tool_meta.items():
                tool_calls.append(
                    ToolCall(
                        id=call_id,
                        name=name,
                        input=_parse_arguments(self.tool_args.get(item_id, "{}")),
                    )
                )

        return CompletionResponse.assemble(
            text=text,
            tool_calls=tool_calls,
            stop_reason=stop_reason,
            usage=usage,
            thinking=self.thinking,
        )

    async def finish(self) -> CompletionResponse:
        response = self.build_response()
        # Every returned call gets its start/end pair, even if the stream skipped it
        for call in response.tool_calls:
            if call.id not in self.ended_calls:
                await self._end(call.id, call.name, call.input)
        await emit(
            self.sink,
            ContentComplete(stop_reason=response.stop_reason, usage=response.usage),
        )
        return response


class CodexDriver(LlmDriver):
    """Driver for the ChatGPT Codex Responses API."""

    provider = "openai-codex"

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        account_id: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        originator: Optional[str] = None,
        default_instructions: Optional[str] = None,
    ):
        settings = get_settings()
        self.logger = get_logger(__name__)
        self.access_token = access_token
        self.account_id = account_id
        self.base_url = (base_url or settings.codex.base_url).rstrip("/")
        self.timeout = timeout or settings.codex.timeout
        self.originator = originator or settings.oauth.originator
        self.default_instructions = default_instructions or settings.codex.default_instructions
        self._http_client = http_client

    @property
    def endpoint_url(self) -> str:
        if self.base_url.endswith("/responses"):
            return self.base_url
        return f"{self.base_url}/responses"

    def resolve_auth_context(self) -> Tuple[str, str]:
        """
        Resolve the bearer token and account id for this call.

        Environment values win over the instance values so a login, refresh
        or logout takes effect on the next call.
        """
        token = _env(CODEX_ACCESS_TOKEN_ENV) or (self.access_token or "").strip()
        if not token:
            raise MissingApiKeyError(
                f"Set {CODEX_ACCESS_TOKEN_ENV} or connect through the Codex OAuth login"
            )

        account_id = (
            _env(CODEX_ACCOUNT_ID_ENV)
            or (self.account_id or "").strip()
            or jwt_account_id(token)
        )
        if not account_id:
            raise ApiError(401, MISSING_ORG_CONTEXT_MESSAGE)
        return token, account_id

    def instructions_for(self, request: CompletionRequest) -> str:
        system = request.system_prompt()
        if system and system.strip():
            return system.strip()
        return self.default_instructions

    @staticmethod
    def build_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
        built = []
        for tool in tools:
            schema = normalize_schema_for_provider(tool.input_schema, "openai")
            built.append(
                {
                    "type": "function",
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": enforce_strict_object_schema(schema),
                }
            )
        return built

    @staticmethod
    def build_input_items(request: CompletionRequest) -> List[Dict[str, Any]]:
        """
        Translate the conversation into Responses ``input`` items.

        Tool results are only sent for call ids that appeared earlier as a
        ``function_call``; the backend rejects unmatched outputs.
        """
        items: List[Dict[str, Any]] = []
        seen_call_ids: set = set()

        for message in request.messages:
            if message.role == Role.SYSTEM:
                continue

            if isinstance(message.content, str):
                text = message.content.strip()
                if not text:
                    continue
                if message.role == Role.USER:
                    items.append(_message_item("user", "input_text", text))
                else:
                    items.append(_message_item("assistant", "output_text", text))
                continue

            if message.role == Role.USER:
                content: List[Dict[str, Any]] = []
                for block in message.content:
                    if isinstance(block, TextBlock):
                        if block.text.strip():
                            content.append({"type": "input_text", "text": block.text})
                    elif isinstance(block, ImageBlock):
                        content.append(
                            {
                                "type": "input_image",
                                "detail": "auto",
                                "image_url": f"data:{block.media_type};base64,{block.data}",
                            }
                        )
                    elif isinstance(block, ToolResultBlock):
                        if block.tool_use_id not in seen_call_ids:
                            continue
                        items.append(
                            {
                                "type": "function_call_output",
                                "call_id": block.tool_use_id,
                                "output": block.content,
                            }
                        )
                if content:
                    items.append({"type": "message", "role": "user", "content": content})
            else:
                text_parts: List[str] = []
                for block in message.content:
                    if isinstance(block, TextBlock):
                        if block.text:
                            text_parts.append(block.text)
                    elif isinstance(block, ToolUseBlock):
                        seen_call_ids.add(block.id)
                        items.append(
                            {
                                "type": "function_call",
                                "call_id": block.id,
                                "name": block.name,
                                "arguments": json.dumps(block.input),
                            }
                        )
                joined = "".join(text_parts)
                if joined.strip():
                    items.append(_message_item("assistant", "output_text", joined))

        if not items:
            items.append(_message_item("user", "input_text", "Continue."))
        return items

    def build_request_body(self, request: CompletionRequest) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": request.model,
            "stream": True,
            "store": False,
            "instructions": self.instructions_for(request),
            "input": self.build_input_items(request),
        }
        tools = self.build_tools(request.tools)
        if tools:
            body["tools"] = tools
            body["tool_choice"] = "auto"
        if request.reasoning_effort is not None:
            body["reasoning"] = {"effort": request.reasoning_effort.value}
        return body

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        return await self._run(request, None)

    async def stream(
        self,
        request: CompletionRequest,
        sink: Optional[asyncio.Queue],
    ) -> CompletionResponse:
        return await self._run(request, sink)

    async def _run(
        self,
        request: CompletionRequest,
        sink: Optional[asyncio.Queue],
    ) -> CompletionResponse:
        access_token, account_id = self.resolve_auth_context()
        url = self.endpoint_url
        body = self.build_request_body(request)
        headers = {
            "content-type": "application/json",
            "accept": "text/event-stream",
            "authorization": f"Bearer {access_token}",
            "openai-beta": "responses=experimental",
            "originator": self.originator,
            "chatgpt-account-id": account_id,
        }

        self.logger.debug("Sending Codex responses request", url=url, model=request.model)
        start_time = time.time()
        assembler = _StreamAssembler(sink)
        parser = SseFrameParser()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        try:
            async with client_session(self._http_client, self.timeout) as client:
                async with client.stream("POST", url, headers=headers, json=body) as response:
                    log_api_call(
                        self.logger,
                        service=self.provider,
                        endpoint=url,
                        method="POST",
                        status_code=response.status_code,
                        duration_ms=(time.time() - start_time) * 1000,
                        streaming=True,
                    )
                    if not response.is_success:
                        raw = await response.aread()
                        raise ApiError(response.status_code, raw.decode("utf-8", errors="replace"))

                    async for chunk in response.aiter_bytes():
                        for event, data in parser.feed(decoder.decode(chunk)):
                            await self._dispatch(assembler, event, data)
                    for event, data in parser.feed(decoder.decode(b"", final=True)) + parser.close():
                        await self._dispatch(assembler, event, data)
        except httpx.HTTPError as e:
            raise HttpError(str(e)) from e

        return await assembler.finish()

    async def _dispatch(
        self,
        assembler: _StreamAssembler,
        event: Optional[str],
        data: str,
    ) -> None:
        if not data or data == "[DONE]":
            return
        try:
            payload = json.loads(data)
        except ValueError:
            self.logger.debug("Skipping non-JSON SSE payload", event=event)
            return
        if not isinstance(payload, dict):
            return
        name = event or payload.get("type")
        if name:
            await assembler.handle(name, payload)


def _message_item(role: str, part_type: str, text: str) -> Dict[str, Any]:
    return {
        "type": "message",
        "role": role,
        "content": [{"type": part_type, "text": text}],
    }
