'''
Unit tests for the Gemini driver.
'''

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List

import httpx
import pytest

from llmwire.core import ApiError, MissingApiKeyError, OverloadedError, ParseError, RateLimitedError
from llmwire.drivers import GeminiDriver
from llmwire.drivers.gemini import build_request_body, convert_messages, convert_response
from llmwire.models import (
    CompletionRequest,
    ContentComplete,
    Message,
    StopReason,
    TextDelta,
    ThinkingConfig,
    ToolDefinition,
    ToolInputDelta,
    ToolResultBlock,
    ToolUseBlock,
    ToolUseEnd,
    ToolUseStart,
)

BASE = 'https://generativelanguage.googleapis.com/v1beta/models'


class Scripted:
    '''
    Mock transport handler replaying a list of responses.
    '''

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def make_driver(handler, **kwargs) -> GeminiDriver:
    kwargs.setdefault('api_key', 'g-key')
    kwargs.setdefault('retry_step_ms', 0)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiDriver(http_client=client, **kwargs)


def make_request(**kwargs) -> CompletionRequest:
    kwargs.setdefault('messages', [Message.user('hello')])
    return CompletionRequest(model='gemini-2.5-flash', **kwargs)


def candidate(parts: List[Dict[str, Any]], finish: str = 'STOP') -> Dict[str, Any]:
    return {
        'candidates': [{'content': {'role': 'model', 'parts': parts}, 'finishReason': finish}],
        'usageMetadata': {'promptTokenCount': 7, 'candidatesTokenCount': 3},
    }


def drain(queue: asyncio.Queue) -> List[Any]:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


class TestConversion:
    '''
    Test canonical to Gemini request mapping.
    '''

    def test_roles_and_function_response_names(self) -> None:
        messages = [
            Message.system('ignored here'),
            Message.user('weather?'),
            Message(role='assistant', content=[ToolUseBlock(id='c1', name='get_weather', input={'city': 'Oslo'})]),
            Message(role='user', content=[
                ToolResultBlock(tool_use_id='c1', content='rain'),
                ToolResultBlock(tool_use_id='unknown', content='dropped'),
            ]),
        ]

        contents = convert_messages(messages)

        assert [c['role'] for c in contents] == ['user', 'model', 'user']
        assert contents[1]['parts'] == [{'functionCall': {'name': 'get_weather', 'args': {'city': 'Oslo'}}}]
        assert contents[2]['parts'] == [
            {'functionResponse': {'name': 'get_weather', 'response': {'result': 'rain'}}}
        ]

    def test_orphan_only_message_dropped(self) -> None:
        messages = [Message(role='user', content=[ToolResultBlock(tool_use_id='x', content='y')])]

        assert convert_messages(messages) == []

    def test_body(self) -> None:
        tool = ToolDefinition(
            name='lookup',
            input_schema={
                '$schema': 'http://json-schema.org/draft-07/schema#',
                'type': 'object',
                'additionalProperties': False,
                'properties': {'q': {'type': ['string', 'null'], 'default': 'x'}},
            },
        )
        request = make_request(system='Be brief.', tools=[tool], thinking=ThinkingConfig(budget_tokens=256))

        body = build_request_body(request)

        assert body['systemInstruction'] == {'parts': [{'text': 'Be brief.'}]}
        params = body['tools'][0]['functionDeclarations'][0]['parameters']
        assert params == {'type': 'object', 'properties': {'q': {'type': 'string', 'nullable': True}}}
        assert body['generationConfig']['thinkingConfig'] == {'thinkingBudget': 256, 'includeThoughts': True}
        assert body['generationConfig']['maxOutputTokens'] == 4096

    def test_no_thinking_config_by_default(self) -> None:
        assert 'thinkingConfig' not in build_request_body(make_request())['generationConfig']


class TestConvertResponse:
    '''
    Test response mapping.
    '''

    def test_text_stop(self) -> None:
        response = convert_response(candidate([{'text': 'hi'}]))

        assert response.text() == 'hi'
        assert response.stop_reason == StopReason.END_TURN
        assert response.tool_calls == []
        assert response.usage.input_tokens == 7

    def test_function_call_only(self) -> None:
        response = convert_response(candidate([{'functionCall': {'name': 'f', 'args': {'a': 1}}}]))

        assert response.stop_reason == StopReason.TOOL_USE
        assert response.text() == ''
        (call,) = response.tool_calls
        assert call.name == 'f'
        assert call.input == {'a': 1}
        assert call.id.startswith('call_')

    def test_max_tokens(self) -> None:
        assert convert_response(candidate([{'text': 'cut'}], finish='MAX_TOKENS')).stop_reason == StopReason.MAX_TOKENS

    def test_thought_parts(self) -> None:
        response = convert_response(candidate([{'text': 'hmm', 'thought': True}, {'text': 'answer'}]))

        assert response.content[0].type == 'thinking'
        assert response.text() == 'answer'

    def test_no_candidates(self) -> None:
        with pytest.raises(ParseError):
            convert_response({'candidates': []})


class TestComplete:
    '''
    Test HTTP behaviour and retries.
    '''

    @pytest.mark.asyncio
    async def test_request_shape(self) -> None:
        handler = Scripted(httpx.Response(200, json=candidate([{'text': 'hi'}])))

        response = await make_driver(handler).complete(make_request())

        request = handler.requests[0]
        assert str(request.url) == f'{BASE}/gemini-2.5-flash:generateContent'
        assert request.headers['x-goog-api-key'] == 'g-key'
        assert json.loads(request.content)['contents'] == [{'role': 'user', 'parts': [{'text': 'hello'}]}]
        assert response.text() == 'hi'

    @pytest.mark.asyncio
    async def test_model_override(self) -> None:
        handler = Scripted(httpx.Response(200, json=candidate([{'text': 'hi'}])))

        await make_driver(handler, model='gemini-2.5-pro').complete(make_request())

        assert str(handler.requests[0].url) == f'{BASE}/gemini-2.5-pro:generateContent'

    @pytest.mark.asyncio
    async def test_missing_key(self) -> None:
        with pytest.raises(MissingApiKeyError):
            await make_driver(Scripted(), api_key='').complete(make_request())

    @pytest.mark.asyncio
    async def test_retry_then_success(self) -> None:
        handler = Scripted(
            httpx.Response(429, json={'error': {'message': 'slow down'}}),
            httpx.Response(200, json=candidate([{'text': 'ok'}])),
        )

        response = await make_driver(handler).complete(make_request())

        assert response.text() == 'ok'
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self) -> None:
        handler = Scripted(*[httpx.Response(429) for _ in range(3)])

        with pytest.raises(RateLimitedError) as exc_info:
            await make_driver(handler, max_retries=2, retry_after_ms=1234).complete(make_request())

        assert exc_info.value.retry_after_ms == 1234
        assert len(handler.requests) == 3

    @pytest.mark.asyncio
    async def test_overloaded_exhausted(self) -> None:
        handler = Scripted(httpx.Response(503), httpx.Response(503))

        with pytest.raises(OverloadedError):
            await make_driver(handler, max_retries=1).complete(make_request())

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self) -> None:
        handler = Scripted(httpx.Response(400, json={'error': {'message': 'bad schema'}}))

        with pytest.raises(ApiError) as exc_info:
            await make_driver(handler).complete(make_request())

        assert exc_info.value.status == 400
        assert exc_info.value.api_message == 'bad schema'
        assert len(handler.requests) == 1


class TestStream:
    '''
    Test streamGenerateContent handling.
    '''

    @pytest.mark.asyncio
    async def test_text_and_tool_events(self) -> None:
        chunks = [
            candidate([{'text': 'Look'}], finish=''),
            candidate([{'text': 'ing'}, {'functionCall': {'name': 'search', 'args': {'q': 'x'}}}]),
        ]
        body = ''.join(f'data: {json.dumps(c)}\r\n\r\n' for c in chunks).encode()
        handler = Scripted(httpx.Response(200, content=body))
        sink: asyncio.Queue = asyncio.Queue()

        response = await make_driver(handler).stream(make_request(), sink)
        events = drain(sink)

        assert str(handler.requests[0].url) == f'{BASE}/gemini-2.5-flash:streamGenerateContent?alt=sse'
        assert [type(e) for e in events] == [
            TextDelta,
            TextDelta,
            ToolUseStart,
            ToolInputDelta,
            ToolUseEnd,
            ContentComplete,
        ]
        assert events[2].id == events[4].id
        assert json.loads(events[3].text) == {'q': 'x'}
        assert events[-1].stop_reason == StopReason.TOOL_USE
        assert response.text() == 'Looking'
        assert response.tool_calls[0].id == events[2].id

    @pytest.mark.asyncio
    async def test_trailing_event_without_blank_line(self) -> None:
        body = f"data: {json.dumps(candidate([{'text': 'end'}]))}".encode()
        handler = Scripted(httpx.Response(200, content=body))
        sink: asyncio.Queue = asyncio.Queue()

        response = await make_driver(handler).stream(make_request(), sink)

        assert response.text() == 'end'
        assert isinstance(drain(sink)[-1], ContentComplete)

    @pytest.mark.asyncio
    async def test_busy_stream_retried(self) -> None:
        body = f"data: {json.dumps(candidate([{'text': 'after retry'}]))}\n\n".encode()
        handler = Scripted(httpx.Response(503), httpx.Response(200, content=body))
        sink: asyncio.Queue = asyncio.Queue()

        response = await make_driver(handler).stream(make_request(), sink)
        events = drain(sink)

        assert len(handler.requests) == 2
        assert response.text() == 'after retry'
        assert [type(e) for e in events] == [TextDelta, ContentComplete]

    @pytest.mark.asyncio
    @pytest.mark.parametrize('status, error', [(429, RateLimitedError), (503, OverloadedError)])
    async def test_stream_retries_exhausted(self, status, error) -> None:
        handler = Scripted(*[httpx.Response(status) for _ in range(2)])
        sink: asyncio.Queue = asyncio.Queue()

        with pytest.raises(error) as exc_info:
            await make_driver(handler, max_retries=1, retry_after_ms=500).stream(make_request(), sink)

        assert exc_info.value.retry_after_ms == 500
        assert len(handler.requests) == 2
        assert sink.empty()
