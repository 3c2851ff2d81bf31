"""
Completion API endpoints for llmwire.

This module exposes the configured driver chain over HTTP, either as a
single JSON response or as a Server-Sent Events stream of driver events.
"""

from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ...core import LlmwireError, get_logger, log_error
from ...drivers import LlmDriver
from ...models import CompletionRequest, CompletionResponse, ErrorResponse
from ..dependencies import get_driver

# Create router
router = APIRouter(prefix="/llm", tags=["llm"])
logger = get_logger(__name__)

_DRIVER_ERRORS = {
    401: {"model": ErrorResponse, "description": "Missing credentials"},
    429: {"model": ErrorResponse, "description": "Rate Limited"},
    502: {"model": ErrorResponse, "description": "Upstream failure"},
    503: {"model": ErrorResponse, "description": "Model overloaded"},
}


@router.post(
    "/complete",
    response_model=CompletionResponse,
    responses=_DRIVER_ERRORS,
    summary="Complete",
    description="Run one completion through the driver chain.",
)
async def complete(
    request: CompletionRequest,
    driver: LlmDriver = Depends(get_driver),
) -> CompletionResponse:
    logger.info(
        "Completion request",
        model=request.model,
        provider=driver.provider,
        messages_count=len(request.messages),
        tools_count=len(request.tools),
    )
    return await driver.complete(request)


@router.post(
    "/stream",
    responses=_DRIVER_ERRORS,
    summary="Stream",
    description="Run one completion through the driver chain as Server-Sent Events.",
)
async def stream(
    request: CompletionRequest,
    driver: LlmDriver = Depends(get_driver),
) -> StreamingResponse:
    logger.info(
        "Streaming completion request",
        model=request.model,
        provider=driver.provider,
        messages_count=len(request.messages),
    )
    return StreamingResponse(
        _stream_events(driver, request),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


async def _stream_events(driver: LlmDriver, request: CompletionRequest) -> AsyncIterator[str]:
    """
    Relay driver events as Server-Sent Events frames.

    Errors raised by the driver after the response has started are sent as a
    final ``error`` event carrying the usual error body.
    """
    queue: asyncio.Queue = asyncio.Queue()
    task = asyncio.create_task(driver.stream(request, queue))
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                yield getter.result().to_sse()
                continue
            getter.cancel()
            break

        while not queue.empty():
            yield queue.get_nowait().to_sse()

        task.result()
    except LlmwireError as e:
        log_error(logger, e, context={"model": request.model, "streaming": True})
        yield f"event: error\ndata: {json.dumps(e.to_dict(), ensure_ascii=False)}\n\n"
    finally:
        if not task.done():
            task.cancel()
