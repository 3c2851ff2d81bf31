"""
Driver contract for llmwire.

Every backend adapter, and the fallback chain that composes them,
implements ``LlmDriver``.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from ..models import (
    CompletionRequest,
    CompletionResponse,
    ContentComplete,
    StreamEvent,
    TextDelta,
)


class LlmDriver(ABC):
    """
    A backend that can complete a conversation.

    ``complete`` returns the full response. ``stream`` additionally puts
    ``StreamEvent`` objects on ``sink`` as they arrive and returns the same
    assembled response, so callers that ignore the events still get it.
    Drivers raise ``LlmError`` subclasses on failure.
    """

    provider: str = "unknown"

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send a completion request and return the full response."""

    async def stream(
        self,
        request: CompletionRequest,
        sink: Optional[asyncio.Queue],
    ) -> CompletionResponse:
        """Stream a completion.

        The default calls ``complete`` and emits one ``TextDelta`` (when
        there is text) followed by ``ContentComplete``.
        """
        response = await self.complete(request)
        if sink is not None:
            text = response.text()
            if text:
                await sink.put(TextDelta(text=text))
            await sink.put(
                ContentComplete(stop_reason=response.stop_reason, usage=response.usage)
            )
        return response

    async def aclose(self) -> None:
        """Release resources held by the driver."""


async def emit(sink: Optional[asyncio.Queue], event: StreamEvent) -> None:
    """Put an event on the sink if there is one."""
    if sink is not None:
        await sink.put(event)
