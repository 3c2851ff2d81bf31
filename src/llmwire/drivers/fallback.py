"""
Fallback driver.

Tries an ordered chain of drivers. A non-retryable failure moves on to the
next driver; rate-limit and overload errors are raised immediately so the
caller's retry loop can back off.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence

from ..core import ApiError, LlmError, get_logger
from ..models import CompletionRequest, CompletionResponse
from .base import LlmDriver


class FallbackDriver(LlmDriver):
    """A driver that wraps other drivers; the first one is the primary."""

    provider = "fallback"

    def __init__(self, drivers: Sequence[LlmDriver]):
        self.drivers: List[LlmDriver] = list(drivers)
        self.logger = get_logger(__name__)

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        return await self._run(request, None, streaming=False)

    async def stream(
        self,
        request: CompletionRequest,
        sink: Optional[asyncio.Queue],
    ) -> CompletionResponse:
        return await self._run(request, sink, streaming=True)

    async def _run(
        self,
        request: CompletionRequest,
        sink: Optional[asyncio.Queue],
        streaming: bool,
    ) -> CompletionResponse:
        last_error: Optional[LlmError] = None

        for index, driver in enumerate(self.drivers):
            attempt = request.model_copy(deep=True)
            try:
                if streaming:
                    return await driver.stream(attempt, sink)
                return await driver.complete(attempt)
            except LlmError as e:
                if e.retryable:
                    raise
                self.logger.warning(
                    "Fallback driver failed, trying next",
                    driver_index=index,
                    provider=driver.provider,
                    streaming=streaming,
                    error=str(e),
                )
                last_error = e

        if last_error is not None:
            raise last_error
        raise ApiError(0, "No drivers configured in fallback chain")

    async def aclose(self) -> None:
        for driver in self.drivers:
            await driver.aclose()
