"""
Streaming event models for llmwire.

For any tool call id the order is ``tool_use_start``, zero or more
``tool_input_delta``, then exactly one ``tool_use_end``. ``content_complete``
is the last event of every stream and is sent exactly once.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .messages import StopReason, TokenUsage


class _Event(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def to_sse(self) -> str:
        """Render the event as one Server-Sent Events frame."""
        payload = json.dumps(self.model_dump(mode="json"), ensure_ascii=False)
        return f"event: {self.type}\ndata: {payload}\n\n"  # type: ignore[attr-defined]


class TextDelta(_Event):
    type: Literal["text_delta"] = "text_delta"
    text: str


class ToolUseStart(_Event):
    type: Literal["tool_use_start"] = "tool_use_start"
    id: str
    name: str


class ToolInputDelta(_Event):
    type: Literal["tool_input_delta"] = "tool_input_delta"
    text: str


class ToolUseEnd(_Event):
    type: Literal["tool_use_end"] = "tool_use_end"
    id: str
    name: str
    input: Any = Field(default_factory=dict)


class ThinkingDelta(_Event):
    type: Literal["thinking_delta"] = "thinking_delta"
    text: str


class ContentComplete(_Event):
    type: Literal["content_complete"] = "content_complete"
    stop_reason: StopReason
    usage: TokenUsage = Field(default_factory=TokenUsage)


class PhaseChange(_Event):
    """Agent loop phase transition; produced above the driver layer."""

    type: Literal["phase_change"] = "phase_change"
    phase: str
    detail: Optional[str] = None


class ToolExecutionResult(_Event):
    """Outcome of a tool run; produced above the driver layer."""

    type: Literal["tool_execution_result"] = "tool_execution_result"
    name: str
    result_preview: str
    is_error: bool = False


StreamEvent = Annotated[
    Union[
        TextDelta,
        ToolUseStart,
        ToolInputDelta,
        ToolUseEnd,
        ThinkingDelta,
        ContentComplete,
        PhaseChange,
        ToolExecutionResult,
    ],
    Field(discriminator="type"),
]
