"""
Canonical conversation models for llmwire.

Every provider adapter translates these models to and from its own wire
format, so the rest of the system only ever deals with one vocabulary.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Conversation participant."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class StopReason(str, Enum):
    """Why the backend stopped generating."""

    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    TOOL_USE = "tool_use"
    STOP_SEQUENCE = "stop_sequence"


class ReasoningEffort(str, Enum):
    """Reasoning effort hint for backends that support it."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TextBlock(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["text"] = "text"
    text: str = Field(..., description="Text content")


class ImageBlock(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["image"] = "image"
    media_type: str = Field(..., description="MIME type, e.g. image/png")
    data: str = Field(..., description="Base64 encoded image bytes")


class ToolUseBlock(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["tool_use"] = "tool_use"
    id: str = Field(..., description="Tool call identifier")
    name: str = Field(..., description="Tool name")
    input: Any = Field(default_factory=dict, description="Tool arguments")


class ToolResultBlock(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str = Field(..., description="Identifier of the tool call this answers")
    content: str = Field(default="", description="Tool output")
    is_error: bool = Field(default=False, description="Whether the tool failed")


class ThinkingBlock(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["thinking"] = "thinking"
    thinking: str = Field(..., description="Model reasoning text")


class UnknownBlock(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["unknown"] = "unknown"


ContentBlock = Annotated[
    Union[TextBlock, ImageBlock, ToolUseBlock, ToolResultBlock, ThinkingBlock, UnknownBlock],
    Field(discriminator="type"),
]


class Message(BaseModel):
    """
    A single conversation turn.

    ``content`` is either plain text or an ordered list of content blocks.
    """

    model_config = ConfigDict(extra="forbid")

    role: Role = Field(..., description="Message role")
    content: Union[str, List[ContentBlock]] = Field(..., description="Text or content blocks")

    @classmethod
    def system(cls, text: str) -> "Message":
        return cls(role=Role.SYSTEM, content=text)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role=Role.USER, content=text)

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=text)

    def blocks(self) -> List[Any]:
        """Content as a block list; plain text becomes a single text block."""
        if isinstance(self.content, str):
            return [TextBlock(text=self.content)]
        return list(self.content)

    def text_content(self) -> str:
        """Concatenated text of all text blocks."""
        if isinstance(self.content, str):
            return self.content
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))


class ToolDefinition(BaseModel):
    """A tool the model may call."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Tool name", min_length=1)
    description: str = Field(default="", description="What the tool does")
    input_schema: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema of the tool arguments",
    )


class ToolCall(BaseModel):
    """A tool invocation extracted from a response."""

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str
    input: Any = Field(default_factory=dict)


class TokenUsage(BaseModel):
    """Token counts for one call."""

    model_config = ConfigDict(extra="forbid")

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


class ThinkingConfig(BaseModel):
    """Extended thinking hint."""

    model_config = ConfigDict(extra="forbid")

    budget_tokens: int = Field(default=10000, ge=0, description="Token budget for reasoning")


class CompletionRequest(BaseModel):
    """
    A provider independent completion request.

    Treated as immutable per call; the fallback chain hands every driver
    its own copy.
    """

    model_config = ConfigDict(extra="forbid")

    model: str = Field(..., description="Model identifier", min_length=1)
    messages: List[Message] = Field(default_factory=list, description="Conversation history")
    tools: List[ToolDefinition] = Field(default_factory=list, description="Available tools")
    max_tokens: int = Field(default=4096, ge=1, description="Maximum output tokens")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")
    system: Optional[str] = Field(default=None, description="System prompt")
    thinking: Optional[ThinkingConfig] = Field(default=None, description="Extended thinking hint")
    reasoning_effort: Optional[ReasoningEffort] = Field(
        default=None, description="Reasoning effort hint"
    )

    def system_prompt(self) -> Optional[str]:
        """Explicit system field, else the system-role messages joined together."""
        if self.system and self.system.strip():
            return self.system
        parts = [
            m.text_content() for m in self.messages
            if m.role == Role.SYSTEM and m.text_content().strip()
        ]
        return "\n\n".join(parts) if parts else None


class CompletionResponse(BaseModel):
    """A fully assembled completion."""

    model_config = ConfigDict(extra="forbid")

    content: List[ContentBlock] = Field(default_factory=list)
    stop_reason: StopReason = StopReason.END_TURN
    tool_calls: List[ToolCall] = Field(default_factory=list)
    usage: TokenUsage = Field(default_factory=TokenUsage)

    @classmethod
    def assemble(
        cls,
        text: str = "",
        tool_calls: Optional[List[ToolCall]] = None,
        stop_reason: StopReason = StopReason.END_TURN,
        usage: Optional[TokenUsage] = None,
        thinking: str = "",
    ) -> "CompletionResponse":
        """Build a response with tool-use blocks after any text.

        ``stop_reason`` becomes ``tool_use`` whenever there are tool calls.
        """
        tool_calls = list(tool_calls or [])
        content: List[Any] = []
        if thinking:
            content.append(ThinkingBlock(thinking=thinking))
        if text:
            content.append(TextBlock(text=text))
        for call in tool_calls:
            content.append(ToolUseBlock(id=call.id, name=call.name, input=call.input))
        if tool_calls:
            stop_reason = StopReason.TOOL_USE
        return cls(
            content=content,
            stop_reason=stop_reason,
            tool_calls=tool_calls,
            usage=usage or TokenUsage(),
        )

    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))
