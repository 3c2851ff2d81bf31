"""
Data models for llmwire.

This package contains the canonical conversation model, the streaming
event union and the OAuth credential models.
"""

from __future__ import annotations

from .auth import (
    CodexAuthStatus,
    ConnectedResponse,
    CredentialSource,
    LogoutResponse,
    PasteCodeRequest,
    PendingPkce,
    StartLoginRequest,
    StartLoginResponse,
    StoredCodexAuth,
    TokenResponse,
)
from .events import (
    ContentComplete,
    PhaseChange,
    StreamEvent,
    TextDelta,
    ThinkingDelta,
    ToolExecutionResult,
    ToolInputDelta,
    ToolUseEnd,
    ToolUseStart,
)
from .messages import (
    CompletionRequest,
    CompletionResponse,
    ContentBlock,
    ImageBlock,
    Message,
    ReasoningEffort,
    Role,
    StopReason,
    TextBlock,
    ThinkingBlock,
    ThinkingConfig,
    TokenUsage,
    ToolCall,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
    UnknownBlock,
)
from .responses import ErrorResponse, HealthResponse

__all__ = [
    # Canonical model
    "CompletionRequest",
    "CompletionResponse",
    "ContentBlock",
    "ImageBlock",
    "Message",
    "ReasoningEffort",
    "Role",
    "StopReason",
    "TextBlock",
    "ThinkingBlock",
    "ThinkingConfig",
    "TokenUsage",
    "ToolCall",
    "ToolDefinition",
    "ToolResultBlock",
    "ToolUseBlock",
    "UnknownBlock",
    # Stream events
    "ContentComplete",
    "PhaseChange",
    "StreamEvent",
    "TextDelta",
    "ThinkingDelta",
    "ToolExecutionResult",
    "ToolInputDelta",
    "ToolUseEnd",
    "ToolUseStart",
    # Auth
    "CodexAuthStatus",
    "ConnectedResponse",
    "CredentialSource",
    "LogoutResponse",
    "PasteCodeRequest",
    "PendingPkce",
    "StartLoginRequest",
    "StartLoginResponse",
    "StoredCodexAuth",
    "TokenResponse",
    # API
    "ErrorResponse",
    "HealthResponse",
]
