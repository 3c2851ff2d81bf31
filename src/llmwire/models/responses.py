"""
Generic API response models for llmwire.
"""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """
    Standard error response model.
    """

    model_config = ConfigDict(extra="forbid")

    error: Dict[str, Any] = Field(..., description="Error details")


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str = "healthy"
    version: str
    providers: List[str] = Field(default_factory=list, description="Configured driver chain")
