"""
API v1 endpoints for llmwire.

This package contains the Codex OAuth endpoints and the completion
endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter

from . import auth, llm

# Create main v1 router
router = APIRouter(prefix="/v1")

# Include sub-routers
router.include_router(auth.router)
router.include_router(llm.router)

__all__ = ["router"]
