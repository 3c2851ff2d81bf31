"""
API modules for llmwire.

This package contains the HTTP routes for the Codex OAuth flow and the
completion endpoints backed by the driver chain.
"""

from __future__ import annotations

from .v1 import router as v1_router

__all__ = ["v1_router"]
