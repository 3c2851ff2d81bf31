"""
Structured logging for llmwire.

structlog renders every event and hands the line to the standard library
handlers, so the console and the optional rotating log file see the same
output. Credentials are redacted before rendering.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from structlog.types import FilteringBoundLogger

from .config import LoggingConfig, get_settings

REDACTED = "[REDACTED]"

SENSITIVE_KEYS = {
    "password", "token", "api_key", "secret", "authorization",
    "access_token", "refresh_token", "id_token", "client_secret",
    "code", "code_verifier", "verifier", "x-goog-api-key",
}


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Configure structlog and the root handlers.

    Safe to call more than once; the last call wins.
    """
    if config is None:
        config = get_settings().logging
    level = getattr(logging, config.level)

    logging.basicConfig(level=level, format="%(message)s", handlers=_build_handlers(config), force=True)

    if config.format == "json":
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty() and not config.file_path)]
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _filter_sensitive_data,
            *renderers,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _build_handlers(config: LoggingConfig) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if config.file_path:
        file_path = Path(config.file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            filename=file_path,
            maxBytes=config.max_file_size,
            backupCount=config.backup_count,
            encoding="utf-8"
        ))

    return handlers


def _redact(data: Any) -> Any:
    if isinstance(data, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_KEYS else _redact(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [_redact(item) for item in data]
    if isinstance(data, str) and data.startswith("eyJ") and data.count(".") >= 2:
        # JWT
        return REDACTED
    return data


def _filter_sensitive_data(
    logger: FilteringBoundLogger,
    method_name: str,
    event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Redact credential-bearing keys and JWT-looking values."""
    return _redact(event_dict)


def get_logger(name: str = __name__) -> FilteringBoundLogger:
    return structlog.get_logger(name)


def log_request(
    logger: FilteringBoundLogger,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    client_ip: str,
) -> None:
    """Log one served HTTP request. The request id comes from contextvars."""
    logger.info(
        "Request completed",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=round(duration_ms, 2),
        client_ip=client_ip,
    )


def log_auth_event(
    logger: FilteringBoundLogger,
    event_type: str,
    account_id: Optional[str] = None,
    success: bool = True,
    details: Optional[Dict[str, Any]] = None
) -> None:
    """Log a credential lifecycle event; failures go out as warnings."""
    log = logger.info if success else logger.warning
    log(
        "Authentication event",
        event_type=event_type,
        account_id=account_id,
        success=success,
        **(details or {})
    )


def log_api_call(
    logger: FilteringBoundLogger,
    service: str,
    endpoint: str,
    method: str,
    status_code: int,
    duration_ms: float,
    attempt: Optional[int] = None,
    streaming: bool = False
) -> None:
    """Log a call to a provider or token endpoint."""
    logger.info(
        "External API call",
        service=service,
        endpoint=endpoint,
        method=method,
        status_code=status_code,
        duration_ms=round(duration_ms, 2),
        attempt=attempt,
        streaming=streaming
    )


def log_error(
    logger: FilteringBoundLogger,
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
) -> None:
    logger.error(
        "Error occurred",
        error_type=type(error).__name__,
        error_message=str(error),
        **(context or {}),
        exc_info=True
    )
