"""
Structured logging configuration for the Taskflow backend.
Implements consistent JSON logging with request correlation.
"""

import logging
import sys
import time
import uuid
from typing import Any, Dict, Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response


def configure_logging(
    service_name: str = "taskflow-backend",
    log_level: str = "INFO",
    enable_json: bool = True
) -> None:
    """
    Configure structured logging for the Taskflow backend.

    Args:
        service_name: Name of the service for log identification
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_json: Whether to use JSON output (True) or console output (False)
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
        force=True  # Override any existing configuration
    )

    shared_processors = [
        structlog.stdlib.filter_by_level,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        # request_id plus the actor fields bound by RequestLoggingMiddleware
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if enable_json:
        final_processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=service_name)


# Identity headers set by the upstream auth layer, bound onto every log line of a request
ACTOR_LOG_FIELDS = {
    "actor_id": "X-User-Id",
    "actor_role": "X-User-Role",
    "team_id": "X-Team-Id",
}


def actor_log_context(request: Request) -> Dict[str, str]:
    """Actor fields for the request's log context; unauthenticated calls log as anonymous."""
    context = {
        field: request.headers[header]
        for field, header in ACTOR_LOG_FIELDS.items()
        if request.headers.get(header)
    }
    context.setdefault("actor_id", "anonymous")
    return context


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Optional logger name. If None, uses the calling module's name.

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware that adds request correlation IDs and logs HTTP requests.
    """

    def __init__(self, app, service_name: str = "taskflow-backend"):
        super().__init__(app)
        self.service_name = service_name
        self.logger = get_logger("request")

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            service=self.service_name,
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            **actor_log_context(request),
        )

        self.logger.info(
            "Request started",
            extra={
                "data": {
                    "method": request.method,
                    "path": request.url.path,
                    "query_params": str(request.query_params),
                }
            }
        )

        started = time.perf_counter()
        try:
            response = await call_next(request)

            self.logger.info(
                "Request completed",
                extra={
                    "data": {
                        "status_code": response.status_code,
                        "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
                    }
                }
            )

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as exc:
            self.logger.error(
                "Request failed",
                exc_info=True,
                extra={
                    "data": {
                        "exception_type": type(exc).__name__,
                        "exception_message": str(exc),
                    }
                }
            )
            raise


def log_task_transition(
    operation: str,
    task_id: str,
    actor_id: str,
    changes: Dict[str, Any],
    logger: Optional[structlog.stdlib.BoundLogger] = None
) -> None:
    """Log a committed workflow transition with consistent format."""
    if logger is None:
        logger = get_logger("workflow")

    logger.info(
        f"Task {operation}",
        extra={
            "data": {
                "operation": operation,
                "task_id": task_id,
                "actor_id": actor_id,
                **changes
            }
        }
    )


def log_system_state_change(
    component: str,
    state: str,
    details: Dict[str, Any],
    logger: Optional[structlog.stdlib.BoundLogger] = None
) -> None:
    """Log system state changes with consistent format."""
    if logger is None:
        logger = get_logger("system")

    logger.info(
        f"System state change: {component}",
        extra={
            "data": {
                "component": component,
                "new_state": state,
                **details
            }
        }
    )
