"""Logging configuration for the SmartBuy service.

Structured JSON logging so engine events (interactions, training runs,
weight updates) can be parsed by log aggregation systems, plus a request
middleware that tags every response with an ``X-Request-ID``.
"""

import json
import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"

# Attributes every LogRecord carries; anything else arrived through ``extra``
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))) | {
    "message",
    "asctime",
}


class JSONFormatter(logging.Formatter):
    """Formats log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(
            (key, value) for key, value in vars(record).items() if key not in _STANDARD_ATTRS
        )
        # Ids and datetimes in ``extra`` are not always JSON-native
        return json.dumps(entry, default=str)


def setup_logging(log_level: str = "INFO") -> None:
    """Install the JSON formatter on the root logger.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for noisy in ("uvicorn", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with its method, path, status and duration."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        # Reuse a caller-supplied id so traces span services
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        context = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        started = time.perf_counter()
        logger = logging.getLogger("smartbuy.api.main")

        logger.info(
            "Incoming request",
            extra={
                **context,
                "query_params": str(request.query_params),
                "client_host": request.client.host if request.client else None,
            },
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                extra={
                    **context,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "duration_ms": _elapsed_ms(started),
                },
                exc_info=True,
            )
            raise

        logger.info(
            "Request completed",
            extra={**context, "status_code": response.status_code, "duration_ms": _elapsed_ms(started)},
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
