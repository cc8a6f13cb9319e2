"""
JSON logging for CloudWatch Logs Insights.

Each line carries the API Gateway request id so one webhook delivery can be
followed across the dispatcher, the store and Stripe calls. Anything passed
via ``extra=`` becomes a top-level field.
"""

import json
import logging
import os
import uuid
from contextvars import ContextVar
from typing import Optional

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Attributes every LogRecord has; everything else came from extra=
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_var.get(),
            "function_name": os.environ.get("AWS_LAMBDA_FUNCTION_NAME", ""),
        }
        entry.update((k, v) for k, v in vars(record).items() if k not in _STANDARD_ATTRS)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def configure_structured_logging(level: int = logging.INFO) -> logging.Logger:
    """Route all logging through a single JSON handler on the root logger.

    Call at the top of every Lambda handler. Safe to call on warm starts.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    return root


def set_request_id(event: dict) -> str:
    """Bind the request id for this invocation and return it.

    Prefers API Gateway's requestContext.requestId, then an X-Request-Id
    header, then a fresh UUID.
    """
    headers = event.get("headers") or {}
    request_id = (
        (event.get("requestContext") or {}).get("requestId")
        or headers.get("x-request-id")
        or headers.get("X-Request-Id")
        or str(uuid.uuid4())
    )
    request_id_var.set(request_id)
    return request_id


def log_external_call(
    logger: logging.Logger,
    service: str,
    operation: str,
    success: bool,
    latency_ms: float,
    error: Optional[str] = None,
) -> None:
    """Log one outbound call; failures at WARNING."""
    outcome = "success" if success else "failed"
    logger.log(
        logging.INFO if success else logging.WARNING,
        f"External call to {service}: {operation} -> {outcome}",
        extra={
            "service": service,
            "operation": operation,
            "success": success,
            "latency_ms": round(latency_ms, 1),
            "error": error,
        },
    )
