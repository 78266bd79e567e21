"""Logging for the credential service.

Log calls take keyword fields:

    logger = get_logger(__name__)
    logger.info("Account registered", account_id=account_id)

Fields whose name looks like a credential (password, token, secret, key,
digest...) are replaced by ``[REDACTED]`` before formatting. Every line also
carries the request id, correlation id and authenticated account of the HTTP
request being served, if any.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
account_id_var: ContextVar[str | None] = ContextVar("account_id", default=None)

# Substrings of field names that are never logged in clear
SENSITIVE_FIELDS = {
    "password", "secret", "token", "key", "credential", "authorization",
    "digest", "cookie",
}

REDACTED = "[REDACTED]"


def mask_sensitive(data: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``data`` with credential-like fields redacted (recursively)."""
    masked = {}
    for name, value in data.items():
        if any(marker in name.lower() for marker in SENSITIVE_FIELDS):
            masked[name] = REDACTED
        elif isinstance(value, dict):
            masked[name] = mask_sensitive(value)
        else:
            masked[name] = value
    return masked


def _request_context() -> dict[str, str]:
    context = {
        "request_id": request_id_var.get(),
        "correlation_id": correlation_id_var.get(),
        "account_id": account_id_var.get(),
    }
    return {name: value for name, value in context.items() if value}


def _fields(record: logging.LogRecord) -> dict[str, Any]:
    return mask_sensitive(getattr(record, "fields", None) or {})


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_request_context(),
            **_fields(record),
        }
        if record.levelno >= logging.WARNING:
            entry["source"] = f"{record.pathname}:{record.lineno}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """``HH:MM:SS.mmm LEVEL [logger] message | field=value ...`` for terminals."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        fields = {**_request_context(), **_fields(record)}
        line = f"{timestamp} {record.levelname:<8} [{record.name}] {record.getMessage()}"
        if fields:
            line += " | " + " ".join(f"{name}={value}" for name, value in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """``logging.Logger`` whose level methods accept keyword fields."""

    def _log(self, level, msg, args, exc_info=None, extra=None, stack_info=False,
             stacklevel=1, **fields):
        if fields:
            extra = {**(extra or {}), "fields": fields}
        super()._log(level, msg, args, exc_info=exc_info, extra=extra,
                     stack_info=stack_info, stacklevel=stacklevel + 1)


def get_logger(name: str) -> StructuredLogger:
    logging.setLoggerClass(StructuredLogger)
    try:
        return logging.getLogger(name)
    finally:
        logging.setLoggerClass(logging.Logger)


def setup_logging(json_output: bool = False, level: str = "INFO"):
    """Send all logs to stdout, as JSON lines or in human format."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if json_output else HumanFormatter())

    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers[:] = [handler]

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Binds request/correlation ids to the context and logs each request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID")
        request_id = request.headers.get("X-Request-ID") or correlation_id or str(uuid.uuid4())
        correlation_id = correlation_id or request_id

        tokens = (
            request_id_var.set(request_id),
            correlation_id_var.set(correlation_id),
            account_id_var.set(None),
        )
        logger = get_logger("http")
        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                duration_ms=round((time.monotonic() - start) * 1000, 2),
                exc_info=True,
            )
            raise
        else:
            logger.info(
                "Request handled",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.monotonic() - start) * 1000, 2),
            )
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Correlation-ID"] = correlation_id
            return response
        finally:
            for var, token in zip((request_id_var, correlation_id_var, account_id_var), tokens):
                var.reset(token)


def set_account_context(account_id: str | None) -> None:
    """Attach the authenticated account to subsequent log lines."""
    account_id_var.set(account_id)


def log_operation(operation: str):
    """Log the outcome and duration of an async account operation.

    Failures are logged at warning level with the error class only, never
    its message.
    """
    def decorator(func: Callable):
        logger = get_logger(func.__module__)

        @wraps(func)
        async def wrapper(*args, **kwargs):
            start = time.monotonic()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    f"{operation} failed",
                    operation=operation,
                    error_type=type(e).__name__,
                    duration_ms=round((time.monotonic() - start) * 1000, 2),
                )
                raise
            logger.info(
                f"{operation} completed",
                operation=operation,
                duration_ms=round((time.monotonic() - start) * 1000, 2),
            )
            return result

        return wrapper

    return decorator
