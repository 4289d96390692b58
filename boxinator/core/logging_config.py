"""
Structured JSON logging for the Boxinator API.

Every record carries the request id and the authenticated account id set by
RequestLoggingMiddleware and the bearer dependency, so one booking or claim
can be followed through the service and store layers. Passwords, tokens and
two-factor secrets are redacted; e-mail addresses are masked because guest
accounts are keyed by them.
"""

import json
import logging
import logging.handlers
import os
import sys
import time
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
account_id_var: ContextVar[Optional[str]] = ContextVar('account_id', default=None)

REDACTED = "***REDACTED***"

# Health and metrics traffic is logged at DEBUG so it does not drown out bookings
QUIET_PATHS = ("/health", "/metrics")


def mask_email(value: str) -> str:
    local, sep, domain = value.partition("@")
    if not sep:
        return value
    return f"{local[:1]}***@{domain}"


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "@timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": os.getenv('SERVICE_NAME', 'boxinator-api'),
        }

        context = current_context()
        if context:
            entry["context"] = context

        entry["source"] = f"{record.module}.{record.funcName}:{record.lineno}"

        if record.exc_info and record.exc_info[0] is not None:
            entry["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": traceback.format_exception(*record.exc_info),
            }

        fields = getattr(record, 'extra_fields', None)
        if fields:
            entry["fields"] = fields

        return json.dumps(entry, default=str)


class SecurityFilter(logging.Filter):
    """Scrub ``extra_fields`` before any handler sees them."""

    SECRET_KEYS = (
        'password', 'token', 'secret', 'apikey', 'api_key', 'authorization',
    )
    EMAIL_KEYS = ('email', 'to')

    def filter(self, record: logging.LogRecord) -> bool:
        fields = getattr(record, 'extra_fields', None)
        if isinstance(fields, dict):
            record.extra_fields = {key: self._scrub(key, value) for key, value in fields.items()}
        return True

    def _scrub(self, key: str, value: Any) -> Any:
        lowered = key.lower()
        if any(secret in lowered for secret in self.SECRET_KEYS):
            return REDACTED
        if isinstance(value, str) and (lowered in self.EMAIL_KEYS or lowered.endswith('_email')):
            return mask_email(value)
        return value


def setup_logging(
    service_name: str,
    level: str = "INFO",
    log_file: Optional[str] = None,
) -> None:
    """
    Install the JSON formatter on the root logger.

    Args:
        service_name: Reported as ``service`` in every record
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_file: Optional path; rotated at 10MB, five backups kept
    """
    os.environ['SERVICE_NAME'] = service_name

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers = []

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.handlers.RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5))
    for handler in handlers:
        handler.setFormatter(StructuredFormatter())
        handler.addFilter(SecurityFilter())
        root_logger.addHandler(handler)

    # chatty libraries
    for noisy in ('uvicorn.access', 'sqlalchemy.engine', 'httpx', 'httpcore'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root_logger.debug(
        "Logging initialized",
        extra={'extra_fields': {'service': service_name, 'level': level, 'log_file': log_file}},
    )


def current_context() -> Dict[str, str]:
    context = {}
    if request_id_var.get():
        context["request_id"] = request_id_var.get()
    if account_id_var.get():
        context["account_id"] = account_id_var.get()
    return context


class LoggerAdapter(logging.LoggerAdapter):
    """Copies the request context onto the record for non-JSON handlers."""

    def process(self, msg, kwargs):
        kwargs['extra'] = {**current_context(), **kwargs.get('extra', {})}
        return msg, kwargs


def get_logger(name: str) -> LoggerAdapter:
    return LoggerAdapter(logging.getLogger(name), {})


def set_request_context(
    request_id: Optional[str] = None,
    account_id: Optional[str] = None,
) -> None:
    if request_id:
        request_id_var.set(request_id)
    if account_id:
        account_id_var.set(account_id)


def generate_request_id() -> str:
    return uuid.uuid4().hex


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with its duration and echo ``X-Request-ID``."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get('X-Request-ID') or generate_request_id()
        request_id_var.set(request_id)
        account_id_var.set(None)

        logger = get_logger("boxinator.access")
        path = request.url.path
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                f"{request.method} {path} failed",
                exc_info=True,
                extra={'extra_fields': {
                    'method': request.method,
                    'path': path,
                    'duration_ms': round((time.perf_counter() - started) * 1000, 2),
                }},
            )
            raise

        level = logging.DEBUG if path.startswith(QUIET_PATHS) else logging.INFO
        logger.log(
            level,
            f"{request.method} {path} -> {response.status_code}",
            extra={'extra_fields': {
                'method': request.method,
                'path': path,
                'status_code': response.status_code,
                'duration_ms': round((time.perf_counter() - started) * 1000, 2),
                'client_host': request.client.host if request.client else None,
                'account_id': getattr(request.state, 'account_id', None),
            }},
        )
        response.headers['X-Request-ID'] = request_id
        return response
