from .health import HealthStatus, ServiceHealth
from .logging_config import (
    LoggerAdapter,
    RequestLoggingMiddleware,
    generate_request_id,
    get_logger,
    mask_email,
    set_request_context,
    setup_logging,
)

__all__ = [
    "HealthStatus",
    "LoggerAdapter",
    "RequestLoggingMiddleware",
    "ServiceHealth",
    "generate_request_id",
    "get_logger",
    "mask_email",
    "set_request_context",
    "setup_logging",
]
