from .logger import setup_logging, get_logger, log_upstream_call, api_logger, monitor_logger, ai_logger
from .retry import RetryConfig, RetryableClient
from .cache import TTLCache
from .result import Ok, Err, ErrorKind, Result, err_from_http
from .utcnow import utcnow, utc_iso

__all__ = [
    # Logger
    "setup_logging",
    "get_logger",
    "log_upstream_call",
    "api_logger",
    "monitor_logger",
    "ai_logger",

    # Retry
    "RetryConfig",
    "RetryableClient",

    # Cache
    "TTLCache",

    # Results
    "Ok",
    "Err",
    "ErrorKind",
    "Result",
    "err_from_http",

    # Time
    "utcnow",
    "utc_iso",
]
