"""
Utility functions for exception logging on the proxy paths.
"""

import logging


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception together with the exception it was raised from.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Proxy]", "[Upstream]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    message = f"{prefix} {type(exception).__name__}: {_safe_str(exception)}"
    cause = getattr(exception, "__cause__", None)
    if cause is not None:
        message += f" (caused by {type(cause).__name__}: {_safe_str(cause)})"
    logger.log(level, message, exc_info=exception)
