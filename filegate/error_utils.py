"""
Error handling utilities for consistent logging and error responses.

Routes raise ``FileGateError`` subclasses for expected failures (bad input,
tenant mismatch, missing files); these map straight to their HTTP status.
Anything else is logged with context and answered with a generic message so
internals never leak to clients.
"""

import logging
import sys
from typing import Any

from flask import jsonify

from filegate.security.errors import FileGateError


def safe_log_error(
    logger,
    message: str,
    exc_info: bool | BaseException | None = True,
    level: int = logging.ERROR,
    **extra_context: Any,
) -> None:
    """
    Log an error with structured context and exception information.

    Args:
        logger: A structlog (or stdlib-compatible) logger
        message: Event name / human-readable error message
        exc_info: Exception info (True for current exception, or an exception object)
        level: Log level (default: ERROR)
        **extra_context: Additional context fields to include in the log

    Example:
        try:
            track_file_upload(...)
        except Exception as e:
            safe_log_error(logger, "file_tracking_failed", exc_info=e, filename=name)
    """
    if isinstance(exc_info, BaseException):
        extra_context["exception_type"] = type(exc_info).__name__
        extra_context["exception_message"] = str(exc_info)
    elif exc_info is True:
        exc_type, exc_value, _ = sys.exc_info()
        if exc_type:
            extra_context["exception_type"] = exc_type.__name__
            extra_context["exception_message"] = str(exc_value)
        else:
            exc_info = False

    try:
        logger.log(level, message, exc_info=exc_info, **extra_context)
    except Exception:
        # Last-resort: never raise from a logging helper
        logging.getLogger(__name__).error("(logging-failed) %s", message)


def error_response(error: FileGateError, message: str | None = None):
    """JSON body + status for an expected failure.

    Validation errors (400) echo their detail; everything else answers with
    the class's public message so paths and token details stay server-side.
    """
    if message is None:
        message = error.message if error.http_status == 400 else error.public_message
    return (
        jsonify({"success": False, "error": message}),
        error.http_status,
    )


def deny(error_cls: type[FileGateError]):
    """JSON body + status for a failure class, without raising it."""
    return (
        jsonify({"success": False, "error": error_cls.public_message}),
        error_cls.http_status,
    )


def handle_api_exception(
    logger,
    message: str,
    status_code: int = 500,
    public_message: str | None = None,
    **extra_context: Any,
):
    """
    Handle an unexpected exception in an API endpoint with logging and JSON response.

    The public message is sanitized to avoid leaking sensitive information.

    Returns:
        Tuple of (JSON response, status code)
    """
    safe_log_error(logger, message, exc_info=True, **extra_context)

    if public_message is None:
        if status_code >= 500:
            public_message = "An internal error occurred. Please try again later."
        else:
            public_message = "The request could not be completed."

    return jsonify({"success": False, "error": public_message}), status_code
