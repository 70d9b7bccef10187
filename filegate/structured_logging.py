"""
Structured logging configuration using structlog.

This module provides the logging setup for the file gateway:
- Structured JSON output (python-json-logger) for easy parsing and analysis
- Request-aware context (endpoint, path, remote address, user, tenant)
- Redaction of credentials: tokens, signatures, secrets never reach a log file
- Clean human-readable console output in development

Usage in Flask:
    from filegate.structured_logging import configure_structlog
    configure_structlog(app)

Usage in code:
    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("signed_url_issued", tenant_id="t1", scope="tasks")
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog
from pythonjsonlogger.json import JsonFormatter

# Module-level guard to avoid duplicate configuration
_STRUCTLOG_CONFIGURED = False

SENSITIVE_KEYS = (
    "password",
    "secret",
    "token",
    "signature",
    "authorization",
    "cookie",
    "api_key",
)

# Keys that contain a sensitive word but only hold harmless prefixes/flags
_SAFE_KEYS = {"token_prefix", "has_token"}


def get_log_dir(instance_path: str, override: str | None = None) -> str:
    """Resolve the directory where log files will be stored.

    Order of preference:
    1) explicit override argument
    2) LOG_DIR env var
    3) <instance_path>/logs
    """
    base = override or os.environ.get("LOG_DIR")
    if not base:
        base = os.path.join(instance_path, "logs")
    Path(base).mkdir(parents=True, exist_ok=True)
    return base


def add_request_context(logger, method_name, event_dict):
    """Add Flask request context to log events."""
    from flask import has_request_context, request

    if not has_request_context():
        return event_dict
    event_dict.setdefault("endpoint", request.endpoint)
    event_dict.setdefault("method", request.method)
    event_dict.setdefault("path", _safe_path(request.path))
    event_dict.setdefault("remote_addr", request.remote_addr)

    from flask_login import current_user

    user = current_user._get_current_object() if current_user else None
    if user is not None and getattr(user, "is_authenticated", False):
        event_dict.setdefault("user_id", user.id)
        event_dict.setdefault("tenant_id", getattr(user, "tenant_id", None))
    return event_dict


def _safe_path(path: str) -> str:
    # /files/secure/<token> would otherwise put the whole capability in the log
    marker = "/secure/"
    idx = path.find(marker)
    if idx == -1:
        return path
    return path[: idx + len(marker)] + "***"


def censor_sensitive_data(logger, method_name, event_dict):
    """Remove or redact sensitive data from logs."""
    for key in list(event_dict.keys()):
        if key in _SAFE_KEYS:
            continue
        if any(sens in key.lower() for sens in SENSITIVE_KEYS):
            event_dict[key] = "***REDACTED***"
    return event_dict


# LogRecord attributes that `extra=` may not overwrite
_RESERVED_RECORD_KEYS = {
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "message",
    "module",
    "msecs",
    "msg",
    "name",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
}


def rename_reserved_keys(logger, method_name, event_dict):
    """Prefix keys like ``filename`` so stdlib logging accepts them as extras."""
    for key in list(event_dict.keys()):
        if key in _RESERVED_RECORD_KEYS:
            event_dict[f"ctx_{key}"] = event_dict.pop(key)
    return event_dict


def _build_json_handler(path: str, level: int) -> RotatingFileHandler:
    """Build a rotating file handler with JSON formatting."""
    # 50 MB per file, keep 10 backups (500 MB total)
    handler = RotatingFileHandler(path, maxBytes=50 * 1024 * 1024, backupCount=10)
    handler.setLevel(level)
    handler.setFormatter(
        JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    return handler


def _build_console_handler(level: int) -> logging.StreamHandler:
    """Build a console handler with human-readable formatting."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    return handler


def get_log_level(app_config: dict | None = None) -> int:
    """Determine log level from config or environment."""
    if app_config and "LOG_LEVEL" in app_config:
        level_name = str(app_config["LOG_LEVEL"])
    else:
        level_name = os.environ.get("LOG_LEVEL", "INFO")
    return getattr(logging, level_name.upper(), logging.INFO)


def configure_component_loggers(base_level: int) -> None:
    """Quiet chatty third-party loggers unless we're debugging."""
    logging.getLogger("werkzeug").setLevel(
        logging.DEBUG if base_level <= logging.DEBUG else logging.WARNING
    )
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if base_level <= logging.DEBUG else logging.WARNING
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def configure_structlog(app) -> dict:
    """Configure structlog for the Flask application.

    Args:
        app: Flask app instance (must have .instance_path and .config)

    Returns:
        dict with keys: log_dir, app_log, error_log
    """
    global _STRUCTLOG_CONFIGURED

    # Never configure file logging in tests
    if app.config.get("TESTING"):
        if not _STRUCTLOG_CONFIGURED:
            structlog.configure(
                processors=[
                    structlog.processors.add_log_level,
                    structlog.processors.TimeStamper(fmt="iso"),
                    censor_sensitive_data,
                    structlog.dev.ConsoleRenderer(colors=False),
                ],
                wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
                context_class=dict,
                logger_factory=structlog.PrintLoggerFactory(),
                cache_logger_on_first_use=False,
            )
            _STRUCTLOG_CONFIGURED = True
        return {"log_dir": "", "app_log": "", "error_log": ""}

    log_dir = get_log_dir(app.instance_path, app.config.get("LOG_DIR"))
    app_log_path = os.path.join(log_dir, "app.json")
    error_log_path = os.path.join(log_dir, "error.json")

    level = get_log_level(app.config)

    if not _STRUCTLOG_CONFIGURED:
        root = logging.getLogger()
        root.setLevel(level)
        root.handlers.clear()

        root.addHandler(_build_json_handler(app_log_path, level))
        # Separate error log (WARNING and above only)
        root.addHandler(_build_json_handler(error_log_path, logging.WARNING))
        root.addHandler(_build_console_handler(level))

        configure_component_loggers(level)

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                add_request_context,
                censor_sensitive_data,
                structlog.processors.format_exc_info,
                rename_reserved_keys,
                # Event becomes the message; remaining keys land as JSON fields
                structlog.stdlib.render_to_log_kwargs,
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _STRUCTLOG_CONFIGURED = True

    logger = structlog.get_logger(__name__)
    logger.debug("logging_configured", log_dir=log_dir, level=logging.getLevelName(level))

    return {"log_dir": log_dir, "app_log": app_log_path, "error_log": error_log_path}
