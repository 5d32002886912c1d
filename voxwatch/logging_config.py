"""Logging configuration using Loguru.

Provides structured logging with:
- Console output for development
- File rotation for production
- No credentials or request bodies in logs
"""

import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from loguru import logger

REDACTED = "[REDACTED]"

# Keys whose values never reach a log line or the error webhook
SENSITIVE_KEY_PARTS = ("authorization", "cookie", "token", "password", "secret", "api_key")
BODY_KEYS = {"body", "payload", "request_body", "json"}


def setup_logging(
    level: str = "INFO",
    log_dir: str = "logs",
    enable_file: bool = True,
) -> None:
    """Configure application logging.

    Sinks are enqueued so ``logger.complete()`` can be awaited to flush
    them before the process exits.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files
        enable_file: Whether to enable file logging
    """
    # Remove default handler
    logger.remove()

    # Console handler (always enabled)
    logger.add(
        sys.stderr,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level> | {extra}"
        ),
        level=level,
        colorize=True,
        backtrace=True,
        diagnose=False,
        enqueue=True,
    )

    # File handler (production)
    if enable_file:
        log_path = Path(log_dir)
        log_path.mkdir(exist_ok=True)

        # Main application log, one JSON record per line
        logger.add(
            log_path / "voxwatch_{time:YYYY-MM-DD}.log",
            level=level,
            serialize=True,
            rotation="100 MB",
            retention="30 days",
            compression="gz",
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )

        # Error-only log for quick debugging
        logger.add(
            log_path / "errors_{time:YYYY-MM-DD}.log",
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{name}:{function}:{line} | "
                "{message} | {extra}\n{exception}"
            ),
            level="ERROR",
            rotation="50 MB",
            retention="90 days",
            compression="gz",
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )

    logger.info(f"Logging initialized at {level} level")


def get_logger(name: str) -> "logger":
    """Get a logger instance with the given name.

    Usage:
        from voxwatch.logging_config import get_logger
        logger = get_logger(__name__)
        logger.bind(bucket="llm").debug("Message")
    """
    return logger.bind(name=name)


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in SENSITIVE_KEY_PARTS)


def sanitize_for_log(data: Mapping[str, Any]) -> dict[str, Any]:
    """Redact credentials and request bodies from a mapping before logging.

    Redacts: any key containing authorization/cookie/token/password/secret/api_key
    Replaces: body/payload/request_body/json values
    Recurses into nested mappings.
    """
    result: dict[str, Any] = {}

    for key, value in data.items():
        key_str = str(key)
        if _is_sensitive(key_str) or key_str.lower() in BODY_KEYS:
            result[key_str] = REDACTED
        elif isinstance(value, Mapping):
            result[key_str] = sanitize_for_log(value)
        else:
            result[key_str] = value

    return result
