"""
Core Module - Logging Setup.

Configures the root logger once per process. Every module logs
through ``logging.getLogger(__name__)``; this only decides format
and level.
"""

import json
import logging
import os
import sys
from typing import Optional


def setup_logging(
    level: Optional[str] = None,
    log_format: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level (defaults to LOG_LEVEL env, then INFO)
        log_format: Output format, json or text (defaults to LOG_FORMAT env, then text)
        correlation_id: Correlation ID for tracing a sweep run

    Returns:
        Configured logger for the settlement subsystem
    """
    level = level or os.getenv("LOG_LEVEL", "INFO")
    log_format = log_format or os.getenv("LOG_FORMAT", "text")
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
                "correlation_id": correlation_id or "",
            })
        )
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {correlation_id or ''} | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("settlement")
