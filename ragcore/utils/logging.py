"""
Logging configuration for the RAG pipeline.

Provides structured logging with proper formatting and levels, plus a helper
for the per-stage events (hit/miss, latency, fallback) that downstream
collectors consume.
"""

import logging
import sys
from typing import Any, Optional
from ragcore.config.settings import get_config


def setup_logging(
    name: str,
    level: Optional[str] = None,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up logging configuration for a module.

    Args:
        name: Logger name (typically __name__)
        level: Logging level override
        log_file: Optional log file path

    Returns:
        Configured logger instance
    """
    config = get_config()

    logger = logging.getLogger(name)

    log_level = level or config.logging.level
    logger.setLevel(getattr(logging, log_level.upper()))

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        fmt=config.logging.format,
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file or config.logging.file_path:
        file_path = log_file or config.logging.file_path
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module."""
    return logging.getLogger(name)


def log_stage_event(
    logger: logging.Logger,
    stage: str,
    event: str,
    level: int = logging.INFO,
    **fields: Any
) -> None:
    """
    Emit a structured pipeline event.

    The record carries ``stage``, ``event`` and ``fields`` attributes so a
    handler can forward it to a metrics backend without parsing the message.

    Args:
        logger: Logger to emit on
        stage: Pipeline stage name (cache, retrieval, rerank, ...)
        event: Event name (hit, miss, fallback, latency, ...)
        level: Logging level
        **fields: Event payload
    """
    details = " ".join(f"{key}={value}" for key, value in fields.items())
    logger.log(
        level,
        f"[{stage}] {event}" + (f" {details}" if details else ""),
        extra={"stage": stage, "event": event, "fields": fields}
    )
