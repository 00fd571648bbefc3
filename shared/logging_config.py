"""Console logging configuration for the queue, plain or structured JSON."""

from __future__ import annotations

import logging

from pythonjsonlogger import json as jsonlogger

from shared.log import LOGGER_PREFIX, NOTICE


def configure_logging(log_level: str = "info", json_output: bool = False) -> None:
    """Configure the queue's logger hierarchy.

    JSON output format: {"ts": "...", "level": "...", "name": "...", "msg": "...",
    "category": "...", "data": {...}}

    Args:
        log_level: Logging level string (e.g., "info", "notice", "debug").
        json_output: Emit one JSON object per record instead of plain text.
    """
    if log_level.lower() == "notice":
        level = NOTICE
    else:
        level = getattr(logging, log_level.upper(), logging.INFO)

    if json_output:
        formatter = jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "ts",
                "levelname": "level",
                "message": "msg",
            },
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    queue_logger = logging.getLogger(LOGGER_PREFIX)
    # Clear any existing handlers to avoid duplicate output
    queue_logger.handlers.clear()
    queue_logger.addHandler(handler)
    queue_logger.setLevel(level)
    queue_logger.propagate = False
