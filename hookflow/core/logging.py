# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Structured logging for hookflow.

Engine, node and trigger modules log through children of the "hookflow"
logger. get_engine_logger() configures that parent once from Config, so
one setting controls format, level and the optional log file for all of
them.

Run-scoped fields (execution_id, workflow_id, node_id) are passed through
`extra`. The JSON formatter puts them first in each record; the text
formatter appends them in brackets.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pathlib import Path

ROOT_LOGGER = "hookflow"

# Shown first (JSON) or in the bracketed suffix (text) when present
RUN_FIELDS = ("execution_id", "workflow_id", "node_id")

# Attributes every LogRecord has; anything else came in through `extra`
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    """Caller-supplied `extra` fields of a record, run fields first."""
    extras = {k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS}
    ordered = {k: extras.pop(k) for k in RUN_FIELDS if k in extras}
    ordered.update(extras)
    return ordered


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_extras(record),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines with the run fields appended, e.g. [execution_id=... node_id=...]"""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        run = [f"{key}={getattr(record, key)}" for key in RUN_FIELDS if hasattr(record, key)]
        return f"{line} [{' '.join(run)}]" if run else line


def get_logger(
    name: str,
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[Path] = None
) -> logging.Logger:
    """
    Configure a logger with a stdout handler and, optionally, a file handler.

    Calling it again for the same name replaces the handlers instead of
    adding duplicates.

    Args:
        name: Logger name
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_format: "json" or "text"
        log_file: Also append records to this file (parent dirs are created)
    """
    formatter = JSONFormatter() if log_format == "json" else TextFormatter()

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper()))
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def log_event(
    logger: logging.Logger,
    event: str,
    level: str = "INFO",
    **kwargs: Any
) -> None:
    """Log an event name as the message with its payload as extra fields."""
    getattr(logger, level.lower())(event, extra=kwargs)


def get_engine_logger(config=None) -> logging.Logger:
    """
    Configure the "hookflow" logger tree from config and return the engine's logger.

    Args:
        config: Config with log_level, log_format and log_file (default: get_config())
    """
    if config is None:
        from hookflow.core.config import get_config
        config = get_config()
    get_logger(
        ROOT_LOGGER,
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=Path(config.log_file) if config.log_file else None,
    )
    return logging.getLogger(f"{ROOT_LOGGER}.engine")
