"""Structured logging for gridpilot.

Every event is a structlog event: JSON lines for log shipping, or a
readable console rendering for an operator's terminal. Context bound with
``structlog.contextvars`` (the engine binds ``cycle`` and ``wallet`` for the
duration of each cycle) is merged into every event logged inside it.
"""
import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from gridpilot.core.config import LoggingConfig, logging_config


def build_processors(log_format: str) -> List:
    """Processor chain ending in the renderer for ``log_format``."""
    renderer = (
        structlog.dev.ConsoleRenderer(colors=False)
        if log_format == "console"
        else structlog.processors.JSONRenderer()
    )
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def _has_file_handler(root_logger: logging.Logger, log_path: Path) -> bool:
    return any(
        isinstance(h, logging.FileHandler) and Path(h.baseFilename) == log_path.resolve()
        for h in root_logger.handlers
    )


def setup_logging(config: Optional[LoggingConfig] = None):
    """Route structlog through stdlib logging to stdout and the log file.

    Safe to call more than once; the file handler is attached only once.
    """
    config = config or logging_config
    level = getattr(logging, config.log_level.upper())

    log_path = Path(config.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if not _has_file_handler(root_logger, log_path):
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=build_processors(config.log_format),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
