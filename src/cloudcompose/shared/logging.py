"""Logging configuration for cloudcompose.

Every module logs through structlog with key-value events. Interactive runs
render them for humans on stderr; ``--log-json`` and ``--log-file`` switch to
one JSON object per line.
"""

import logging
import sys
from pathlib import Path

import structlog

# Libraries that log every request at info level
NOISY_LOGGERS = ("httpx", "httpcore")


def _handler(log_file: str | Path | None) -> logging.Handler:
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(path, encoding="utf-8")
    return logging.StreamHandler(sys.stderr)


def configure_logging(
    level: str = "warning",
    log_file: str | Path | None = None,
    json_output: bool = False,
) -> None:
    """Configure standard logging and structlog.

    Called once per CLI invocation, from the command group.

    Args:
        level: Log level name (debug, info, warning, error)
        log_file: Append log lines to this file instead of stderr
        json_output: Render JSON even when logging to stderr
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.WARNING

    handler = _handler(log_file)
    handler.setLevel(log_level)
    logging.basicConfig(level=log_level, handlers=[handler], format="%(message)s", force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    renderer: structlog.types.Processor
    if json_output or log_file:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
