"""Logging setup utilities for claudegate.

Configures the ``claudegate`` logger from :class:`LoggingConfig` and
routes uvicorn's loggers through the same handlers, so server and
request logs share one format and destination.
"""

from __future__ import annotations

import logging
import sys

from claudegate.config.settings import LoggingConfig

# uvicorn is started with log_config=None; these carry its output
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure logging for the claudegate application.

    Safe to call more than once: handlers installed by an earlier call
    are replaced rather than duplicated.

    Args:
        config: Logging configuration. If None, uses defaults
                (INFO level, stderr output).
    """
    if config is None:
        config = LoggingConfig()

    level = getattr(logging, config.level.upper(), logging.INFO)
    formatter = logging.Formatter(config.format)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(logging.FileHandler(config.file))
    for handler in handlers:
        handler.setFormatter(formatter)

    for name in ("claudegate", *SERVER_LOGGERS):
        target = logging.getLogger(name)
        for old in list(target.handlers):
            target.removeHandler(old)
            old.close()
        target.setLevel(level)
        # uvicorn.error reaches the handlers through its parent
        target.propagate = name == "uvicorn.error"
        if not target.propagate:
            for handler in handlers:
                target.addHandler(handler)

    logging.getLogger("claudegate").info("Logging initialized at %s level", config.level)
