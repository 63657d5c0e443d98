"""
Centralized logging manager for the application.

Every component logger is a child of the application logger, so handlers are
attached once (console always, Loki when ``LOKI_ENABLED``) and component
prefixes such as ``[Sequence Manager]`` are applied per child.

Loki Downtime Handling:
----------------------
- Logs always go to the console (stdout) via StreamHandler.
- If Loki becomes unavailable at runtime, records sent to the Loki handler may
  be dropped depending on the handler's internal retry logic. The console copy
  is the durable one; ship it with a log collector if delivery matters.

Usage:
- Use get_logger() to obtain a logger instance.
"""

import logging
import sys

from loki_logger_handler.loki_logger_handler import LokiLoggerHandler

from mahallu_api.config import settings

APP_LOGGER_NAME: str = "Mahallu_API"
LOG_LEVEL: str = settings.LOG_LEVEL.upper()
LOKI_TAGS: dict[str, str] = {"app": settings.APP_NAME, "env": settings.ENV}
LOG_FORMAT: str = "[%(asctime)s] %(levelname)s in %(name)s: %(message)s"


def _ensure_console_handler(logger: logging.Logger, formatter: logging.Formatter) -> bool:
    """
    Ensure logger has a StreamHandler for console output.

    Args:
        logger: The logger instance to check and modify
        formatter: The formatter to apply to the StreamHandler

    Returns:
        bool: True if a new StreamHandler was added, False if one already existed
    """
    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and handler.stream is sys.stdout:
            return False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    return True


def _ensure_loki_handler(logger: logging.Logger) -> bool:
    """Attach a LokiLoggerHandler once. Returns True if one was added."""
    if any(isinstance(h, LokiLoggerHandler) for h in logger.handlers):
        return False
    try:
        loki_handler = LokiLoggerHandler(
            url=settings.LOKI_URL,
            labels=LOKI_TAGS,
            auth=None,
            compressed=settings.LOKI_COMPRESS,
        )
    except (OSError, ValueError) as e:
        logger.error("[LoggingManager] Failed to attach LokiLoggerHandler: %s. Console only.", e, exc_info=True)
        return False
    logger.addHandler(loki_handler)
    logger.info("[LoggingManager] LokiLoggerHandler attached (url=%s, labels=%s)", settings.LOKI_URL, LOKI_TAGS)
    return True


class PrefixFilter(logging.Filter):
    """Prepend a component prefix to every record logged through one logger."""

    def __init__(self, prefix: str):
        super().__init__()
        self.prefix = prefix

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "_prefix_applied", False):
            record.msg = f"{self.prefix} {record.msg}"
            record._prefix_applied = True
        return True


def _child_name(prefix: str) -> str:
    return prefix.strip("[] ").lower().replace(" ", "_") or "root"


def get_logger(name: str = APP_LOGGER_NAME, add_loki: bool = True, prefix: str = "") -> logging.Logger:
    """
    Get a configured logger.

    Args:
        name: Application logger name; handlers live on this logger.
        add_loki: Attach the Loki handler when ``LOKI_ENABLED`` is set.
        prefix: Component prefix, e.g. ``"[Linkage Manager]"``. A prefixed
            logger is a child of ``name`` and propagates to its handlers.

    Returns:
        logging.Logger
    """
    base = logging.getLogger(name)
    base.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    formatter = logging.Formatter(LOG_FORMAT)
    if _ensure_console_handler(base, formatter):
        base.debug("[LoggingManager] Console StreamHandler attached to logger '%s'", name)
    if add_loki and settings.LOKI_ENABLED:
        _ensure_loki_handler(base)

    if not prefix:
        return base

    logger = base.getChild(_child_name(prefix))
    if not any(isinstance(f, PrefixFilter) for f in logger.filters):
        logger.addFilter(PrefixFilter(prefix))
    return logger
