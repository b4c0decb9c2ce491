"""
domain-sync — Logging setup for the worker and the HTTP triggers.

Both entry points call ``configure_logging()`` before doing any work.
Modules log through ``logging.getLogger(__name__)`` with %-style args.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from domain_sync import config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Request/connection chatter from the provider client, channel senders and ORM
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "uvicorn.access")

_installed: Optional[logging.Handler] = None


def _resolve_level(level: Optional[str]) -> int:
    name = (level or config.LOG_LEVEL or "INFO").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: Optional[str] = None, force: bool = False) -> logging.Handler:
    """Install the stdout handler on the root logger.

    Repeated calls only adjust the level unless ``force`` is set, in which
    case the previously installed handler is replaced.  When uvicorn has
    already attached handlers to the root logger none is added.
    """
    global _installed
    root = logging.getLogger()
    root.setLevel(_resolve_level(level))

    if _installed is not None and not force:
        return _installed
    if _installed is not None:
        root.removeHandler(_installed)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    if force or not root.handlers:
        root.addHandler(handler)
    _installed = handler

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler
