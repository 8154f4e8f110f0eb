"""capi_dispatch logging configuration.

Standard-library logging with a single stream handler. The level comes from
``CAPI_LOG_LEVEL`` (default INFO). httpx request logging is raised to WARNING
because attribution request URLs carry the access token as a query parameter.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_QUIET_LOGGERS = ("httpx", "httpcore")


def _resolve_level(level_name: str) -> int:
    return getattr(logging, level_name.upper(), logging.INFO)


def setup_logging(level: Optional[str] = None) -> None:
    """Configure capi_dispatch logging.

    Args:
        level: Optional override for `CAPI_LOG_LEVEL`.
    """
    if level:
        os.environ["CAPI_LOG_LEVEL"] = level

    resolved = _resolve_level(os.getenv("CAPI_LOG_LEVEL", "INFO"))
    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.setLevel(resolved)
        for handler in root_logger.handlers:
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
    else:
        logging.basicConfig(level=resolved, format=LOG_FORMAT)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
