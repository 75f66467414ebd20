"""
Logging setup for applications embedding entstore.

The library itself only logs through ``logging.getLogger(__name__)``;
setup_logging() is for processes that want entstore's default handler.
"""

from __future__ import annotations

import logging

import json_log_formatter

from .config import DatastoreSettings

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(settings: DatastoreSettings | None = None) -> None:
    """Configure the root logger from settings.

    Args:
        settings: Datastore settings (loaded from env if not provided)
    """
    settings = settings or DatastoreSettings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        # json_log_formatter includes the ``extra`` context of each record
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]
