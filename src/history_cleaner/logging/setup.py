"""Logging configuration for the history cleaner."""

import logging
import sys

from history_cleaner.constants import SERVICE_NAME
from history_cleaner.logging.formatter import JSONLogFormatter

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO", fmt: str = "json", service: str = SERVICE_NAME) -> None:
    """Set up the root logger to write to stdout, as JSON or as plain text."""
    root = logging.getLogger()
    root.setLevel(logging.getLevelNamesMapping().get(level.upper(), logging.INFO))
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    if fmt.lower() == "text":
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    else:
        handler.setFormatter(JSONLogFormatter(service=service))
    root.addHandler(handler)
