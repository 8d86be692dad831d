"""Structured logging: JSON formatter and setup."""

from history_cleaner.logging.formatter import JSONLogFormatter
from history_cleaner.logging.setup import configure_logging

__all__ = ["JSONLogFormatter", "configure_logging"]
