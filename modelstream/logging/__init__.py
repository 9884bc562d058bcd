"""Logging module for the client."""

from .setup import LOG_DATE_FORMAT, LOG_FORMAT, LOGGER_NAME, setup_logging

__all__ = [
    "LOGGER_NAME",
    "LOG_DATE_FORMAT",
    "LOG_FORMAT",
    "setup_logging",
]
