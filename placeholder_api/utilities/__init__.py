"""Utilities - logging setup and log formatting helpers."""

from placeholder_api.utilities.logging import setup_logging, truncate_for_log

__all__ = [
    "setup_logging",
    "truncate_for_log",
]
