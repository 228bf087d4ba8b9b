"""Logging setup for applications embedding the engine.

Library modules only ever call `logging.getLogger(__name__)`; handlers are
attached here, once, by the host application.
"""

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(
    level: int | str = logging.INFO,
    log_file: str | Path | None = None,
) -> logging.Logger:
    """Configure the `placeholder_api` logger hierarchy.

    Args:
        level: Log level name or number
        log_file: Optional file to mirror console output into

    Returns:
        The package root logger
    """
    root = logging.getLogger("placeholder_api")
    root.setLevel(level)

    # Calling twice must not duplicate output
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.propagate = False
    return root


def truncate_for_log(text: str, max_len: int = 256) -> str:
    """Shorten long template text before it goes into a log line."""
    if len(text) <= max_len:
        return text
    return f"{text[:max_len]}...({len(text)} chars)"
