import logging
import os
from typing import Optional, Union

_DEFAULT_FORMAT = os.getenv(
    "RAMDB_LOG_FORMAT",
    "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
_DEFAULT_DATEFMT = os.getenv("RAMDB_LOG_DATEFMT", "%Y-%m-%d %H:%M:%S")


def resolve_level(verbose: bool = False) -> Union[str, int]:
    """Pick the log level: `RAMDB_LOG_LEVEL` wins, then the verbose flag."""
    override = os.getenv("RAMDB_LOG_LEVEL")
    if override:
        return override.strip().upper()
    return logging.DEBUG if verbose else logging.INFO


def configure_logging(verbose: bool = False, level: Optional[Union[str, int]] = None) -> Union[str, int]:
    """Configure root logging with a consistent format; safe to call repeatedly.

    Environment overrides:
    - `RAMDB_LOG_LEVEL`
    - `RAMDB_LOG_FORMAT`
    - `RAMDB_LOG_DATEFMT`
    """
    if level is None:
        level = resolve_level(verbose)
    if isinstance(level, str):
        level = level.upper()

    root = logging.getLogger()
    if root.handlers:
        # Align existing stream handlers (e.g. under pytest) instead of stacking new ones
        root.setLevel(level)
        for h in root.handlers:
            if isinstance(h, logging.StreamHandler):
                h.setFormatter(logging.Formatter(fmt=_DEFAULT_FORMAT, datefmt=_DEFAULT_DATEFMT))
        return level

    logging.basicConfig(level=level, format=_DEFAULT_FORMAT, datefmt=_DEFAULT_DATEFMT)
    # asyncio reports slow callbacks and child watcher noise at DEBUG
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    return level


def get_logger(name: str) -> logging.Logger:
    """Return a module-scoped logger."""
    return logging.getLogger(name)
