from __future__ import annotations

import logging

from vidsheet.config import LoggingSettings

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"


def configure_logging(settings: LoggingSettings, verbose: bool = False) -> None:
    """Configure process-wide logging once at startup; ``verbose`` forces DEBUG."""

    level = logging.DEBUG if verbose else getattr(logging, settings.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=DEFAULT_LOG_FORMAT, force=True)
