from __future__ import annotations

import logging

from clip_pipeline.config import LoggingSettings

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
NOISY_LOGGERS = ("urllib3", "google", "faster_whisper")


def configure_logging(settings: LoggingSettings) -> None:
    """Configure process-wide logging once at CLI startup."""

    level = getattr(logging, settings.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=DEFAULT_LOG_FORMAT, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
