from __future__ import annotations

import logging

from finbuddy.core.config import Settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# httpx logs full request URLs at INFO, and the news providers take their API key as a query parameter.
QUIET_LOGGERS = ("httpx", "httpcore")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
