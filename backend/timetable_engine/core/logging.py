from __future__ import annotations

import logging

from timetable_engine.core.config import Settings


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level), format=settings.log_format)
