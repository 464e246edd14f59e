# stocksync/core/logging_config.py
"""
Process-wide logging setup, called once from the application lifespan.

The sync engine logs at LOG_LEVEL; HTTP, database and scheduler libraries
are held at WARNING so webhook traffic stays readable.
"""

import logging
from typing import Optional

from stocksync.core.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "sqlalchemy",
    "sqlalchemy.engine",
    "asyncpg",
    "aiosqlite",
    "apscheduler",
)


def configure_logging(level_name: Optional[str] = None) -> int:
    """Configure the root handler and return the numeric level in use"""
    level_name = (level_name or get_settings().LOG_LEVEL).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[logging.StreamHandler()])

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("stocksync").setLevel(level)

    logging.getLogger(__name__).info(f"Logging configured at level: {logging.getLevelName(level)}")
    return level
