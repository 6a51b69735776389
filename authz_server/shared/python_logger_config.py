"""Console logging for the authorization server.

``LOG_LEVEL`` accepts the standard level names plus ``TRACE``, which sits
below DEBUG and is used for per-provider dispatch decisions.
"""

import os
import sys
import logging
from typing import Optional

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

NOISY_LOGGERS = (
    'asyncio',
    'redis',
    'httpx',
    'httpcore',
    'hpack',
    'hypercorn.access',
    'python_multipart',
)


class ColoredFormatter(logging.Formatter):
    """Colours the whole line by level."""

    COLORS = {
        'TRACE': '\033[90m',
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        msg = super().format(record)
        color = self.COLORS.get(record.levelname)
        return f"{color}{msg}{self.RESET}" if color else msg


def resolve_level(log_level: str) -> int:
    """Level name to logging constant; unknown names fall back to INFO."""
    log_level = log_level.upper()
    if log_level == 'TRACE':
        return TRACE
    return getattr(logging, log_level, logging.INFO)


def setup_python_logging(log_level: Optional[str] = None, use_colors: bool = True) -> logging.Logger:
    """Send every record to stdout at ``log_level`` (default: ``LOG_LEVEL`` env).

    Colours are only used when stdout is a terminal. Third-party libraries
    are held at WARNING unless the server itself runs at DEBUG or TRACE.
    """
    log_level = (log_level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    level = resolve_level(log_level)
    colored = use_colors and sys.stdout.isatty()

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(LOG_FORMAT) if colored else logging.Formatter(LOG_FORMAT))

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)
    logging.getLogger('authz_server').setLevel(level)

    if level > logging.DEBUG:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.info(f"Python logging configured: level={log_level}, colors={colored}")
    return root_logger
