"""
Configuration for the dose scheduling engine
"""

import logging
import os
from datetime import timedelta

from .errors import ConfigurationError

# Reminder scan configuration
REMINDER_CONFIG = {
    'window_minutes': float(os.getenv('DOSEENGINE_REMINDER_WINDOW_MINUTES', 30)),
    # must stay strictly below window_minutes so no window is skipped
    'scan_interval_minutes': float(os.getenv('DOSEENGINE_SCAN_INTERVAL_MINUTES', 5)),
}

# Adherence bands (inclusive lower bounds, percent)
ADHERENCE_CONFIG = {
    'excellent_min': 80,
    'good_min': 60,
    'trailing_days': 7,
}

# Development configuration
DEV_CONFIG = {
    'log_level': 'INFO',
    'log_format': '%(asctime)s %(levelname)s %(message)s',
}

# Production configuration
PROD_CONFIG = {
    'log_level': 'WARNING',
    'log_format': '%(asctime)s %(levelname)s %(message)s',
}

# Get current environment
ENVIRONMENT = os.getenv('ENVIRONMENT', 'development').lower()

LOG_HANDLER_NAME = 'doseengine'

if ENVIRONMENT == 'production':
    CURRENT_CONFIG = dict(PROD_CONFIG)
else:
    CURRENT_CONFIG = dict(DEV_CONFIG)


def reminder_window() -> timedelta:
    """Default lead time before a due dose during which a reminder fires."""
    window = timedelta(minutes=REMINDER_CONFIG['window_minutes'])
    if not window > timedelta(0):
        raise ConfigurationError(f"reminder window must be > 0 (got {window}).")
    return window


def scan_interval() -> timedelta:
    """How often the scheduler should scan; always strictly shorter than the reminder window."""
    interval = timedelta(minutes=REMINDER_CONFIG['scan_interval_minutes'])
    window = reminder_window()
    if not timedelta(0) < interval < window:
        raise ConfigurationError(
            f"scan interval ({interval}) must be > 0 and shorter than the reminder window ({window}).")
    return interval


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """
    Attach a stream handler to the 'doseengine' logger.

    Applications call this once if they want the engine's log lines.
    Calling it again just updates the level.
    """
    logger = logging.getLogger("doseengine")
    logger.setLevel(level if level is not None else CURRENT_CONFIG['log_level'])
    if not any(h.get_name() == LOG_HANDLER_NAME for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.set_name(LOG_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(CURRENT_CONFIG['log_format']))
        logger.addHandler(handler)
    return logger
