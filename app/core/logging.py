import logging
import sys
from typing import Optional

from app.core.config import Settings, settings


def resolve_level(config: Settings) -> int:
    """LOG_LEVEL wins when set; otherwise DEBUG picks between DEBUG and INFO."""
    if config.LOG_LEVEL:
        level = logging.getLevelName(config.LOG_LEVEL.upper())
        if isinstance(level, int):
            return level
        raise ValueError(f"Unknown LOG_LEVEL: {config.LOG_LEVEL}")
    return logging.DEBUG if config.DEBUG else logging.INFO


class AppLogger:
    """Stdout logger whose level and format come from settings."""

    def __init__(self, name: str, config: Optional[Settings] = None):
        self.config = config or settings
        self.logger = logging.getLogger(name)
        self._setup_logger()

    def _setup_logger(self):
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter(self.config.LOG_FORMAT))
            self.logger.addHandler(handler)
            self.logger.setLevel(resolve_level(self.config))

    def debug(self, message: str, *args):
        self.logger.debug(message, *args)

    def info(self, message: str, *args):
        self.logger.info(message, *args)

    def warning(self, message: str, *args):
        self.logger.warning(message, *args)

    def error(self, message: str, *args):
        self.logger.error(message, *args)


def get_logger(name: str, config: Optional[Settings] = None) -> AppLogger:
    """Get a logger instance."""
    return AppLogger(name, config)
