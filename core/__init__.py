"""
Core Package - Configuration, logging, errors and shared utilities
"""

from .config import get_config, Config
from .logging import get_logger, LoggerMixin, setup_logging

__all__ = ["get_config", "Config", "get_logger", "LoggerMixin", "setup_logging"]
