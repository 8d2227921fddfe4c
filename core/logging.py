"""
Shared Logging System for Boardview Services
"""
import logging
import logging.handlers
from typing import Optional
from datetime import datetime, timezone

from .config import get_config


class BoardviewLogger:
    """Logger wrapper with service-specific structured helpers"""

    def __init__(self, name: str, service_name: Optional[str] = None):
        self.logger = logging.getLogger(name)
        self.service_name = service_name or name
        self.config = get_config()

        if not self.logger.handlers:
            self._setup_logger()

    def _setup_logger(self):
        """Setup logger with console and rotating file handlers"""

        level = getattr(logging, self.config.logging["level"].upper(), logging.INFO)
        self.logger.setLevel(level)

        # Console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(self.config.logging["format"]))
        self.logger.addHandler(console_handler)

        log_dir = self.config.logging["file_path"]
        if not log_dir:
            return

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.warning(f"File logging disabled, cannot create {log_dir}: {e}")
            return

        # File handler with rotation
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{self.service_name}.log",
            maxBytes=self.config.logging["max_file_size"],
            backupCount=self.config.logging["backup_count"],
            encoding="utf-8"
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(
            f"%(asctime)s - {self.service_name} - %(name)s - %(levelname)s - %(message)s"
        ))
        self.logger.addHandler(file_handler)

    def _context(self, **kwargs) -> dict:
        return {
            "service": self.service_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **kwargs
        }

    def log_user_action(self, action: str, user_id: int, **kwargs):
        """Log user action (stage transitions, commands)"""
        context = self._context(action=action, user_id=user_id, **kwargs)
        self.logger.info(f"USER_ACTION: {action} user={user_id}", extra={"context": context})

    def log_service_result(self, method: str, success: bool = True,
                           processing_time: Optional[float] = None, **kwargs):
        """Log service method result"""
        context = self._context(method=method, success=success,
                                processing_time=processing_time, **kwargs)
        level = logging.INFO if success else logging.ERROR
        self.logger.log(level, f"SERVICE_RESULT: {method} ({'SUCCESS' if success else 'FAILED'})",
                        extra={"context": context})

    def log_error(self, error_code: str, message: str, user_id: Optional[int] = None,
                  exception: Optional[BaseException] = None, **kwargs):
        """Log service error"""
        context = self._context(error_code=error_code, user_id=user_id, **kwargs)
        self.logger.error(f"SERVICE_ERROR: {error_code} - {message}",
                          extra={"context": context}, exc_info=exception)

    def log_performance(self, operation: str, duration: float, **kwargs):
        """Log performance metrics"""
        context = self._context(operation=operation,
                                duration_ms=round(duration * 1000, 2), **kwargs)
        self.logger.info(f"PERFORMANCE: {operation} - {duration*1000:.2f}ms",
                         extra={"context": context})

    def info(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(message)

    def error(self, message: str, exc_info=None):
        self.logger.error(message, exc_info=exc_info)

    def debug(self, message: str):
        self.logger.debug(message)


class LoggerMixin:
    """Mixin to add logging capabilities to service classes"""

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        service_name = cls.__name__.lower().replace('service', '')
        cls._logger = BoardviewLogger(cls.__module__, service_name)

    @property
    def logger(self) -> BoardviewLogger:
        """Get logger instance"""
        return self._logger


def get_logger(name: str, service_name: Optional[str] = None) -> BoardviewLogger:
    """Get a logger instance for a service"""
    return BoardviewLogger(name, service_name)


def setup_logging(level: Optional[str] = None):
    """Root logging for entry points (aiogram, uvicorn, etc.)"""
    logging.basicConfig(
        level=(level or get_config().logging["level"]).upper(),
        format=get_config().logging["format"]
    )
