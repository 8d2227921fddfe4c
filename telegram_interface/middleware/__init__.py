"""
Middleware - промежуточные слои обработки

Модули:
- stage_logger: Логирование смены стадий консультации
- conflict_watch: 409 Conflict на getUpdates (второй экземпляр бота)
"""

from .stage_logger import StageLoggerMiddleware
from .conflict_watch import ConflictWatchMiddleware

__all__ = ["StageLoggerMiddleware", "ConflictWatchMiddleware"]
