"""
Telegram Interface - Telegram бот Boardview

Архитектура:
- controller: Главный координатор (composition root)
- lifecycle: Instance lock, polling, graceful shutdown
- handlers: Обработчики команд, текста и кнопок
- handler_registry: Регистрация handlers с DI
- middleware: Логирование стадий, обнаружение 409 Conflict
- transport: ChatChannel поверх aiogram Bot
- messages: Тексты бота (JSON + Jinja2)
- utilities: Клавиатуры, разбиение длинных сообщений
"""

from .controller import BoardviewController
from .lifecycle import BotInstanceLock, BotLifecycle
from .handler_registry import HandlerRegistry
from .handlers import (
    AdminHandlers,
    CallbackHandlers,
    CommandHandlers,
    ConsultationHandlers,
)
from .middleware import ConflictWatchMiddleware, StageLoggerMiddleware
from .transport import OperatorNotifier, TelegramChatChannel

__all__ = [
    # Main controller
    "BoardviewController",

    # Lifecycle
    "BotInstanceLock",
    "BotLifecycle",

    # Registry
    "HandlerRegistry",

    # Handlers
    "AdminHandlers",
    "CallbackHandlers",
    "CommandHandlers",
    "ConsultationHandlers",

    # Middleware
    "ConflictWatchMiddleware",
    "StageLoggerMiddleware",

    # Transport
    "OperatorNotifier",
    "TelegramChatChannel",
]
