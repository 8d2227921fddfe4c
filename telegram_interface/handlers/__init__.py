"""
Handlers - обработчики команд и сообщений Telegram бота

Модули:
- command_handlers: Базовые команды (/start, /help, /status)
- consultation_handlers: Свободный текст (ситуация, уточняющие вопросы)
- callback_handlers: Кнопки выбора советников
- admin_handlers: Команды оператора (/grant, /usage)
"""

from .command_handlers import CommandHandlers
from .consultation_handlers import ConsultationHandlers
from .callback_handlers import CallbackHandlers
from .admin_handlers import AdminHandlers

__all__ = [
    "CommandHandlers",
    "ConsultationHandlers",
    "CallbackHandlers",
    "AdminHandlers",
]
