"""
Utilities - вспомогательные функции

Модули:
- message_splitter: Разбиение длинных сообщений для Telegram
- keyboards: Клавиатура выбора советников
"""

from .message_splitter import send_long_message, split_message
from .keyboards import build_advisor_keyboard, parse_advisor_callback, advisor_callback_data

__all__ = [
    "send_long_message",
    "split_message",
    "build_advisor_keyboard",
    "parse_advisor_callback",
    "advisor_callback_data",
]
