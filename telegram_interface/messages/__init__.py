"""
Boardview Messages System

Тексты бота в JSON-шаблонах с Jinja2-подстановкой и HTML-разметкой Telegram.
"""

from typing import Optional

from .service import MessageService

# Singleton instance для всего приложения
_message_service: Optional[MessageService] = None


def get_message_service() -> MessageService:
    """Получить синглтон MessageService"""
    global _message_service
    if _message_service is None:
        _message_service = MessageService()
    return _message_service


__all__ = ["MessageService", "get_message_service"]
