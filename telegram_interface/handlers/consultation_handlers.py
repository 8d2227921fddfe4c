"""
Consultation Handlers - свободный текст пользователя

Текст трактуется по стадии сессии: описание ситуации, уточняющий вопрос
или (во время выбора советников) напоминание нажать кнопки.
"""

import logging

from aiogram.types import Message

from ..utilities.profile import profile_from_user

logger = logging.getLogger(__name__)


class ConsultationHandlers:
    """Обработчики сообщений консультации"""

    @staticmethod
    async def handle_text(message: Message, machine):
        """Любой текст без команды"""
        user_id = message.from_user.id
        logger.info(f"💬 Text from user {user_id}: {len(message.text)} chars")

        await machine.handle_text(user_id, message.text, profile_from_user(message.from_user))

    @staticmethod
    async def handle_unknown_command(message: Message, messages):
        await message.answer(messages.get_message("unknown_command"), parse_mode="HTML")

    @staticmethod
    async def handle_non_text(message: Message, messages):
        """Фото, стикеры, голосовые и т.п."""
        logger.debug(f"Non-text message from user {message.from_user.id}: {message.content_type}")
        await message.answer(messages.get_message("text_only"), parse_mode="HTML")
