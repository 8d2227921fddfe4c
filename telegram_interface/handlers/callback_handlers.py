"""
Callback Handlers - обработчики callback кнопок

Callbacks:
- advisor:<id> - выбор / снятие выбора советника
- всё остальное - устаревшие кнопки
"""

import logging

from aiogram.types import CallbackQuery

from ..utilities.keyboards import parse_advisor_callback
from ..utilities.profile import profile_from_user

logger = logging.getLogger(__name__)


class CallbackHandlers:
    """Обработчики callback кнопок"""

    @staticmethod
    async def callback_toggle_advisor(callback: CallbackQuery, machine):
        """Нажатие на кнопку советника"""
        persona_id = parse_advisor_callback(callback.data)
        message_ref = callback.message.message_id if callback.message else None

        logger.info(f"🎭 User {callback.from_user.id} toggled advisor '{persona_id}'")

        await machine.handle_toggle(
            callback.from_user.id,
            persona_id or "",
            message_ref,
            callback.id,
            profile_from_user(callback.from_user),
        )

    @staticmethod
    async def callback_unknown(callback: CallbackQuery, messages):
        logger.debug(f"Unknown callback from user {callback.from_user.id}: {callback.data}")
        await callback.answer(messages.get_message("unknown_action"), show_alert=True)
