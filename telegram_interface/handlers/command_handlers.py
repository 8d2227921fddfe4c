"""
Command Handlers - базовые команды бота

Обработчики для:
- /start - сброс консультации и приветствие
- /help - справка по боту
- /status - сколько консультаций осталось
"""

import logging

from aiogram.types import Message

from boardview.models import Stage

from ..utilities.profile import profile_from_user

logger = logging.getLogger(__name__)


class CommandHandlers:
    """
    Обработчики базовых команд бота

    Все методы статические - не требуют состояния.
    Получают необходимые зависимости через параметры.
    """

    @staticmethod
    async def cmd_start(message: Message, machine):
        """
        Команда /start - точка входа в бота

        Безусловно сбрасывает текущую консультацию. Счётчик использованных
        консультаций не меняется.
        """
        user_name = message.from_user.full_name or "Друг"
        logger.info(f"👤 User started: {user_name} (ID: {message.from_user.id})")

        await machine.restart(message.from_user.id, profile_from_user(message.from_user))

    @staticmethod
    async def cmd_help(message: Message, messages, limits):
        """Команда /help - справка по боту"""
        text = messages.get_message(
            "help",
            required=limits.required_advisors,
            candidates=limits.candidate_count,
            follow_ups=limits.follow_up_budget,
        )
        await message.answer(text, parse_mode="HTML")

    @staticmethod
    async def cmd_status(message: Message, machine, messages, limits):
        """Команда /status - использование и текущая стадия"""
        session, usage = await machine.status(message.from_user.id)

        stage_params = {}
        if session.stage == Stage.IN_DIALOGUE:
            stage_params["follow_ups"] = session.follow_ups_remaining
        stage_label = messages.get_message(f"stage_{session.stage.value}", **stage_params)

        text = messages.get_message(
            "status",
            used=usage.consultations_used,
            limit=usage.limit(limits.max_consultations),
            remaining=usage.remaining(limits.max_consultations),
            stage_label=stage_label,
        )
        await message.answer(text, parse_mode="HTML")
