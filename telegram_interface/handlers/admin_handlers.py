"""
Admin Handlers - команды оператора

Команды (только для OPERATOR_IDS):
- /grant <user_id> <amount> - добавить пользователю консультации
- /usage <user_id> - показать использование пользователя

Проверка прав делается в QuotaAdministration.
"""

import logging
from typing import Optional, Tuple

from aiogram.exceptions import TelegramAPIError
from aiogram.filters import CommandObject
from aiogram.types import Message

from core.exceptions import OperatorRequired

logger = logging.getLogger(__name__)


def _parse_int_args(command: CommandObject, count: int) -> Optional[Tuple[int, ...]]:
    parts = (command.args or "").split()
    if len(parts) != count:
        return None
    try:
        return tuple(int(part) for part in parts)
    except ValueError:
        return None


class AdminHandlers:
    """Обработчики административных команд"""

    @staticmethod
    async def cmd_grant(message: Message, command: CommandObject, quota, channel, messages, limits):
        """Добавить консультации пользователю (только для оператора)"""
        operator_id = message.from_user.id
        if not quota.is_operator(operator_id):
            await message.answer(messages.get_message("operator_only", category="admin"))
            return

        args = _parse_int_args(command, 2)
        if args is None:
            await message.answer(messages.get_message("grant_usage", category="admin"),
                                 parse_mode="HTML")
            return
        user_id, amount = args

        try:
            record = await quota.grant_quota(operator_id, user_id, amount)
        except OperatorRequired:
            await message.answer(messages.get_message("operator_only", category="admin"))
            return
        except ValueError:
            await message.answer(messages.get_message("grant_usage", category="admin"),
                                 parse_mode="HTML")
            return

        remaining = record.remaining(limits.max_consultations)
        await message.answer(
            messages.get_message(
                "grant_done",
                category="admin",
                user_id=user_id,
                amount=amount,
                limit=record.limit(limits.max_consultations),
                used=record.consultations_used,
                remaining=remaining,
            ),
            parse_mode="HTML",
        )
        logger.info(f"🎁 Operator {operator_id} granted {amount} consultations to user {user_id}")

        try:
            await channel.send_direct(user_id, "quota_granted_user", amount=amount, remaining=remaining)
        except TelegramAPIError as e:
            logger.warning(f"⚠️ Could not notify user {user_id} about granted quota: {e}")

    @staticmethod
    async def cmd_usage(message: Message, command: CommandObject, quota, messages, limits):
        """Показать использование пользователя (только для оператора)"""
        operator_id = message.from_user.id
        args = _parse_int_args(command, 1)

        try:
            if args is None:
                if not quota.is_operator(operator_id):
                    raise OperatorRequired(operator_id)
                await message.answer(messages.get_message("usage_usage", category="admin"),
                                     parse_mode="HTML")
                return
            record = await quota.describe(operator_id, args[0])
        except OperatorRequired:
            await message.answer(messages.get_message("operator_only", category="admin"))
            return

        await message.answer(
            messages.get_message(
                "usage_info",
                category="admin",
                user_id=record.user_id,
                name=record.display_name,
                username=record.username,
                used=record.consultations_used,
                limit=record.limit(limits.max_consultations),
                extra=record.extra_quota,
                remaining=record.remaining(limits.max_consultations),
            ),
            parse_mode="HTML",
        )
