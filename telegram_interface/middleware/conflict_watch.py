"""
Conflict Watch - обнаружение второго экземпляра бота

Telegram отвечает 409 Conflict на getUpdates, если другой процесс уже
читает обновления этого бота. aiogram в этом случае просто повторяет
запрос, поэтому middleware сессии ставит флаг, а BotLifecycle по нему
останавливает процесс с ненулевым кодом.
"""

import asyncio
import logging

from aiogram import Bot
from aiogram.client.session.middlewares.base import BaseRequestMiddleware, NextRequestMiddlewareType
from aiogram.exceptions import TelegramConflictError
from aiogram.methods import GetUpdates, Response, TelegramMethod
from aiogram.methods.base import TelegramType

logger = logging.getLogger(__name__)


class ConflictWatchMiddleware(BaseRequestMiddleware):

    def __init__(self, conflict_event: asyncio.Event):
        self.conflict_event = conflict_event

    async def __call__(
        self,
        make_request: NextRequestMiddlewareType[TelegramType],
        bot: Bot,
        method: TelegramMethod[TelegramType],
    ) -> Response[TelegramType]:
        try:
            return await make_request(bot, method)
        except TelegramConflictError as e:
            if isinstance(method, GetUpdates):
                logger.critical(f"🚫 getUpdates conflict, another instance is polling: {e}")
                self.conflict_event.set()
            raise
