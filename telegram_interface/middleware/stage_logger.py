"""
Stage Logger Middleware - логирование переходов стадий консультации

Middleware для отслеживания изменений Session.stage на каждом событии.
Полезно для отладки и мониторинга пользовательских потоков.
"""

import logging
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message

from boardview.session_store import SessionStore

logger = logging.getLogger(__name__)


class StageLoggerMiddleware(BaseMiddleware):
    """
    Логирует:
    - стадию до выполнения handler (debug)
    - смену стадии после выполнения handler (info)
    """

    def __init__(self, session_store: SessionStore):
        self.session_store = session_store

    async def __call__(
        self,
        handler: Callable[[Message | CallbackQuery, Dict[str, Any]], Awaitable[Any]],
        event: Message | CallbackQuery,
        data: Dict[str, Any]
    ) -> Any:
        user_id = None
        if getattr(event, "from_user", None):
            user_id = event.from_user.id

        if user_id is None:
            return await handler(event, data)

        before = await self.session_store.get(user_id)
        logger.debug(
            f"🔄 Stage [BEFORE]: user={user_id}, stage={before.stage.value}, "
            f"event={type(event).__name__}"
        )

        result = await handler(event, data)

        after = await self.session_store.get(user_id)
        if after.stage != before.stage:
            logger.info(
                f"✨ Stage [CHANGED]: user={user_id}, "
                f"{before.stage.value} → {after.stage.value}"
            )

        return result
