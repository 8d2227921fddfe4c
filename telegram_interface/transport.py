"""
Telegram transport - реализация ChatChannel поверх aiogram Bot

Все тексты берутся из MessageService (HTML parse mode). Сгенерированный
моделью текст экранируется перед отправкой.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Sequence, Set

from aiogram import Bot, html
from aiogram.enums import ChatAction, ParseMode
from aiogram.exceptions import TelegramBadRequest

from boardview.channel import ChatChannel
from boardview.models import AdvicePanel, PersonaDescriptor, persona_names

from .messages import MessageService
from .utilities import build_advisor_keyboard, send_long_message

logger = logging.getLogger(__name__)

MAX_ALERT_LENGTH = 200  # лимит answer_callback_query


class OperatorNotifier:
    """
    Fire-and-forget уведомления операторам

    Throttling: не более max_per_key уведомлений одного типа за window_minutes.
    Ошибки доставки логируются и не влияют на обработку пользователя.
    """

    def __init__(self, bot: Bot, operator_ids: Iterable[int], max_per_key: int = 20,
                 window_minutes: int = 60):
        self.bot = bot
        self.operator_ids = list(operator_ids)
        self.max_per_key = max_per_key
        self.window_minutes = window_minutes

        self.alert_counts = defaultdict(
            lambda: {"count": 0, "last_reset": datetime.now(timezone.utc)}
        )
        self._tasks: Set[asyncio.Task] = set()

    def notify(self, key: str, text: str) -> Optional[asyncio.Task]:
        if not self.operator_ids:
            logger.warning(f"⚠️ No operators configured, alert '{key}' dropped")
            return None

        if not self._should_send(key):
            logger.debug(f"Alert throttled: {key}")
            return None

        task = asyncio.create_task(self._deliver(key, text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver(self, key: str, text: str):
        for operator_id in self.operator_ids:
            try:
                await self.bot.send_message(operator_id, text, parse_mode=ParseMode.HTML)
            except Exception as e:
                logger.error(f"❌ Failed to notify operator {operator_id} ({key}): {e}")
        logger.info(f"🔔 Operator alert sent: {key}")

    def _should_send(self, key: str) -> bool:
        """Проверка rate limiting"""
        now = datetime.now(timezone.utc)
        state = self.alert_counts[key]

        # Сброс счетчика если прошло окно
        if (now - state["last_reset"]).total_seconds() / 60 >= self.window_minutes:
            state["count"] = 0
            state["last_reset"] = now

        if state["count"] >= self.max_per_key:
            return False

        state["count"] += 1
        return True

    async def close(self, timeout: float = 5.0):
        """Дождаться отправки висящих уведомлений"""
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        logger.info(f"✅ Operator notifier closed (sent: {len(done)}, cancelled: {len(pending)})")


class TelegramChatChannel(ChatChannel):

    def __init__(self, bot: Bot, messages: MessageService, notifier: OperatorNotifier,
                 required_advisors: int = 3):
        self.bot = bot
        self.messages = messages
        self.notifier = notifier
        self.required_advisors = required_advisors

    async def send_notice(self, user_id: int, key: str,
                          params: Optional[Dict[str, Any]] = None) -> None:
        text = self.messages.get_message(key, **(params or {}))
        await send_long_message(self.bot, user_id, text)

    async def send_text(self, user_id: int, text: str) -> None:
        await send_long_message(self.bot, user_id, html.quote(text))

    async def send_typing(self, user_id: int) -> None:
        await self.bot.send_chat_action(user_id, ChatAction.TYPING)

    def _selection_text(self, personas: Sequence[PersonaDescriptor],
                        selected_ids: Sequence[str]) -> str:
        return self.messages.get_message(
            "selection_prompt",
            personas=personas,
            required=self.required_advisors,
            selected=len(selected_ids),
        )

    async def send_selection_prompt(self, user_id: int, personas: Sequence[PersonaDescriptor],
                                    selected_ids: Sequence[str]) -> int:
        message = await self.bot.send_message(
            user_id,
            self._selection_text(personas, selected_ids),
            reply_markup=build_advisor_keyboard(personas, selected_ids),
            parse_mode=ParseMode.HTML,
        )
        logger.info(f"🎭 Selection keyboard sent to user {user_id} (message {message.message_id})")
        return message.message_id

    async def update_selection_prompt(self, user_id: int, message_ref: int,
                                      personas: Sequence[PersonaDescriptor],
                                      selected_ids: Sequence[str]) -> None:
        try:
            await self.bot.edit_message_text(
                text=self._selection_text(personas, selected_ids),
                chat_id=user_id,
                message_id=message_ref,
                reply_markup=build_advisor_keyboard(personas, selected_ids),
                parse_mode=ParseMode.HTML,
            )
        except TelegramBadRequest as e:
            if "message is not modified" not in str(e):
                raise
            logger.debug(f"Selection keyboard unchanged for user {user_id}")

    async def close_selection_prompt(self, user_id: int, message_ref: int,
                                     personas: Sequence[PersonaDescriptor]) -> None:
        try:
            await self.bot.edit_message_text(
                text=self.messages.get_message("selection_closed", names=persona_names(personas)),
                chat_id=user_id,
                message_id=message_ref,
                reply_markup=None,
                parse_mode=ParseMode.HTML,
            )
        except TelegramBadRequest as e:
            logger.warning(f"⚠️ Could not close selection keyboard for user {user_id}: {e}")

    async def send_advice_panel(self, user_id: int, personas: Sequence[PersonaDescriptor],
                                panel: AdvicePanel) -> None:
        advice = [
            {"name": persona.name, "text": panel.text_for(persona.id) or ""}
            for persona in personas
        ]
        text = self.messages.get_message("advice_panel", advice=advice, synthesis=panel.synthesis)
        await send_long_message(self.bot, user_id, text)

    async def acknowledge_selection(self, callback_ref: str, warning_key: Optional[str] = None,
                                    params: Optional[Dict[str, Any]] = None) -> None:
        text = None
        if warning_key:
            text = self.messages.get_message(warning_key, **(params or {}))[:MAX_ALERT_LENGTH]
        await self.bot.answer_callback_query(
            callback_ref,
            text=text,
            show_alert=bool(warning_key),
        )

    async def notify_operator(self, key: str, params: Optional[Dict[str, Any]] = None) -> None:
        self.notifier.notify(key, self.messages.get_message(key, category="admin", **(params or {})))

    async def send_direct(self, user_id: int, key: str, **params) -> None:
        """Сообщение пользователю вне консультации (например, после /grant)"""
        await send_long_message(self.bot, user_id, self.messages.get_message(key, **params))
