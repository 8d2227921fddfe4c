"""
Boardview Bot Controller - координатор

Этот controller - только координация и композиция, без бизнес-логики.

Архитектура:
- boardview: стадии консультации, хранилища, генерация
- lifecycle: Управление жизненным циклом бота
- handlers: Обработчики команд и сообщений
- middleware: Промежуточные слои
- transport: ChatChannel поверх aiogram Bot
"""

import asyncio
import logging
import sys
from typing import Optional

from aiogram import Bot, Dispatcher

from boardview.generation import (
    AdvicePanelService,
    AdvisorCatalogService,
    DialogueContinuationService,
    build_generator,
    load_advisor_pool,
)
from boardview.quota import QuotaAdministration
from boardview.session_store import InMemorySessionStore, KeyedLock, RedisSessionStore
from boardview.state_machine import SessionStateMachine
from boardview.transitions import ConsultationLimits
from boardview.usage_store import JsonFileUsageStore, RedisUsageStore
from core.config import Config, get_config
from core.exceptions import TransportConflict
from core.logging import setup_logging

from .handler_registry import HandlerRegistry
from .lifecycle import BotInstanceLock, BotLifecycle
from .messages import get_message_service
from .middleware import ConflictWatchMiddleware
from .transport import OperatorNotifier, TelegramChatChannel

logger = logging.getLogger(__name__)


class BoardviewController:
    """
    Контроллер Boardview бота

    Ответственность:
    - Композиция всех компонентов
    - Инициализация Bot и Dispatcher
    - Регистрация handlers через HandlerRegistry
    - Запуск через BotLifecycle
    """

    def __init__(self, config: Optional[Config] = None):
        logger.info("🤖 Initializing Boardview Controller...")
        self.config = config or get_config()

        if not self.config.telegram.bot_token:
            raise ValueError("BOT_TOKEN is not set")

        # 1. Bot, Dispatcher и наблюдение за 409 Conflict
        self.bot = Bot(token=self.config.telegram.bot_token)
        self.conflict_event = asyncio.Event()
        self.bot.session.middleware(ConflictWatchMiddleware(self.conflict_event))
        self.dp = Dispatcher()
        logger.info("✅ Bot and Dispatcher created")

        # 2. Message Service
        self.messages = get_message_service()
        logger.info("✅ MessageService initialized")

        # 3. Generation
        self.limits = ConsultationLimits.from_config(self.config.consultation)
        self.generator = build_generator(self.config.ai)
        pool = load_advisor_pool()
        catalog = AdvisorCatalogService(
            self.generator,
            candidate_count=self.limits.candidate_count,
            pool=pool if self.config.consultation.advisor_source == "pool" else None
        )
        panel = AdvicePanelService(self.generator)
        dialogue = DialogueContinuationService(self.generator)
        logger.info(
            f"✅ Generation ready: {self.config.ai.provider}/{self.config.ai.default_model}, "
            f"advisors from '{self.config.consultation.advisor_source}'"
        )

        # 4. Storage
        redis_config = self.config.redis
        if redis_config.enabled:
            self.session_store = RedisSessionStore.from_url(
                redis_config.url, redis_config.session_ttl, redis_config.key_prefix
            )
            self.usage_store = RedisUsageStore.from_url(redis_config.url, redis_config.key_prefix)
            self.instance_lock = BotInstanceLock.from_url(
                redis_config.url, redis_config.lock_key, redis_config.lock_ttl
            )
            logger.info("✅ Redis session/usage stores and instance lock created")
        else:
            self.session_store = InMemorySessionStore()
            self.usage_store = JsonFileUsageStore(self.config.consultation.usage_db_path)
            self.instance_lock = None
            logger.info(
                f"✅ In-memory sessions, usage file {self.config.consultation.usage_db_path} "
                f"(no instance lock without REDIS_URL)"
            )

        # 5. Transport и state machine (один KeyedLock на пользователя для сессии и квоты)
        locks = KeyedLock()
        self.notifier = OperatorNotifier(self.bot, self.config.telegram.operator_ids)
        self.channel = TelegramChatChannel(
            self.bot, self.messages, self.notifier, self.limits.required_advisors
        )
        self.machine = SessionStateMachine(
            catalog=catalog,
            panel=panel,
            dialogue=dialogue,
            usage_store=self.usage_store,
            session_store=self.session_store,
            channel=self.channel,
            limits=self.limits,
            locks=locks,
        )
        self.quota = QuotaAdministration(
            self.usage_store, self.limits, self.config.telegram.operator_ids, locks=locks
        )

        # 6. Handlers
        self.handler_registry = HandlerRegistry(
            dp=self.dp,
            machine=self.machine,
            quota=self.quota,
            channel=self.channel,
            session_store=self.session_store,
            messages=self.messages,
            limits=self.limits
        )
        self.handler_registry.register_all()

        # 7. Lifecycle
        self.lifecycle = BotLifecycle(
            bot=self.bot,
            dispatcher=self.dp,
            conflict_event=self.conflict_event,
            instance_lock=self.instance_lock,
            closers=[
                self.notifier.close,
                self.generator.close,
                self.session_store.close,
                self.usage_store.close,
            ]
        )
        logger.info(f"🎉 Boardview Controller initialized: {self.config.as_dict()}")

    async def start(self):
        logger.info("🚀 Starting Boardview Bot...")
        await self.lifecycle.start_polling()

    async def stop(self):
        logger.info("🛑 Stopping Boardview Bot...")
        await self.lifecycle.stop()


async def main() -> int:
    """
    Точка входа для запуска бота

    Использование:
        python -m telegram_interface.controller
    """
    setup_logging()

    controller = BoardviewController()
    try:
        await controller.start()
    except TransportConflict as e:
        logger.critical(f"🚫 {e.message}. Exiting.")
        return 1
    return 0


def run():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
