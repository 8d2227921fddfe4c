"""
Bot Lifecycle Manager - управление жизненным циклом бота

Отвечает за:
- Instance lock (если настроен Redis)
- Запуск polling с graceful shutdown
- Обработку сигналов (SIGINT, SIGTERM)
- Остановку при 409 Conflict (TransportConflict)
- Корректное освобождение ресурсов
"""

import asyncio
import logging
import os
import signal
from typing import Awaitable, Callable, List, Optional

from aiogram import Bot, Dispatcher

from core.exceptions import TransportConflict

from .instance_lock import BotInstanceLock

logger = logging.getLogger(__name__)

Closer = Callable[[], Awaitable[None]]


class BotLifecycle:
    """
    Управление жизненным циклом Telegram бота

    Ждёт одно из трёх: сигнал остановки, завершение polling, конфликт
    getUpdates. Конфликт превращается в TransportConflict после shutdown.
    """

    def __init__(
        self,
        bot: Bot,
        dispatcher: Dispatcher,
        conflict_event: asyncio.Event,
        instance_lock: Optional[BotInstanceLock] = None,
        closers: Optional[List[Closer]] = None
    ):
        """
        Args:
            bot: Aiogram Bot instance
            dispatcher: Aiogram Dispatcher instance
            conflict_event: Флаг, который ставит ConflictWatchMiddleware
            instance_lock: BotInstanceLock (None без Redis)
            closers: Корутины закрытия сервисов (LLM клиент, хранилища, уведомления)
        """
        self.bot = bot
        self.dp = dispatcher
        self.conflict_event = conflict_event
        self.instance_lock = instance_lock
        self.closers = closers or []

        self._shutdown_event = asyncio.Event()

    def setup_signal_handlers(self):
        """Настроить обработчики сигналов для graceful shutdown"""
        loop = asyncio.get_running_loop()

        def signal_handler(sig):
            logger.info(f"🛑 Received signal {sig}, initiating graceful shutdown...")
            self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

        logger.info("📡 Signal handlers configured (SIGINT, SIGTERM)")

    def request_shutdown(self):
        self._shutdown_event.set()

    async def start_polling(self):
        """
        Запуск бота с проверкой на дублирующие экземпляры и graceful shutdown

        Raises:
            TransportConflict: другой экземпляр держит lock или polling
        """
        try:
            # 🔒 КРИТИЧНО: Проверяем что нет других экземпляров
            if self.instance_lock:
                if not await self.instance_lock.acquire():
                    raise TransportConflict(f"instance lock held by {self.instance_lock.holder}")
                await self.instance_lock.start_refresh()

            self.setup_signal_handlers()
            logger.info(f"🚀 Starting Boardview polling (PID: {os.getpid()})...")

            polling_task = asyncio.create_task(
                self.dp.start_polling(self.bot, handle_signals=False)
            )
            shutdown_task = asyncio.create_task(self._shutdown_event.wait())
            conflict_task = asyncio.create_task(self.conflict_event.wait())

            done, _ = await asyncio.wait(
                {polling_task, shutdown_task, conflict_task},
                return_when=asyncio.FIRST_COMPLETED
            )

            logger.info("🛑 Initiating graceful shutdown...")
            for task in (polling_task, shutdown_task, conflict_task):
                if not task.done():
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        pass

            if conflict_task in done:
                raise TransportConflict("getUpdates returned 409 Conflict")

            if polling_task in done and polling_task.exception():
                raise polling_task.exception()

        finally:
            # Всегда освобождаем ресурсы
            await self.stop()

    async def stop(self):
        """Graceful остановка бота с освобождением всех ресурсов"""
        logger.info("🛑 Stopping bot gracefully...")

        for closer in self.closers:
            try:
                await closer()
            except Exception as e:
                logger.error(f"❌ Error during shutdown ({getattr(closer, '__qualname__', closer)}): {e}",
                             exc_info=True)

        if self.instance_lock:
            await self.instance_lock.release()

        try:
            await self.bot.session.close()
            logger.info("✅ Bot session closed")
        except Exception as e:
            logger.error(f"❌ Error closing bot session: {e}", exc_info=True)

        logger.info("🎉 Bot stopped")
