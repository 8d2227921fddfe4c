"""
Bot Instance Lock - предотвращение множественных экземпляров бота

Использует Redis SET NX для создания distributed lock:
- Только один экземпляр бота может работать одновременно
- Автоматическое обновление TTL каждые lock_ttl/2 секунд
- Graceful release при shutdown

Второй экземпляр получил бы 409 Conflict на getUpdates и делил бы
с первым сессии пользователей.
"""

import asyncio
import logging
import os
from datetime import datetime
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class BotInstanceLock:
    """
    Управление блокировкой экземпляра бота через Redis
    """

    def __init__(self, redis_client: redis.Redis, lock_key: str, lock_ttl: int = 30):
        """
        Args:
            redis_client: redis.asyncio client (decode_responses=True)
            lock_key: Key name for the lock in Redis
            lock_ttl: Lock TTL in seconds (default: 30)
        """
        self.redis_client = redis_client
        self.lock_key = lock_key
        self.lock_ttl = lock_ttl

        self.token = f"pid:{os.getpid()}:started:{datetime.now().isoformat()}"
        self.holder: Optional[str] = None
        self.refresh_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()
        self._acquired = False

    @classmethod
    def from_url(cls, url: str, lock_key: str, lock_ttl: int = 30) -> "BotInstanceLock":
        return cls(redis.from_url(url, decode_responses=True), lock_key, lock_ttl)

    async def acquire(self) -> bool:
        """
        Получить блокировку

        Returns:
            True если блокировка получена, False если другой экземпляр уже запущен.
            Ошибки Redis пробрасываются: без проверки запускаться нельзя.
        """
        lock_acquired = await self.redis_client.set(
            self.lock_key,
            self.token,
            nx=True,
            ex=self.lock_ttl
        )

        if lock_acquired:
            self._acquired = True
            logger.info(f"✅ Bot instance lock acquired (PID: {os.getpid()})")
            return True

        self.holder = await self.redis_client.get(self.lock_key)
        logger.error(
            f"❌ Another bot instance is already running!\n"
            f"   Lock holder: {self.holder}\n"
            f"   Please stop other instances before starting a new one."
        )
        return False

    async def start_refresh(self):
        """Запустить периодическое обновление блокировки"""
        self.refresh_task = asyncio.create_task(self._refresh_loop())
        logger.info(f"🔄 Instance lock refresh task started (interval: {self.refresh_interval}s)")

    @property
    def refresh_interval(self) -> int:
        return max(1, self.lock_ttl // 2)

    async def _refresh_loop(self):
        try:
            while not self._shutdown_event.is_set():
                await self.redis_client.expire(self.lock_key, self.lock_ttl)
                logger.debug(f"🔄 Instance lock refreshed (TTL: {self.lock_ttl}s)")
                await asyncio.sleep(self.refresh_interval)

        except asyncio.CancelledError:
            logger.info("🛑 Instance lock refresh task cancelled")
        except redis.RedisError as e:
            logger.error(f"❌ Error refreshing instance lock: {e}")

    async def release(self):
        """Освободить блокировку экземпляра при shutdown"""
        try:
            if self.refresh_task and not self.refresh_task.done():
                self._shutdown_event.set()
                self.refresh_task.cancel()
                try:
                    await self.refresh_task
                except asyncio.CancelledError:
                    pass
                logger.info("✅ Instance lock refresh task stopped")

            # Удаляем только свою блокировку
            if self._acquired:
                if await self.redis_client.get(self.lock_key) == self.token:
                    await self.redis_client.delete(self.lock_key)
                    logger.info("✅ Bot instance lock released")
                self._acquired = False

        except redis.RedisError as e:
            logger.error(f"❌ Error releasing instance lock: {e}")
        finally:
            await self.redis_client.aclose()
            logger.info("✅ Redis client closed")
