"""
Session storage and per-user sequencing

SessionStore хранит по одной Session на пользователя. Запись идёт через
compare_and_set по полю version: оркестратор перечитывает сессию под
KeyedLock и коммитит только если версия не изменилась.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import WatchError

from .models import Session

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Interface of the per-user session map"""

    @abstractmethod
    async def get(self, user_id: int) -> Session:
        """Stored session, or a fresh AwaitingSituation one"""

    @abstractmethod
    async def set(self, session: Session) -> None:
        """Unconditional overwrite"""

    @abstractmethod
    async def delete(self, user_id: int) -> None:
        ...

    @abstractmethod
    async def compare_and_set(self, session: Session, expected_version: int) -> bool:
        """Store session only if the stored version equals expected_version"""

    async def close(self) -> None:
        pass


class InMemorySessionStore(SessionStore):
    """Process-local store used when Redis is not configured"""

    def __init__(self):
        self._sessions: Dict[int, Session] = {}

    async def get(self, user_id: int) -> Session:
        return self._sessions.get(user_id) or Session(user_id=user_id)

    async def set(self, session: Session) -> None:
        self._sessions[session.user_id] = session

    async def delete(self, user_id: int) -> None:
        self._sessions.pop(user_id, None)

    async def compare_and_set(self, session: Session, expected_version: int) -> bool:
        current = self._sessions.get(session.user_id)
        current_version = current.version if current else 0
        if current_version != expected_version:
            return False
        self._sessions[session.user_id] = session
        return True


class RedisSessionStore(SessionStore):
    """
    Sessions as JSON values with TTL

    Args:
        redis_client: redis.asyncio client (decode_responses=True)
        ttl: время жизни сессии без активности, секунды
        key_prefix: префикс ключей
    """

    def __init__(self, redis_client: redis.Redis, ttl: int, key_prefix: str = "boardview"):
        self.redis = redis_client
        self.ttl = ttl
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, ttl: int, key_prefix: str = "boardview") -> "RedisSessionStore":
        return cls(redis.from_url(url, decode_responses=True), ttl, key_prefix)

    def _key(self, user_id: int) -> str:
        return f"{self.key_prefix}:session:{user_id}"

    @staticmethod
    def _decode(user_id: int, raw: Optional[str]) -> Session:
        if not raw:
            return Session(user_id=user_id)
        try:
            return Session.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"⚠️ Dropping unreadable session of user {user_id}: {e}")
            return Session(user_id=user_id)

    async def get(self, user_id: int) -> Session:
        raw = await self.redis.get(self._key(user_id))
        return self._decode(user_id, raw)

    async def set(self, session: Session) -> None:
        await self.redis.set(
            self._key(session.user_id),
            json.dumps(session.to_dict(), ensure_ascii=False),
            ex=self.ttl,
        )

    async def delete(self, user_id: int) -> None:
        await self.redis.delete(self._key(user_id))

    async def compare_and_set(self, session: Session, expected_version: int) -> bool:
        key = self._key(session.user_id)
        payload = json.dumps(session.to_dict(), ensure_ascii=False)

        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                current = self._decode(session.user_id, await pipe.get(key))
                if current.version != expected_version:
                    await pipe.unwatch()
                    return False
                pipe.multi()
                pipe.set(key, payload, ex=self.ttl)
                await pipe.execute()
                return True
            except WatchError:
                logger.warning(f"⚠️ Concurrent session write for user {session.user_id}")
                return False

    async def close(self) -> None:
        await self.redis.aclose()


class KeyedLock:
    """
    One asyncio.Lock per user id

    Locks are dropped once nobody holds or waits for them.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._waiters: Dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, key: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def active_keys(self) -> List[int]:
        return list(self._locks)
