"""
Per-user consultation counters

JsonFileUsageStore keeps the db.json layout of the first bot version:
{"<chatId>": {"chatId", "consultationsUsed", "firstName", "lastName", "username"}}
plus "extraQuota" for operator grants. RedisUsageStore keeps one JSON value
per user.
"""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

import redis.asyncio as redis

from .models import UsageRecord

logger = logging.getLogger(__name__)


def _to_storage(record: UsageRecord) -> Dict[str, Any]:
    return {
        "chatId": record.user_id,
        "consultationsUsed": record.consultations_used,
        "extraQuota": record.extra_quota,
        "firstName": record.first_name,
        "lastName": record.last_name,
        "username": record.username,
    }


def _from_storage(user_id: int, data: Dict[str, Any]) -> UsageRecord:
    return UsageRecord(
        user_id=int(data.get("chatId", user_id)),
        consultations_used=int(data.get("consultationsUsed", 0)),
        extra_quota=int(data.get("extraQuota", 0)),
        first_name=data.get("firstName") or "",
        last_name=data.get("lastName") or "",
        username=data.get("username") or "",
    )


class UsageStore(ABC):
    """get() never writes; save() is a full overwrite of one record"""

    @abstractmethod
    async def get(self, user_id: int) -> UsageRecord:
        ...

    @abstractmethod
    async def save(self, record: UsageRecord) -> None:
        ...

    async def close(self) -> None:
        pass


class JsonFileUsageStore(UsageStore):
    """
    Usage records in a single JSON file

    Запись атомарная: сначала во временный файл, затем os.replace.
    Повреждённый файл переименовывается в <name>.corrupt-<timestamp>
    и считается пустым.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected object, got {type(data).__name__}")
            return data
        except ValueError as e:
            backup = self.path.with_name(
                f"{self.path.name}.corrupt-{datetime.now().strftime('%Y%m%d%H%M%S')}"
            )
            os.replace(self.path, backup)
            logger.error(f"❌ Usage file {self.path} is corrupt ({e}), moved to {backup}")
            return {}

    def _write(self, data: Dict[str, Dict[str, Any]]) -> None:
        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    async def get(self, user_id: int) -> UsageRecord:
        async with self._lock:
            data = self._read()
        stored = data.get(str(user_id))
        if stored is None:
            return UsageRecord(user_id=user_id)
        return _from_storage(user_id, stored)

    async def save(self, record: UsageRecord) -> None:
        async with self._lock:
            data = self._read()
            data[str(record.user_id)] = _to_storage(record)
            self._write(data)


class RedisUsageStore(UsageStore):
    """Usage records as JSON strings, no TTL"""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "boardview"):
        self.redis = redis_client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "boardview") -> "RedisUsageStore":
        return cls(redis.from_url(url, decode_responses=True), key_prefix)

    def _key(self, user_id: int) -> str:
        return f"{self.key_prefix}:usage:{user_id}"

    async def get(self, user_id: int) -> UsageRecord:
        raw = await self.redis.get(self._key(user_id))
        if not raw:
            return UsageRecord(user_id=user_id)
        return _from_storage(user_id, json.loads(raw))

    async def save(self, record: UsageRecord) -> None:
        await self.redis.set(
            self._key(record.user_id),
            json.dumps(_to_storage(record), ensure_ascii=False),
        )

    async def close(self) -> None:
        await self.redis.aclose()
