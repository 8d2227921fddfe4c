"""
Unit Tests: Session Store

Тестирует хранение сессий и последовательную обработку:
- InMemorySessionStore (compare_and_set по version)
- RedisSessionStore (JSON + TTL, WATCH/MULTI)
- KeyedLock (один lock на пользователя)
"""

import pytest
import asyncio
import json
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock, Mock

from redis.exceptions import WatchError

from boardview.models import DialogueTurn, Role, Session, Stage
from boardview.session_store import InMemorySessionStore, KeyedLock, RedisSessionStore


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def stored_session(personas):
    return Session(
        user_id=7,
        stage=Stage.IN_DIALOGUE,
        consultation_id="abc",
        situation_text="ситуация пользователя",
        candidate_advisors=personas,
        selected_advisor_ids=("advisor1", "advisor2", "advisor3"),
        dialogue_history=(DialogueTurn(Role.USER, "ситуация пользователя"),),
        follow_ups_remaining=2,
        version=4,
    )


@pytest.fixture
def mock_redis():
    redis_mock = AsyncMock()
    redis_mock.get = AsyncMock(return_value=None)
    redis_mock.set = AsyncMock()
    redis_mock.delete = AsyncMock()
    redis_mock.aclose = AsyncMock()
    return redis_mock


@pytest.fixture
def mock_pipe(mock_redis):
    """Pipeline used as `async with redis.pipeline(transaction=True) as pipe`"""
    pipe = Mock()
    pipe.watch = AsyncMock()
    pipe.get = AsyncMock(return_value=None)
    pipe.unwatch = AsyncMock()
    pipe.execute = AsyncMock(return_value=[True])

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=pipe)
    context.__aexit__ = AsyncMock(return_value=False)
    mock_redis.pipeline = Mock(return_value=context)
    return pipe


@pytest.fixture
def redis_store(mock_redis):
    return RedisSessionStore(mock_redis, ttl=3600, key_prefix="test")


# ============================================================================
# IN-MEMORY STORE TESTS
# ============================================================================

@pytest.mark.asyncio
async def test_get_missing_returns_fresh_session():
    store = InMemorySessionStore()

    session = await store.get(7)

    assert session == Session(user_id=7)
    assert session.stage == Stage.AWAITING_SITUATION


@pytest.mark.asyncio
async def test_compare_and_set_checks_version(stored_session):
    """
    Тест: Запись проходит только при совпадении версии
    """
    store = InMemorySessionStore()

    assert await store.compare_and_set(replace(stored_session, version=1), 0) is True
    assert await store.compare_and_set(replace(stored_session, version=2), 0) is False
    assert await store.compare_and_set(replace(stored_session, version=2), 1) is True
    assert (await store.get(7)).version == 2


@pytest.mark.asyncio
async def test_set_and_delete(stored_session):
    store = InMemorySessionStore()

    await store.set(stored_session)
    assert await store.get(7) == stored_session

    await store.delete(7)
    assert await store.get(7) == Session(user_id=7)


# ============================================================================
# REDIS STORE TESTS
# ============================================================================

def test_session_json_roundtrip(stored_session):
    assert Session.from_dict(json.loads(json.dumps(stored_session.to_dict()))) == stored_session


@pytest.mark.asyncio
async def test_redis_set_uses_ttl(redis_store, mock_redis, stored_session):
    await redis_store.set(stored_session)

    key, payload = mock_redis.set.call_args.args
    assert key == "test:session:7"
    assert json.loads(payload)["stage"] == "in_dialogue"
    assert mock_redis.set.call_args.kwargs["ex"] == 3600


@pytest.mark.asyncio
async def test_redis_get_decodes(redis_store, mock_redis, stored_session):
    mock_redis.get.return_value = json.dumps(stored_session.to_dict())

    assert await redis_store.get(7) == stored_session


@pytest.mark.asyncio
async def test_redis_get_drops_unreadable(redis_store, mock_redis):
    mock_redis.get.return_value = "{not json"

    assert await redis_store.get(7) == Session(user_id=7)


@pytest.mark.asyncio
async def test_redis_compare_and_set_success(redis_store, mock_pipe, stored_session):
    mock_pipe.get.return_value = json.dumps(stored_session.to_dict())

    result = await redis_store.compare_and_set(replace(stored_session, version=5), 4)

    assert result is True
    mock_pipe.watch.assert_awaited_once_with("test:session:7")
    mock_pipe.multi.assert_called_once()
    assert json.loads(mock_pipe.set.call_args.args[1])["version"] == 5
    mock_pipe.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_compare_and_set_version_mismatch(redis_store, mock_pipe, stored_session):
    mock_pipe.get.return_value = json.dumps(stored_session.to_dict())

    result = await redis_store.compare_and_set(replace(stored_session, version=3), 2)

    assert result is False
    mock_pipe.unwatch.assert_awaited_once()
    mock_pipe.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_compare_and_set_watch_error(redis_store, mock_pipe, stored_session):
    """
    Тест: Параллельная запись между WATCH и EXEC -> False
    """
    mock_pipe.execute.side_effect = WatchError()

    result = await redis_store.compare_and_set(replace(stored_session, version=1), 0)

    assert result is False


@pytest.mark.asyncio
async def test_redis_close(redis_store, mock_redis):
    await redis_store.close()

    mock_redis.aclose.assert_awaited_once()


# ============================================================================
# KEYED LOCK TESTS
# ============================================================================

@pytest.mark.asyncio
async def test_keyed_lock_serializes_same_key():
    """
    Тест: События одного пользователя выполняются по очереди
    """
    locks = KeyedLock()
    order = []

    async def worker(name, delay):
        async with locks.hold(1):
            order.append(f"{name}-start")
            await asyncio.sleep(delay)
            order.append(f"{name}-end")

    await asyncio.gather(worker("a", 0.05), worker("b", 0))

    assert order == ["a-start", "a-end", "b-start", "b-end"]


@pytest.mark.asyncio
async def test_keyed_lock_allows_different_keys():
    locks = KeyedLock()
    inside = asyncio.Event()
    release = asyncio.Event()

    async def holder():
        async with locks.hold(1):
            inside.set()
            await release.wait()

    task = asyncio.create_task(holder())
    await inside.wait()

    async with locks.hold(2):
        assert sorted(locks.active_keys()) == [1, 2]

    release.set()
    await task


@pytest.mark.asyncio
async def test_keyed_lock_cleans_up_after_error():
    locks = KeyedLock()

    with pytest.raises(RuntimeError):
        async with locks.hold(1):
            raise RuntimeError("boom")

    assert locks.active_keys() == []
