"""
Unit Tests: Bot Lifecycle

Тестирует:
- BotInstanceLock (Redis SET NX, освобождение только своей блокировки)
- BotLifecycle (конфликт, занятый lock, закрытие ресурсов)
- ConflictWatchMiddleware (409 на getUpdates)
"""

import pytest
import asyncio
from unittest.mock import AsyncMock, Mock

from aiogram.exceptions import TelegramConflictError
from aiogram.methods import GetUpdates

from core.exceptions import TransportConflict
from telegram_interface.lifecycle import BotInstanceLock, BotLifecycle
from telegram_interface.middleware import ConflictWatchMiddleware


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def mock_redis():
    redis_mock = AsyncMock()
    redis_mock.set = AsyncMock(return_value=True)
    redis_mock.get = AsyncMock(return_value=None)
    redis_mock.delete = AsyncMock()
    redis_mock.expire = AsyncMock()
    redis_mock.aclose = AsyncMock()
    return redis_mock


@pytest.fixture
def bot():
    bot = Mock()
    bot.session.close = AsyncMock()
    return bot


def polling_dispatcher(polling):
    dp = Mock()
    dp.start_polling = AsyncMock(side_effect=polling)
    return dp


def conflict(text="Conflict: terminated by other getUpdates request"):
    return TelegramConflictError(method=GetUpdates(), message=text)


# ============================================================================
# INSTANCE LOCK TESTS
# ============================================================================

@pytest.mark.asyncio
async def test_lock_acquired(mock_redis):
    lock = BotInstanceLock(mock_redis, "test:lock", lock_ttl=30)

    assert await lock.acquire() is True

    key, token = mock_redis.set.call_args.args
    assert key == "test:lock"
    assert token == lock.token
    assert mock_redis.set.call_args.kwargs == {"nx": True, "ex": 30}


@pytest.mark.asyncio
async def test_lock_held_by_other_instance(mock_redis):
    mock_redis.set.return_value = None
    mock_redis.get.return_value = "pid:1:started:yesterday"
    lock = BotInstanceLock(mock_redis, "test:lock")

    assert await lock.acquire() is False
    assert lock.holder == "pid:1:started:yesterday"


@pytest.mark.asyncio
async def test_release_deletes_own_lock(mock_redis):
    lock = BotInstanceLock(mock_redis, "test:lock")
    await lock.acquire()
    mock_redis.get.return_value = lock.token

    await lock.release()

    mock_redis.delete.assert_awaited_once_with("test:lock")
    mock_redis.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_release_keeps_foreign_lock(mock_redis):
    """
    Тест: Lock, перехваченный другим экземпляром после истечения TTL, не удаляется
    """
    lock = BotInstanceLock(mock_redis, "test:lock")
    await lock.acquire()
    mock_redis.get.return_value = "pid:2:started:now"

    await lock.release()

    mock_redis.delete.assert_not_awaited()
    mock_redis.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_refresh_task_stops_on_release(mock_redis):
    lock = BotInstanceLock(mock_redis, "test:lock", lock_ttl=2)
    await lock.acquire()

    await lock.start_refresh()
    await asyncio.sleep(0)
    await lock.release()

    assert lock.refresh_task.done()
    mock_redis.expire.assert_awaited_with("test:lock", 2)


# ============================================================================
# LIFECYCLE TESTS
# ============================================================================

@pytest.mark.asyncio
async def test_polling_finishes_and_resources_closed(bot):
    closer = AsyncMock()
    dp = polling_dispatcher(lambda *args, **kwargs: None)
    lifecycle = BotLifecycle(bot, dp, asyncio.Event(), closers=[closer])

    await lifecycle.start_polling()

    dp.start_polling.assert_awaited_once_with(bot, handle_signals=False)
    closer.assert_awaited_once()
    bot.session.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_conflict_stops_polling(bot):
    """
    Тест: 409 Conflict останавливает polling и поднимает TransportConflict
    """
    conflict_event = asyncio.Event()

    async def polling(*args, **kwargs):
        conflict_event.set()
        await asyncio.Event().wait()

    closer = AsyncMock()
    lifecycle = BotLifecycle(bot, polling_dispatcher(polling), conflict_event, closers=[closer])

    with pytest.raises(TransportConflict):
        await lifecycle.start_polling()

    closer.assert_awaited_once()
    bot.session.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_request_stops_polling(bot):
    lifecycle = None

    async def polling(*args, **kwargs):
        lifecycle.request_shutdown()
        await asyncio.Event().wait()

    lifecycle = BotLifecycle(bot, polling_dispatcher(polling), asyncio.Event())

    await lifecycle.start_polling()

    bot.session.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_polling_error_propagates(bot):
    async def polling(*args, **kwargs):
        raise RuntimeError("network down")

    lifecycle = BotLifecycle(bot, polling_dispatcher(polling), asyncio.Event())

    with pytest.raises(RuntimeError):
        await lifecycle.start_polling()


@pytest.mark.asyncio
async def test_held_instance_lock_prevents_polling(bot, mock_redis):
    mock_redis.set.return_value = None
    mock_redis.get.return_value = "pid:1"
    dp = polling_dispatcher(lambda *args, **kwargs: None)
    lifecycle = BotLifecycle(bot, dp, asyncio.Event(), instance_lock=BotInstanceLock(mock_redis, "k"))

    with pytest.raises(TransportConflict) as exc_info:
        await lifecycle.start_polling()

    assert "pid:1" in str(exc_info.value)
    dp.start_polling.assert_not_awaited()
    mock_redis.delete.assert_not_awaited()


@pytest.mark.asyncio
async def test_failing_closer_does_not_block_others(bot):
    broken = AsyncMock(side_effect=RuntimeError("close failed"))
    healthy = AsyncMock()
    lifecycle = BotLifecycle(bot, Mock(), asyncio.Event(), closers=[broken, healthy])

    await lifecycle.stop()

    healthy.assert_awaited_once()
    bot.session.close.assert_awaited_once()


# ============================================================================
# CONFLICT WATCH TESTS
# ============================================================================

@pytest.mark.asyncio
async def test_conflict_on_get_updates_sets_flag():
    event = asyncio.Event()
    middleware = ConflictWatchMiddleware(event)
    make_request = AsyncMock(side_effect=conflict())

    with pytest.raises(TelegramConflictError):
        await middleware(make_request, Mock(), GetUpdates())

    assert event.is_set()


@pytest.mark.asyncio
async def test_conflict_on_other_method_ignored():
    event = asyncio.Event()
    middleware = ConflictWatchMiddleware(event)
    make_request = AsyncMock(side_effect=conflict())

    with pytest.raises(TelegramConflictError):
        await middleware(make_request, Mock(), Mock())

    assert not event.is_set()


@pytest.mark.asyncio
async def test_successful_request_passes_through():
    event = asyncio.Event()
    make_request = AsyncMock(return_value="response")

    result = await ConflictWatchMiddleware(event)(make_request, Mock(), GetUpdates())

    assert result == "response"
    assert not event.is_set()
