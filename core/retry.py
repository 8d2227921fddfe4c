"""
Retry Pattern Implementation with Exponential Backoff

Повторяет вызовы LLM-провайдеров при временных сбоях (таймауты, rate limit,
5xx). Не-временные ошибки пробрасываются сразу.

Usage:
    @retry_with_backoff(max_attempts=3, retry_exceptions=(asyncio.TimeoutError,))
    async def complete(prompt):
        return await client.create(prompt)
"""

import asyncio
import random
import logging
from datetime import datetime
from typing import Callable, Optional, Type, Tuple
from functools import wraps

from .exceptions import BoardviewError

logger = logging.getLogger(__name__)


class RetryExhaustedError(BoardviewError):
    """All attempts failed; last_error is the final transient error"""

    def __init__(self, func_name: str, attempts: int, last_error: Exception):
        self.func_name = func_name
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            message=f"{func_name} failed {attempts} times, last: {type(last_error).__name__}: {last_error}",
            code="RETRY_EXHAUSTED",
        )


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retry_exceptions: Optional[Tuple[Type[BaseException], ...]] = None,
    attempts_attr: Optional[str] = None
):
    """
    Decorator для retry с exponential backoff

    Args:
        max_attempts: Максимальное количество попыток (включая первую)
        base_delay: Базовая задержка в секундах
        max_delay: Cap для exponential backoff
        exponential_base: База для exponential backoff
        jitter: Добавлять ли случайность к задержке
        retry_exceptions: Исключения для retry (None = все исключения)
        attempts_attr: Имя атрибута экземпляра с числом попыток; если задан,
            перекрывает max_attempts (для методов, настраиваемых из конфига)
    """

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            limit = max_attempts
            if attempts_attr and args:
                limit = max(1, int(getattr(args[0], attempts_attr, max_attempts)))

            attempt = 0
            start_time = datetime.now()

            while True:
                attempt += 1

                try:
                    result = await func(*args, **kwargs)

                    if attempt > 1:
                        elapsed = (datetime.now() - start_time).total_seconds()
                        logger.info(
                            f"Retry success for '{func.__name__}' "
                            f"on attempt {attempt}/{limit} (elapsed: {elapsed:.2f}s)"
                        )

                    return result

                except Exception as e:
                    if retry_exceptions is not None and not isinstance(e, retry_exceptions):
                        raise

                    if attempt >= limit:
                        elapsed = (datetime.now() - start_time).total_seconds()
                        logger.error(
                            f"Retry exhausted for '{func.__name__}' "
                            f"after {attempt} attempts ({elapsed:.2f}s). "
                            f"Last error: {type(e).__name__}: {e}"
                        )
                        raise RetryExhaustedError(func.__name__, attempt, e) from e

                    delay = _calculate_delay(
                        attempt=attempt,
                        base_delay=base_delay,
                        max_delay=max_delay,
                        exponential_base=exponential_base,
                        jitter=jitter
                    )

                    logger.warning(
                        f"Retry {attempt}/{limit} for '{func.__name__}' "
                        f"after {delay:.2f}s. Error: {type(e).__name__}: {e}"
                    )

                    await asyncio.sleep(delay)

        return wrapper

    return decorator


def _calculate_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float,
    jitter: bool
) -> float:
    """
    Задержка перед попыткой attempt + 1

    base_delay * exponential_base ^ (attempt - 1), ограничено max_delay,
    с jitter ±50% (но не меньше 0.1s)
    """
    delay = min(base_delay * (exponential_base ** (attempt - 1)), max_delay)

    if jitter:
        jitter_range = delay * 0.5
        delay = max(0.1, delay + random.uniform(-jitter_range, jitter_range))

    return delay
