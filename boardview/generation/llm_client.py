"""
Structured generation clients (OpenAI / Anthropic)

Каждый вызов модели:
- ограничен таймаутом на попытку (asyncio.wait_for)
- повторяется при временных ошибках провайдера через retry_with_backoff
- возвращает JSON, который валидируется pydantic-моделью

Любая ошибка на этом пути превращается в GenerationFailure.
"""

import asyncio
import json
import re
import time
from abc import ABC, abstractmethod
from typing import Optional, Tuple, Type, TypeVar

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from core.config import AIConfig
from core.exceptions import GenerationFailure
from core.logging import LoggerMixin
from core.retry import RetryExhaustedError, retry_with_backoff

from .prompts import SYSTEM_PROMPT

T = TypeVar("T", bound=BaseModel)

DEFAULT_ANTHROPIC_MODEL = "claude-3-5-sonnet-latest"

OPENAI_TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    asyncio.TimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)

ANTHROPIC_TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    asyncio.TimeoutError,
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_structured(raw: Optional[str], schema: Type[T], operation: str) -> T:
    """
    Parse model output into schema

    Снимает markdown-ограждение ```json, при невалидном JSON пытается
    вырезать первый объект {...} из текста.
    """
    text = _FENCE_RE.sub("", (raw or "").strip())
    if not text:
        raise GenerationFailure(operation, "empty response")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise GenerationFailure(operation, f"response is not JSON: {e}") from e
        try:
            data = json.loads(text[start:end + 1])
        except json.JSONDecodeError as inner:
            raise GenerationFailure(operation, f"response is not JSON: {inner}") from inner

    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise GenerationFailure(
            operation, f"schema violation: {e.error_count()} errors"
        ) from e


class StructuredGenerator(ABC):
    """Generation collaborator: prompt in, validated pydantic model out"""

    @abstractmethod
    async def generate_structured(self, prompt: str, schema: Type[T], operation: str,
                                  system_prompt: Optional[str] = None) -> T:
        ...

    async def close(self) -> None:
        pass


class LLMStructuredGenerator(StructuredGenerator, LoggerMixin):
    """Shared flow for provider clients; subclasses implement _complete"""

    provider = "llm"
    provider_errors: Tuple[Type[BaseException], ...] = ()

    def __init__(self, model: str, max_tokens: int, temperature: float,
                 timeout_seconds: float, max_attempts: int):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts

    @abstractmethod
    async def _complete(self, prompt: str, system_prompt: str) -> str:
        ...

    async def generate_structured(self, prompt: str, schema: Type[T], operation: str,
                                  system_prompt: Optional[str] = None) -> T:
        start_time = time.monotonic()
        try:
            raw = await self._complete(prompt, system_prompt or SYSTEM_PROMPT)
        except RetryExhaustedError as e:
            self.logger.log_service_result(operation, success=False,
                                           processing_time=time.monotonic() - start_time,
                                           provider=self.provider, attempts=e.attempts)
            raise GenerationFailure(operation, f"{self.provider} unavailable: {e.last_error}") from e
        except self.provider_errors as e:
            self.logger.log_service_result(operation, success=False,
                                           processing_time=time.monotonic() - start_time,
                                           provider=self.provider)
            raise GenerationFailure(operation, f"{self.provider} error: {e}") from e

        result = parse_structured(raw, schema, operation)
        self.logger.log_performance(f"{self.provider}.{operation}",
                                    time.monotonic() - start_time, model=self.model)
        return result


class OpenAIStructuredGenerator(LLMStructuredGenerator):
    """OpenAI chat completions with JSON response format"""

    provider = "openai"
    provider_errors = (openai.APIError,)

    def __init__(self, client: AsyncOpenAI, model: str = "gpt-4o-mini",
                 max_tokens: int = 2000, temperature: float = 0.7,
                 timeout_seconds: float = 60.0, max_attempts: int = 3):
        super().__init__(model, max_tokens, temperature, timeout_seconds, max_attempts)
        self.client = client

    @retry_with_backoff(attempts_attr="max_attempts", retry_exceptions=OPENAI_TRANSIENT_ERRORS)
    async def _complete(self, prompt: str, system_prompt: str) -> str:
        response = await asyncio.wait_for(
            self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            ),
            timeout=self.timeout_seconds,
        )
        return response.choices[0].message.content or ""

    async def close(self) -> None:
        await self.client.close()


class AnthropicStructuredGenerator(LLMStructuredGenerator):
    """Anthropic messages API; JSON enforced by the prompt"""

    provider = "anthropic"
    provider_errors = (anthropic.APIError,)

    def __init__(self, client: AsyncAnthropic, model: str = DEFAULT_ANTHROPIC_MODEL,
                 max_tokens: int = 2000, temperature: float = 0.7,
                 timeout_seconds: float = 60.0, max_attempts: int = 3):
        super().__init__(model, max_tokens, temperature, timeout_seconds, max_attempts)
        self.client = client

    @retry_with_backoff(attempts_attr="max_attempts", retry_exceptions=ANTHROPIC_TRANSIENT_ERRORS)
    async def _complete(self, prompt: str, system_prompt: str) -> str:
        response = await asyncio.wait_for(
            self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": prompt}],
            ),
            timeout=self.timeout_seconds,
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )

    async def close(self) -> None:
        await self.client.close()


def build_generator(ai_config: AIConfig) -> LLMStructuredGenerator:
    """Create the provider client selected by AI_PROVIDER"""
    common = dict(
        max_tokens=ai_config.max_tokens,
        temperature=ai_config.temperature,
        timeout_seconds=ai_config.timeout_seconds,
        max_attempts=ai_config.max_attempts,
    )

    if ai_config.provider == "anthropic":
        if not ai_config.anthropic_api_key:
            raise ValueError("Anthropic client not initialized - check ANTHROPIC_API_KEY")
        model = ai_config.default_model
        if not model.startswith("claude"):
            model = DEFAULT_ANTHROPIC_MODEL
        client = AsyncAnthropic(api_key=ai_config.anthropic_api_key, max_retries=0)
        return AnthropicStructuredGenerator(client, model=model, **common)

    if ai_config.provider != "openai":
        raise ValueError(f"Unknown AI provider: {ai_config.provider}")
    if not ai_config.openai_api_key:
        raise ValueError("OpenAI client not initialized - check OPENAI_API_KEY")
    client = AsyncOpenAI(api_key=ai_config.openai_api_key, max_retries=0)
    return OpenAIStructuredGenerator(client, model=ai_config.default_model, **common)
