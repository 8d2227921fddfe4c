"""
Message Splitter - разбиение длинных сообщений для Telegram

Telegram лимит: 4096 символов на сообщение.
Разбивает текст по параграфам чтобы не резать посередине предложения.
"""

import asyncio
import logging
from typing import List

from aiogram import Bot

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000  # Оставляем запас для форматирования
MAX_ENTITY_LENGTH = 10  # &amp; &quot; &#x27; и т.п.


def _cut_position(line: str, limit: int) -> int:
    """Позиция жёсткого разреза, не попадающая внутрь HTML-сущности (&...;)"""
    amp = line.rfind("&", max(0, limit - MAX_ENTITY_LENGTH), limit)
    if amp > 0 and ";" not in line[amp:limit]:
        return amp
    return limit


def split_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> List[str]:
    """
    Разбить текст на части не длиннее limit

    Сначала по параграфам, затем по строкам, и только строку длиннее
    limit режем жёстко.
    """
    if len(text) <= limit:
        return [text]

    parts: List[str] = []
    current_part = ""

    def flush():
        nonlocal current_part
        if current_part.strip():
            parts.append(current_part.strip())
        current_part = ""

    for paragraph in text.split("\n\n"):
        if len(current_part) + len(paragraph) + 2 <= limit:
            current_part += paragraph + "\n\n"
            continue

        flush()
        if len(paragraph) + 2 <= limit:
            current_part = paragraph + "\n\n"
            continue

        # Параграф сам по себе слишком длинный
        for line in paragraph.split("\n"):
            while len(line) > limit:
                flush()
                cut = _cut_position(line, limit)
                parts.append(line[:cut])
                line = line[cut:]
            if len(current_part) + len(line) + 1 > limit:
                flush()
            current_part += line + "\n"
        current_part += "\n"

    flush()
    return parts


async def send_long_message(bot: Bot, chat_id: int, text: str, parse_mode: str = "HTML"):
    """
    Отправляет длинное сообщение, разбивая его на части если нужно

    Args:
        bot: Aiogram Bot
        chat_id: Чат получателя
        text: Текст для отправки
        parse_mode: Режим парсинга (HTML/Markdown)
    """
    parts = split_message(text)

    for i, part in enumerate(parts):
        await bot.send_message(chat_id, part, parse_mode=parse_mode)

        # Небольшая задержка между сообщениями
        if i < len(parts) - 1:
            await asyncio.sleep(0.3)

    if len(parts) > 1:
        logger.info(f"📤 Long message sent in {len(parts)} parts")
