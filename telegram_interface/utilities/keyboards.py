"""
Keyboards - клавиатура выбора советников

Одна кнопка на советника, выбранные помечены ✅.
callback_data: "advisor:<id>" (id не длиннее 32 символов, лимит Telegram 64 байта).
"""

from typing import Optional, Sequence

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from boardview.models import PersonaDescriptor

ADVISOR_CALLBACK_PREFIX = "advisor:"
MAX_BUTTON_TEXT = 60


def advisor_callback_data(persona_id: str) -> str:
    return f"{ADVISOR_CALLBACK_PREFIX}{persona_id}"


def parse_advisor_callback(data: Optional[str]) -> Optional[str]:
    """Persona id from callback data, None if it is not an advisor button"""
    if not data or not data.startswith(ADVISOR_CALLBACK_PREFIX):
        return None
    return data[len(ADVISOR_CALLBACK_PREFIX):] or None


def _button_text(persona: PersonaDescriptor, selected: bool) -> str:
    text = persona.name
    if persona.short_description:
        text = f"{persona.name} - {persona.short_description}"
    if len(text) > MAX_BUTTON_TEXT:
        text = text[:MAX_BUTTON_TEXT - 1] + "…"
    return f"✅ {text}" if selected else text


def build_advisor_keyboard(personas: Sequence[PersonaDescriptor],
                           selected_ids: Sequence[str]) -> InlineKeyboardMarkup:
    keyboard = [
        [InlineKeyboardButton(
            text=_button_text(persona, persona.id in selected_ids),
            callback_data=advisor_callback_data(persona.id),
        )]
        for persona in personas
    ]
    return InlineKeyboardMarkup(inline_keyboard=keyboard)
