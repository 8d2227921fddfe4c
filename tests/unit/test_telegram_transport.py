"""
Unit Tests: Telegram Transport

Тестирует отправку через aiogram Bot (мок):
- TelegramChatChannel: уведомления, клавиатура выбора, панель советов
- OperatorNotifier: throttling и доставка всем операторам
- Клавиатура советников и разбиение длинных сообщений
"""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

from aiogram.exceptions import TelegramBadRequest

from boardview.models import AdvicePanel, PersonaAdvice, PersonaDescriptor
from telegram_interface.messages import MessageService
from telegram_interface.transport import OperatorNotifier, TelegramChatChannel
from telegram_interface.utilities import (
    build_advisor_keyboard,
    send_long_message,
    split_message,
)
from telegram_interface.utilities.keyboards import (
    MAX_BUTTON_TEXT,
    advisor_callback_data,
    parse_advisor_callback,
)


USER_ID = 42


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def bot():
    bot = Mock()
    bot.send_message = AsyncMock(return_value=SimpleNamespace(message_id=555))
    bot.edit_message_text = AsyncMock()
    bot.answer_callback_query = AsyncMock()
    bot.send_chat_action = AsyncMock()
    return bot


@pytest.fixture
def notifier():
    notifier = Mock()
    notifier.notify = Mock()
    return notifier


@pytest.fixture
def telegram_channel(bot, notifier):
    return TelegramChatChannel(bot, MessageService(), notifier, required_advisors=3)


def sent_texts(bot):
    return [call.args[1] for call in bot.send_message.call_args_list]


def bad_request(text):
    return TelegramBadRequest(method=Mock(), message=text)


# ============================================================================
# CHAT CHANNEL TESTS
# ============================================================================

@pytest.mark.asyncio
async def test_send_notice_renders_template(telegram_channel, bot):
    await telegram_channel.send_notice(USER_ID, "situation_too_short", {"min_length": 10})

    chat_id, text = bot.send_message.call_args.args
    assert chat_id == USER_ID
    assert "10 символов" in text
    assert bot.send_message.call_args.kwargs["parse_mode"] == "HTML"


@pytest.mark.asyncio
async def test_send_text_escapes_html(telegram_channel, bot):
    """
    Тест: Ответ модели не ломает HTML разметку
    """
    await telegram_channel.send_text(USER_ID, "Используйте <b>силу</b> & терпение")

    assert sent_texts(bot) == ["Используйте &lt;b&gt;силу&lt;/b&gt; &amp; терпение"]


@pytest.mark.asyncio
async def test_send_typing(telegram_channel, bot):
    await telegram_channel.send_typing(USER_ID)

    bot.send_chat_action.assert_awaited_once()
    assert bot.send_chat_action.call_args.args[0] == USER_ID


@pytest.mark.asyncio
async def test_selection_prompt_returns_message_id(telegram_channel, bot, personas):
    ref = await telegram_channel.send_selection_prompt(USER_ID, personas, ())

    assert ref == 555
    kwargs = bot.send_message.call_args.kwargs
    assert len(kwargs["reply_markup"].inline_keyboard) == 5
    text = bot.send_message.call_args.args[1]
    assert "Advisor 1" in text
    assert "Выбрано: 0/3" in text


@pytest.mark.asyncio
async def test_update_selection_marks_selected(telegram_channel, bot, personas):
    await telegram_channel.update_selection_prompt(USER_ID, 555, personas, ("advisor2",))

    kwargs = bot.edit_message_text.call_args.kwargs
    assert kwargs["message_id"] == 555
    assert "Выбрано: 1/3" in kwargs["text"]
    buttons = [row[0].text for row in kwargs["reply_markup"].inline_keyboard]
    assert buttons[1].startswith("✅ ")
    assert not buttons[0].startswith("✅ ")


@pytest.mark.asyncio
async def test_update_selection_ignores_not_modified(telegram_channel, bot, personas):
    bot.edit_message_text.side_effect = bad_request("Bad Request: message is not modified")

    await telegram_channel.update_selection_prompt(USER_ID, 555, personas, ())


@pytest.mark.asyncio
async def test_update_selection_raises_other_errors(telegram_channel, bot, personas):
    bot.edit_message_text.side_effect = bad_request("Bad Request: message to edit not found")

    with pytest.raises(TelegramBadRequest):
        await telegram_channel.update_selection_prompt(USER_ID, 555, personas, ())


@pytest.mark.asyncio
async def test_close_selection_removes_keyboard(telegram_channel, bot, personas):
    await telegram_channel.close_selection_prompt(USER_ID, 555, personas[:3])

    kwargs = bot.edit_message_text.call_args.kwargs
    assert kwargs["reply_markup"] is None
    assert "Advisor 1, Advisor 2, Advisor 3" in kwargs["text"]


@pytest.mark.asyncio
async def test_close_selection_tolerates_deleted_message(telegram_channel, bot, personas):
    bot.edit_message_text.side_effect = bad_request("Bad Request: message to edit not found")

    await telegram_channel.close_selection_prompt(USER_ID, 555, personas[:3])


@pytest.mark.asyncio
async def test_advice_panel_in_selection_order(telegram_channel, bot, personas):
    """
    Тест: Панель выводит советы в порядке выбора, синтез в конце, текст модели экранирован
    """
    chosen = (personas[2], personas[0], personas[1])
    panel = AdvicePanel(
        advice=(
            PersonaAdvice("advisor1", "Совет <один>"),
            PersonaAdvice("advisor2", "Совет два"),
            PersonaAdvice("advisor3", "Совет три"),
        ),
        synthesis="Итог",
    )

    await telegram_channel.send_advice_panel(USER_ID, chosen, panel)

    text = "\n".join(sent_texts(bot))
    assert text.index("Advisor 3") < text.index("Advisor 1") < text.index("Advisor 2")
    assert text.index("Совет два") < text.index("Итог")
    assert "Совет &lt;один&gt;" in text


@pytest.mark.asyncio
async def test_acknowledge_without_warning(telegram_channel, bot):
    await telegram_channel.acknowledge_selection("cb-1")

    bot.answer_callback_query.assert_awaited_once_with("cb-1", text=None, show_alert=False)


@pytest.mark.asyncio
async def test_acknowledge_with_warning(telegram_channel, bot):
    await telegram_channel.acknowledge_selection("cb-1", "selection_limit", {"required": 3})

    kwargs = bot.answer_callback_query.call_args.kwargs
    assert kwargs["show_alert"] is True
    assert "только 3" in kwargs["text"]


@pytest.mark.asyncio
async def test_notify_operator_uses_admin_templates(telegram_channel, notifier):
    await telegram_channel.notify_operator("operator_quota_exhausted", {
        "user_id": USER_ID, "name": "Анна", "username": "anna", "used": 3, "limit": 3,
    })

    key, text = notifier.notify.call_args.args
    assert key == "operator_quota_exhausted"
    assert "/grant 42 3" in text
    assert "@anna" in text


@pytest.mark.asyncio
async def test_send_direct(telegram_channel, bot):
    await telegram_channel.send_direct(USER_ID, "quota_granted_user", amount=2, remaining=2)

    assert "<b>2</b>" in bot.send_message.call_args.args[1]


# ============================================================================
# OPERATOR NOTIFIER TESTS
# ============================================================================

@pytest.mark.asyncio
async def test_notifier_sends_to_every_operator(bot):
    notifier = OperatorNotifier(bot, [1, 2])

    await notifier.notify("quota", "text")

    assert [call.args[0] for call in bot.send_message.call_args_list] == [1, 2]


@pytest.mark.asyncio
async def test_notifier_continues_after_delivery_error(bot):
    """
    Тест: Ошибка доставки одному оператору не мешает остальным
    """
    bot.send_message.side_effect = [RuntimeError("blocked"), SimpleNamespace(message_id=1)]
    notifier = OperatorNotifier(bot, [1, 2])

    await notifier.notify("quota", "text")

    assert bot.send_message.await_count == 2


@pytest.mark.asyncio
async def test_notifier_throttles_per_key(bot):
    notifier = OperatorNotifier(bot, [1], max_per_key=2)

    first = notifier.notify("quota", "1")
    second = notifier.notify("quota", "2")
    third = notifier.notify("quota", "3")
    other = notifier.notify("other", "4")

    assert third is None
    await notifier.close()
    assert first.done() and second.done() and other.done()
    assert bot.send_message.await_count == 3


@pytest.mark.asyncio
async def test_notifier_without_operators(bot):
    notifier = OperatorNotifier(bot, [])

    assert notifier.notify("quota", "text") is None
    await notifier.close()
    bot.send_message.assert_not_awaited()


# ============================================================================
# KEYBOARD TESTS
# ============================================================================

def test_advisor_callback_roundtrip():
    assert advisor_callback_data("naval") == "advisor:naval"
    assert parse_advisor_callback("advisor:naval") == "naval"
    assert parse_advisor_callback("advisor:") is None
    assert parse_advisor_callback("other:naval") is None
    assert parse_advisor_callback(None) is None


def test_keyboard_truncates_long_labels():
    persona = PersonaDescriptor(id="long", name="Очень длинное имя", short_description="x" * 100)

    keyboard = build_advisor_keyboard([persona], ["long"])

    button = keyboard.inline_keyboard[0][0]
    assert button.callback_data == "advisor:long"
    assert button.text.startswith("✅ ")
    assert len(button.text) == MAX_BUTTON_TEXT + 2
    assert button.text.endswith("…")


# ============================================================================
# MESSAGE SPLITTER TESTS
# ============================================================================

def test_short_message_not_split():
    assert split_message("Привет") == ["Привет"]


def test_split_by_paragraphs():
    paragraphs = [f"{i}" * 1500 for i in range(5)]

    parts = split_message("\n\n".join(paragraphs))

    assert len(parts) == 3
    assert all(len(part) <= 4000 for part in parts)
    assert parts[0] == "\n\n".join(paragraphs[:2])


def test_split_hard_cuts_long_line():
    parts = split_message("x" * 9000)

    assert [len(part) for part in parts] == [4000, 4000, 1000]


def test_hard_cut_keeps_html_entity_whole():
    """
    Тест: Жёсткий разрез не попадает внутрь &amp; (иначе Telegram отклонит HTML)
    """
    text = "x" * 3998 + "&amp;" + "y" * 3000

    parts = split_message(text)

    assert parts == ["x" * 3998, "&amp;" + "y" * 3000]


def test_hard_cut_after_complete_entity():
    text = "x" * 3990 + "&amp;" + "y" * 5000

    parts = split_message(text)

    assert len(parts[0]) == 4000
    assert parts[0].endswith("&amp;yyyyy")
    assert "".join(parts) == text


@pytest.mark.asyncio
async def test_send_long_message_sends_all_parts(bot):
    await send_long_message(bot, USER_ID, "a" * 3000 + "\n\n" + "b" * 3000)

    assert sent_texts(bot) == ["a" * 3000, "b" * 3000]
