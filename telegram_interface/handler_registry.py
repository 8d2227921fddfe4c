"""
Handler Registry - регистрация всех обработчиков бота

Отвечает за:
- Регистрацию handlers с dependency injection
- Связывание handlers с командами и кнопками
- Middleware регистрацию
"""

import logging
from functools import partial

from aiogram import Dispatcher, F
from aiogram.enums import ChatType
from aiogram.filters import Command, CommandStart

from .handlers import (
    AdminHandlers,
    CallbackHandlers,
    CommandHandlers,
    ConsultationHandlers,
)
from .middleware import StageLoggerMiddleware
from .utilities.keyboards import ADVISOR_CALLBACK_PREFIX

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """
    Регистратор всех обработчиков бота

    Использует dependency injection для передачи зависимостей в handlers.
    """

    def __init__(
        self,
        dp: Dispatcher,
        machine,
        quota,
        channel,
        session_store,
        messages,
        limits
    ):
        """
        Args:
            dp: Aiogram Dispatcher
            machine: SessionStateMachine
            quota: QuotaAdministration (операторские команды)
            channel: TelegramChatChannel
            session_store: SessionStore для StageLoggerMiddleware
            messages: MessageService
            limits: ConsultationLimits
        """
        self.dp = dp
        self.machine = machine
        self.quota = quota
        self.channel = channel
        self.session_store = session_store
        self.messages = messages
        self.limits = limits

    def register_all(self):
        """Регистрация всех handlers и middleware"""
        logger.info("🔧 Registering all handlers...")

        # Только личные чаты
        self.dp.message.filter(F.chat.type == ChatType.PRIVATE)

        self._register_middleware()
        self._register_command_handlers()
        self._register_admin_handlers()
        self._register_consultation_handlers()
        self._register_callback_handlers()

        logger.info("✅ All handlers registered successfully")

    def _register_middleware(self):
        self.dp.message.middleware(StageLoggerMiddleware(self.session_store))
        self.dp.callback_query.middleware(StageLoggerMiddleware(self.session_store))
        logger.info("🔄 Middleware registered: StageLoggerMiddleware")

    def _register_command_handlers(self):
        """Регистрация базовых команд"""
        # /start
        self.dp.message.register(
            partial(CommandHandlers.cmd_start, machine=self.machine),
            CommandStart()
        )

        # /help
        self.dp.message.register(
            partial(CommandHandlers.cmd_help, messages=self.messages, limits=self.limits),
            Command("help")
        )

        # /status
        self.dp.message.register(
            partial(
                CommandHandlers.cmd_status,
                machine=self.machine,
                messages=self.messages,
                limits=self.limits
            ),
            Command("status")
        )

        logger.info("📝 Command handlers registered: /start, /help, /status")

    def _register_admin_handlers(self):
        """Регистрация операторских команд"""
        # /grant <user_id> <amount>
        self.dp.message.register(
            partial(
                AdminHandlers.cmd_grant,
                quota=self.quota,
                channel=self.channel,
                messages=self.messages,
                limits=self.limits
            ),
            Command("grant")
        )

        # /usage <user_id>
        self.dp.message.register(
            partial(
                AdminHandlers.cmd_usage,
                quota=self.quota,
                messages=self.messages,
                limits=self.limits
            ),
            Command("usage")
        )

        logger.info("🔧 Admin handlers registered: /grant, /usage")

    def _register_consultation_handlers(self):
        """Свободный текст и fallback"""
        self.dp.message.register(
            partial(ConsultationHandlers.handle_unknown_command, messages=self.messages),
            F.text.startswith("/")
        )

        self.dp.message.register(
            partial(ConsultationHandlers.handle_text, machine=self.machine),
            F.text
        )

        self.dp.message.register(
            partial(ConsultationHandlers.handle_non_text, messages=self.messages)
        )

        logger.info("💬 Consultation handlers registered")

    def _register_callback_handlers(self):
        """Регистрация callback handlers"""
        self.dp.callback_query.register(
            partial(CallbackHandlers.callback_toggle_advisor, machine=self.machine),
            F.data.startswith(ADVISOR_CALLBACK_PREFIX)
        )

        self.dp.callback_query.register(
            partial(CallbackHandlers.callback_unknown, messages=self.messages)
        )

        logger.info("🔘 Callback handlers registered")
