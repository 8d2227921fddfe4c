"""
Outbound chat channel used by SessionStateMachine

Реализация для Telegram: telegram_interface.transport.TelegramChatChannel.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

from .models import AdvicePanel, PersonaDescriptor


class ChatChannel(ABC):

    @abstractmethod
    async def send_notice(self, user_id: int, key: str,
                          params: Optional[Dict[str, Any]] = None) -> None:
        """Send a templated message from the message catalog"""

    @abstractmethod
    async def send_text(self, user_id: int, text: str) -> None:
        """Send generated free text"""

    @abstractmethod
    async def send_typing(self, user_id: int) -> None:
        ...

    @abstractmethod
    async def send_selection_prompt(self, user_id: int, personas: Sequence[PersonaDescriptor],
                                    selected_ids: Sequence[str]) -> int:
        """Send the advisor keyboard; returns its message ref"""

    @abstractmethod
    async def update_selection_prompt(self, user_id: int, message_ref: int,
                                      personas: Sequence[PersonaDescriptor],
                                      selected_ids: Sequence[str]) -> None:
        ...

    @abstractmethod
    async def close_selection_prompt(self, user_id: int, message_ref: int,
                                     personas: Sequence[PersonaDescriptor]) -> None:
        """Replace the keyboard with the chosen board"""

    @abstractmethod
    async def send_advice_panel(self, user_id: int, personas: Sequence[PersonaDescriptor],
                                panel: AdvicePanel) -> None:
        ...

    @abstractmethod
    async def acknowledge_selection(self, callback_ref: str, warning_key: Optional[str] = None,
                                    params: Optional[Dict[str, Any]] = None) -> None:
        """Answer a button press, as an alert when warning_key is set"""

    @abstractmethod
    async def notify_operator(self, key: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Fire-and-forget message to the operators"""
