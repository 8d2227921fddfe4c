"""
Outbound effects produced by session transitions

Переходы не общаются с транспортом напрямую: они возвращают список эффектов,
а SessionStateMachine исполняет их через ChatChannel.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from .models import AdvicePanel, PersonaDescriptor


@dataclass(frozen=True)
class Notice:
    """Templated informational message (key from the message catalog)"""
    key: str
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GeneratedText:
    """Free text produced by the generation collaborator"""
    text: str


@dataclass(frozen=True)
class Typing:
    pass


@dataclass(frozen=True)
class SelectionPrompt:
    personas: Tuple[PersonaDescriptor, ...]
    selected_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SelectionUpdate:
    message_ref: int
    personas: Tuple[PersonaDescriptor, ...]
    selected_ids: Tuple[str, ...]


@dataclass(frozen=True)
class SelectionClosed:
    """Selection is complete; the keyboard is replaced with a progress note"""
    message_ref: int
    personas: Tuple[PersonaDescriptor, ...] = ()


@dataclass(frozen=True)
class SelectionAck:
    """Answer to a button press; warning_key makes it an alert"""
    warning_key: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AdvicePanelMessage:
    personas: Tuple[PersonaDescriptor, ...]
    panel: AdvicePanel


@dataclass(frozen=True)
class OperatorAlert:
    """Fire-and-forget notification for the operator"""
    key: str
    params: Dict[str, Any] = field(default_factory=dict)


Effect = Union[
    Notice,
    GeneratedText,
    Typing,
    SelectionPrompt,
    SelectionUpdate,
    SelectionClosed,
    SelectionAck,
    AdvicePanelMessage,
    OperatorAlert,
]
