"""
Boardview - личный совет директоров в чате

Пользователь описывает ситуацию, модель предлагает пять советников,
пользователь выбирает троих, получает панель советов и может задать
несколько уточняющих вопросов.
"""

from .models import AdvicePanel, PersonaDescriptor, Session, Stage, UsageRecord, UserProfile
from .state_machine import SessionStateMachine
from .transitions import ConsultationLimits

__all__ = [
    "AdvicePanel",
    "PersonaDescriptor",
    "Session",
    "Stage",
    "UsageRecord",
    "UserProfile",
    "SessionStateMachine",
    "ConsultationLimits",
]

__version__ = "1.0.0"
