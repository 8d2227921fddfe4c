"""
Pure consultation transitions

Каждая функция принимает текущую Session (и результат внешнего вызова, если
он уже получен) и возвращает Transition: новую сессию, список эффектов и,
при необходимости, следующий шаг генерации, который выполнит оркестратор.
Никакого I/O здесь нет.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence, Tuple
from uuid import uuid4

from core.exceptions import GenerationFailure, InvalidStageEvent, QuotaExceeded

from .effects import (
    AdvicePanelMessage,
    Effect,
    GeneratedText,
    Notice,
    OperatorAlert,
    SelectionAck,
    SelectionClosed,
    SelectionPrompt,
    SelectionUpdate,
    Typing,
)
from .models import (
    AdvicePanel,
    DialogueTurn,
    PersonaDescriptor,
    Role,
    Session,
    Stage,
    UsageRecord,
)


@dataclass(frozen=True)
class ConsultationLimits:
    candidate_count: int = 5
    required_advisors: int = 3
    follow_up_budget: int = 3
    max_consultations: int = 3
    min_situation_length: int = 10

    @classmethod
    def from_config(cls, consultation) -> "ConsultationLimits":
        return cls(
            candidate_count=consultation.candidate_count,
            required_advisors=consultation.required_advisors,
            follow_up_budget=consultation.follow_up_budget,
            max_consultations=consultation.max_consultations,
            min_situation_length=consultation.min_situation_length,
        )


class Step(str, Enum):
    """External call the orchestrator has to make next"""
    CATALOG = "catalog"
    PANEL = "panel"
    DIALOGUE = "dialogue"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Transition:
    session: Session
    effects: Tuple[Effect, ...] = ()
    next_step: Optional[Step] = None


def reset(session: Session) -> Session:
    """Fresh AwaitingSituation session; version is kept for compare-and-set"""
    return Session(user_id=session.user_id, version=session.version)


def start(session: Session, usage: UsageRecord, limits: ConsultationLimits) -> Transition:
    return Transition(reset(session), (Notice("welcome", {
        "name": usage.first_name or usage.display_name,
        "remaining": usage.remaining(limits.max_consultations),
    }),))


# ============================================================================
# SITUATION INTAKE
# ============================================================================

def receive_text(session: Session, text: str, usage: UsageRecord,
                 limits: ConsultationLimits) -> Transition:
    """Dispatch free text by stage"""
    if session.stage == Stage.AWAITING_SITUATION:
        return receive_situation(session, text, usage, limits)
    if session.stage == Stage.IN_DIALOGUE:
        return receive_question(session, text)
    raise InvalidStageEvent(session.stage.value, "text", "select_advisors_first")


def receive_situation(session: Session, text: str, usage: UsageRecord,
                      limits: ConsultationLimits) -> Transition:
    if session.stage != Stage.AWAITING_SITUATION:
        raise InvalidStageEvent(session.stage.value, "situation", "select_advisors_first")

    if usage.is_exhausted(limits.max_consultations):
        raise QuotaExceeded(
            usage.user_id,
            usage.consultations_used,
            usage.limit(limits.max_consultations),
        )

    situation = text.strip()
    if len(situation) < limits.min_situation_length:
        return Transition(
            session,
            (Notice("situation_too_short", {"min_length": limits.min_situation_length}),),
        )

    return Transition(session, (Typing(),), next_step=Step.CATALOG)


def candidates_ready(session: Session, situation: str,
                     personas: Sequence[PersonaDescriptor],
                     limits: ConsultationLimits) -> Transition:
    """Enter AwaitingAdvisorSelection with a complete candidate set"""
    personas = tuple(personas)
    if len(personas) != limits.candidate_count:
        raise GenerationFailure(
            "catalog",
            f"expected {limits.candidate_count} advisors, got {len(personas)}",
        )
    if len({persona.id for persona in personas}) != len(personas):
        raise GenerationFailure("catalog", "duplicate advisor ids")

    new_session = Session(
        user_id=session.user_id,
        stage=Stage.AWAITING_ADVISOR_SELECTION,
        consultation_id=uuid4().hex,
        situation_text=situation.strip(),
        candidate_advisors=personas,
        version=session.version,
    )
    return Transition(new_session, (SelectionPrompt(personas, ()),))


def selection_prompt_sent(session: Session, message_ref: int) -> Session:
    return replace(session, selection_message_ref=message_ref)


def quota_exhausted(session: Session, error: QuotaExceeded,
                    usage: UsageRecord) -> Transition:
    params = {"used": error.used, "limit": error.limit}
    return Transition(session, (
        Notice("quota_exhausted", params),
        OperatorAlert("operator_quota_exhausted", {
            "user_id": usage.user_id,
            "name": usage.display_name,
            "username": usage.username,
            **params,
        }),
    ))


# ============================================================================
# ADVISOR SELECTION
# ============================================================================

def toggle_advisor(session: Session, persona_id: str, message_ref: Optional[int],
                   limits: ConsultationLimits) -> Transition:
    """
    Select or deselect one candidate

    Нажатие на выбранного советника снимает выбор. Когда выбрано ровно
    required_advisors, клавиатура закрывается и запрашивается генерация
    панели; selection_message_ref сбрасывается, так что повторное нажатие
    той же кнопки уже не считается действительным.
    """
    if session.stage != Stage.AWAITING_ADVISOR_SELECTION:
        raise InvalidStageEvent(session.stage.value, "toggle", "selection_expired")

    live_ref = session.selection_message_ref
    if live_ref is None or (message_ref is not None and message_ref != live_ref):
        raise InvalidStageEvent(session.stage.value, "toggle", "selection_expired")

    if persona_id not in session.candidate_ids:
        raise InvalidStageEvent(session.stage.value, "toggle", "unknown_advisor")

    selected = session.selected_advisor_ids
    if persona_id in selected:
        selected = tuple(pid for pid in selected if pid != persona_id)
    elif len(selected) >= limits.required_advisors:
        return Transition(session, (
            SelectionAck("selection_limit", {"required": limits.required_advisors}),
        ))
    else:
        selected = selected + (persona_id,)

    if len(selected) == limits.required_advisors:
        new_session = replace(
            session,
            selected_advisor_ids=selected,
            selection_message_ref=None,
        )
        return Transition(
            new_session,
            (
                SelectionAck(),
                SelectionClosed(live_ref, new_session.selected_personas()),
                Typing(),
            ),
            next_step=Step.PANEL,
        )

    new_session = replace(session, selected_advisor_ids=selected)
    return Transition(new_session, (
        SelectionAck(),
        SelectionUpdate(live_ref, session.candidate_advisors, selected),
    ))


def panel_ready(session: Session, panel: AdvicePanel,
                limits: ConsultationLimits) -> Transition:
    """Seed the dialogue history and enter InDialogue"""
    personas = session.selected_personas()
    if len(personas) != limits.required_advisors:
        raise InvalidStageEvent(session.stage.value, "panel", "selection_expired")

    history = [
        DialogueTurn(Role.USER, session.situation_text or ""),
        DialogueTurn(Role.ASSISTANT, panel.synthesis),
    ]
    for persona in personas:
        history.append(DialogueTurn(
            Role.ASSISTANT,
            f"{persona.name}: {panel.text_for(persona.id) or ''}",
        ))

    new_session = replace(
        session,
        stage=Stage.IN_DIALOGUE,
        dialogue_history=tuple(history),
        follow_ups_remaining=limits.follow_up_budget,
        selection_message_ref=None,
    )
    return Transition(new_session, (
        AdvicePanelMessage(personas, panel),
        Notice("dialogue_intro", {"count": limits.follow_up_budget}),
    ))


# ============================================================================
# FOLLOW-UP DIALOGUE
# ============================================================================

def receive_question(session: Session, text: str) -> Transition:
    if session.stage != Stage.IN_DIALOGUE or session.follow_ups_remaining <= 0:
        raise InvalidStageEvent(session.stage.value, "question", "unexpected_error")
    return Transition(session, (Typing(),), next_step=Step.DIALOGUE)


def answer_ready(session: Session, question: str, answer: str) -> Transition:
    """Append the exchange and spend one follow-up"""
    remaining = session.follow_ups_remaining - 1
    new_session = replace(
        session,
        dialogue_history=session.dialogue_history + (
            DialogueTurn(Role.USER, question),
            DialogueTurn(Role.ASSISTANT, answer),
        ),
        follow_ups_remaining=remaining,
    )

    if remaining > 0:
        return Transition(new_session, (
            GeneratedText(answer),
            Notice("follow_ups_left", {"count": remaining}),
        ))
    return Transition(new_session, (GeneratedText(answer),), next_step=Step.COMPLETE)


def consultation_completed(session: Session, usage: UsageRecord,
                           limits: ConsultationLimits) -> Transition:
    """
    Follow-up budget is spent; usage has already been incremented

    При достижении лимита пользователь получает уведомление об исчерпании,
    а оператор алерт. В обоих случаях сессия сбрасывается.
    """
    limit = usage.limit(limits.max_consultations)
    if usage.consultations_used >= limit:
        params = {"used": usage.consultations_used, "limit": limit}
        effects: Tuple[Effect, ...] = (
            Notice("quota_exhausted", params),
            OperatorAlert("operator_quota_exhausted", {
                "user_id": usage.user_id,
                "name": usage.display_name,
                "username": usage.username,
                **params,
            }),
        )
    else:
        effects = (Notice("consultation_complete", {
            "remaining": usage.remaining(limits.max_consultations),
        }),)
    return Transition(reset(session), effects)


# ============================================================================
# FAILURES
# ============================================================================

FAILURE_NOTICES = {
    "catalog": "catalog_failed",
    "panel": "advice_failed",
    "dialogue": "dialogue_failed",
}


def generation_failed(session: Session, error: GenerationFailure) -> Transition:
    key = FAILURE_NOTICES.get(error.operation, "unexpected_error")
    return Transition(reset(session), (Notice(key),))


def internal_error(session: Session) -> Transition:
    return Transition(reset(session), (Notice("unexpected_error"),))
