"""
SessionStateMachine - оркестратор консультации

Для каждого входящего события:
1. берёт per-user lock (KeyedLock)
2. перечитывает Session из хранилища
3. вызывает чистый переход из transitions, при необходимости генерацию
4. коммитит новую сессию через compare_and_set
5. исполняет эффекты через ChatChannel

Ошибки обрабатываются здесь же: GenerationFailure и непредвиденные
исключения сбрасывают сессию, InvalidStageEvent оставляет её как есть.
"""

from dataclasses import dataclass, replace
from typing import Iterable, Optional, Tuple

from core.exceptions import (
    BoardviewError,
    GenerationFailure,
    InvalidStageEvent,
    QuotaExceeded,
)
from core.logging import LoggerMixin

from . import transitions
from .channel import ChatChannel
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
from .generation.catalog import AdvisorCatalogService
from .generation.dialogue import DialogueContinuationService
from .generation.panel import AdvicePanelService
from .models import Session, UsageRecord, UserProfile
from .session_store import KeyedLock, SessionStore
from .transitions import ConsultationLimits, Step, Transition
from .usage_store import UsageStore


@dataclass
class EventContext:
    user_id: int
    callback_ref: Optional[str] = None
    acknowledged: bool = False

    @property
    def is_toggle(self) -> bool:
        return self.callback_ref is not None


class StaleSessionError(BoardviewError):
    def __init__(self, user_id: int, expected_version: int):
        super().__init__(
            message=f"Session of user {user_id} changed since version {expected_version}",
            code="STALE_SESSION",
        )


class SessionStateMachine(LoggerMixin):

    def __init__(self, catalog: AdvisorCatalogService, panel: AdvicePanelService,
                 dialogue: DialogueContinuationService, usage_store: UsageStore,
                 session_store: SessionStore, channel: ChatChannel,
                 limits: ConsultationLimits, locks: Optional[KeyedLock] = None):
        self.catalog = catalog
        self.panel = panel
        self.dialogue = dialogue
        self.usage_store = usage_store
        self.session_store = session_store
        self.channel = channel
        self.limits = limits
        self.locks = locks or KeyedLock()

    # ========================================================================
    # INBOUND EVENTS
    # ========================================================================

    async def handle_text(self, user_id: int, text: str,
                          profile: Optional[UserProfile] = None) -> None:
        ctx = EventContext(user_id)
        async with self.locks.hold(user_id):
            await self._guarded(ctx, self._on_text(ctx, text, profile))

    async def handle_toggle(self, user_id: int, persona_id: str, message_ref: Optional[int],
                            callback_ref: str, profile: Optional[UserProfile] = None) -> None:
        ctx = EventContext(user_id, callback_ref=callback_ref)
        async with self.locks.hold(user_id):
            await self._guarded(ctx, self._on_toggle(ctx, persona_id, message_ref, profile))

    async def restart(self, user_id: int, profile: Optional[UserProfile] = None) -> None:
        """/start: unconditional reset, usage counter untouched"""
        ctx = EventContext(user_id)
        async with self.locks.hold(user_id):
            await self._guarded(ctx, self._on_restart(ctx, profile))

    async def status(self, user_id: int) -> Tuple[Session, UsageRecord]:
        """Read-only snapshot for /status; does not wait for a running generation"""
        session = await self.session_store.get(user_id)
        usage = await self.usage_store.get(user_id)
        return session, usage

    # ========================================================================
    # HANDLERS
    # ========================================================================

    async def _on_text(self, ctx: EventContext, text: str,
                       profile: Optional[UserProfile]) -> None:
        session = await self.session_store.get(ctx.user_id)
        usage = await self._touch_usage(ctx.user_id, profile)

        try:
            transition = transitions.receive_text(session, text, usage, self.limits)
        except QuotaExceeded as e:
            self.logger.log_user_action("quota_rejected", ctx.user_id,
                                        used=e.used, limit=e.limit)
            await self._dispatch(ctx, transitions.quota_exhausted(session, e, usage).effects)
            return
        await self._dispatch(ctx, transition.effects)

        if transition.next_step == Step.CATALOG:
            situation = text.strip()
            personas = await self.catalog.select_or_generate(situation)
            transition = transitions.candidates_ready(session, situation, personas, self.limits)
            session = await self._commit(session, transition.session)

            message_ref = await self._dispatch(ctx, transition.effects)
            if message_ref is not None:
                session = await self._commit(
                    session, transitions.selection_prompt_sent(session, message_ref)
                )
            self._log_stage(session, "advisors_offered")

        elif transition.next_step == Step.DIALOGUE:
            question = text.strip()
            answer = await self.dialogue.continue_dialogue(
                session.dialogue_history, question, session.selected_personas()
            )
            transition = transitions.answer_ready(session, question, answer)
            session = await self._commit(session, transition.session)
            await self._dispatch(ctx, transition.effects)

            if transition.next_step == Step.COMPLETE:
                await self._complete(ctx, session)
            else:
                self._log_stage(session, "follow_up_answered")

    async def _on_toggle(self, ctx: EventContext, persona_id: str,
                         message_ref: Optional[int], profile: Optional[UserProfile]) -> None:
        session = await self.session_store.get(ctx.user_id)

        transition = transitions.toggle_advisor(session, persona_id, message_ref, self.limits)
        if transition.session != session:
            session = await self._commit(session, transition.session)
        await self._dispatch(ctx, transition.effects)

        if transition.next_step != Step.PANEL:
            return

        await self._touch_usage(ctx.user_id, profile)
        panel = await self.panel.generate_panel(
            session.situation_text or "", session.selected_personas()
        )
        transition = transitions.panel_ready(session, panel, self.limits)
        session = await self._commit(session, transition.session)
        await self._dispatch(ctx, transition.effects)
        self._log_stage(session, "dialogue_started",
                        advisors=",".join(session.selected_advisor_ids))

    async def _on_restart(self, ctx: EventContext, profile: Optional[UserProfile]) -> None:
        session = await self.session_store.get(ctx.user_id)
        usage = await self._touch_usage(ctx.user_id, profile)

        transition = transitions.start(session, usage, self.limits)
        await self.session_store.set(transition.session.bump())
        await self._dispatch(ctx, transition.effects)
        self.logger.log_user_action("restart", ctx.user_id)

    async def _complete(self, ctx: EventContext, session: Session) -> None:
        usage = await self.usage_store.get(ctx.user_id)
        usage.consultations_used += 1
        await self.usage_store.save(usage)

        transition = transitions.consultation_completed(session, usage, self.limits)
        await self._commit(session, transition.session)
        await self._dispatch(ctx, transition.effects)

        self.logger.log_user_action(
            "consultation_completed",
            ctx.user_id,
            consultations_used=usage.consultations_used,
            limit=usage.limit(self.limits.max_consultations),
        )

    # ========================================================================
    # ERROR HANDLING
    # ========================================================================

    async def _guarded(self, ctx: EventContext, handler) -> None:
        try:
            await handler

        except InvalidStageEvent as e:
            self.logger.info(f"⚠️ User {ctx.user_id}: {e.message}")
            if ctx.is_toggle and not ctx.acknowledged:
                await self._safe_dispatch(ctx, [SelectionAck(e.notice_key)])
            else:
                await self._safe_dispatch(ctx, [Notice(e.notice_key)])

        except GenerationFailure as e:
            self.logger.log_error(e.code, e.message, user_id=ctx.user_id,
                                  operation=e.operation)
            await self._recover(ctx, lambda current: transitions.generation_failed(current, e))

        except Exception as e:
            self.logger.log_error("UNEXPECTED_ERROR", str(e), user_id=ctx.user_id, exception=e)
            await self._recover(ctx, transitions.internal_error)

    async def _recover(self, ctx: EventContext, build) -> None:
        """Reset the session and tell the user; never raises"""
        effects: Tuple[Effect, ...] = (Notice("unexpected_error"),)
        try:
            current = await self.session_store.get(ctx.user_id)
            transition: Transition = build(current)
            await self.session_store.set(transition.session.bump())
            effects = transition.effects
        except Exception as e:
            self.logger.error(f"❌ Failed to reset session of user {ctx.user_id}: {e}",
                              exc_info=e)

        if ctx.is_toggle and not ctx.acknowledged:
            effects = (SelectionAck(),) + tuple(effects)
        await self._safe_dispatch(ctx, effects)

    async def _safe_dispatch(self, ctx: EventContext, effects: Iterable[Effect]) -> None:
        try:
            await self._dispatch(ctx, effects)
        except Exception as e:
            self.logger.error(f"❌ Failed to deliver error notice to user {ctx.user_id}: {e}",
                              exc_info=e)

    # ========================================================================
    # HELPERS
    # ========================================================================

    async def _commit(self, expected: Session, new: Session) -> Session:
        """compare_and_set against the version read at the start of the event"""
        committed = replace(new, version=expected.version + 1)
        if not await self.session_store.compare_and_set(committed, expected.version):
            raise StaleSessionError(expected.user_id, expected.version)
        return committed

    async def _touch_usage(self, user_id: int, profile: Optional[UserProfile]) -> UsageRecord:
        usage = await self.usage_store.get(user_id)
        if usage.apply_profile(profile):
            await self.usage_store.save(usage)
        return usage

    async def _dispatch(self, ctx: EventContext, effects: Iterable[Effect]) -> Optional[int]:
        """Execute effects in order; returns the ref of a sent selection prompt"""
        message_ref = None
        channel = self.channel
        for effect in effects:
            if isinstance(effect, Notice):
                await channel.send_notice(ctx.user_id, effect.key, effect.params)
            elif isinstance(effect, GeneratedText):
                await channel.send_text(ctx.user_id, effect.text)
            elif isinstance(effect, Typing):
                await channel.send_typing(ctx.user_id)
            elif isinstance(effect, SelectionPrompt):
                message_ref = await channel.send_selection_prompt(
                    ctx.user_id, effect.personas, effect.selected_ids
                )
            elif isinstance(effect, SelectionUpdate):
                await channel.update_selection_prompt(
                    ctx.user_id, effect.message_ref, effect.personas, effect.selected_ids
                )
            elif isinstance(effect, SelectionClosed):
                await channel.close_selection_prompt(
                    ctx.user_id, effect.message_ref, effect.personas
                )
            elif isinstance(effect, SelectionAck):
                if ctx.callback_ref is not None and not ctx.acknowledged:
                    ctx.acknowledged = True
                    await channel.acknowledge_selection(
                        ctx.callback_ref, effect.warning_key, effect.params
                    )
            elif isinstance(effect, AdvicePanelMessage):
                await channel.send_advice_panel(ctx.user_id, effect.personas, effect.panel)
            elif isinstance(effect, OperatorAlert):
                await channel.notify_operator(effect.key, effect.params)
            else:
                raise TypeError(f"Unknown effect: {effect!r}")
        return message_ref

    def _log_stage(self, session: Session, action: str, **kwargs) -> None:
        self.logger.log_user_action(
            action,
            session.user_id,
            stage=session.stage.value,
            consultation_id=session.consultation_id,
            **kwargs,
        )
