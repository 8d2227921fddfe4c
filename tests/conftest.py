"""
Shared fixtures: fake chat channel, fake generation services, personas
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from boardview.channel import ChatChannel
from boardview.generation.llm_client import StructuredGenerator
from boardview.models import AdvicePanel, PersonaAdvice, PersonaDescriptor, UsageRecord
from boardview.session_store import InMemorySessionStore
from boardview.state_machine import SessionStateMachine
from boardview.transitions import ConsultationLimits


def make_personas(count: int = 5) -> Tuple[PersonaDescriptor, ...]:
    return tuple(
        PersonaDescriptor(
            id=f"advisor{i}",
            name=f"Advisor {i}",
            short_description=f"эксперт номер {i}",
            style="прямой",
            principles="честность",
            tone="спокойный",
        )
        for i in range(1, count + 1)
    )


def make_panel(personas: Sequence[PersonaDescriptor]) -> AdvicePanel:
    return AdvicePanel(
        advice=tuple(PersonaAdvice(p.id, f"Совет от {p.name}") for p in personas),
        synthesis="Общий план: начните с малого",
    )


class FakeChannel(ChatChannel):
    """Records every outbound call as (method, args...)"""

    def __init__(self):
        self.calls: List[Tuple[Any, ...]] = []
        self._next_ref = 100
        self.fail_on: Optional[str] = None

    def _record(self, *call):
        if self.fail_on == call[0]:
            raise RuntimeError(f"{call[0]} failed")
        self.calls.append(call)

    def named(self, method: str) -> List[Tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == method]

    def notice_keys(self) -> List[str]:
        return [call[2] for call in self.named("send_notice")]

    async def send_notice(self, user_id, key, params=None):
        self._record("send_notice", user_id, key, dict(params or {}))

    async def send_text(self, user_id, text):
        self._record("send_text", user_id, text)

    async def send_typing(self, user_id):
        self._record("send_typing", user_id)

    async def send_selection_prompt(self, user_id, personas, selected_ids):
        self._record("send_selection_prompt", user_id, tuple(personas), tuple(selected_ids))
        self._next_ref += 1
        return self._next_ref

    async def update_selection_prompt(self, user_id, message_ref, personas, selected_ids):
        self._record("update_selection_prompt", user_id, message_ref, tuple(selected_ids))

    async def close_selection_prompt(self, user_id, message_ref, personas):
        self._record("close_selection_prompt", user_id, message_ref, tuple(personas))

    async def send_advice_panel(self, user_id, personas, panel):
        self._record("send_advice_panel", user_id, tuple(personas), panel)

    async def acknowledge_selection(self, callback_ref, warning_key=None, params=None):
        self._record("acknowledge_selection", callback_ref, warning_key, dict(params or {}))

    async def notify_operator(self, key, params=None):
        self._record("notify_operator", key, dict(params or {}))


class FakeCatalog:
    def __init__(self, personas: Sequence[PersonaDescriptor] = (), error: Exception = None):
        self.personas = tuple(personas)
        self.error = error
        self.calls: List[str] = []

    async def select_or_generate(self, situation: str):
        self.calls.append(situation)
        if self.error:
            raise self.error
        return self.personas


class FakePanel:
    def __init__(self, error: Exception = None):
        self.error = error
        self.calls: List[Tuple[str, Tuple[str, ...]]] = []

    async def generate_panel(self, situation, personas):
        self.calls.append((situation, tuple(p.id for p in personas)))
        if self.error:
            raise self.error
        return make_panel(personas)


class FakeDialogue:
    def __init__(self, error: Exception = None):
        self.error = error
        self.calls: List[Tuple[int, str, Tuple[str, ...]]] = []

    async def continue_dialogue(self, history, question, personas=()):
        self.calls.append((len(history), question, tuple(p.id for p in personas)))
        if self.error:
            raise self.error
        return f"Ответ на: {question}"


class FakeUsageStore:
    """In-memory UsageStore"""

    def __init__(self):
        self.records: Dict[int, Dict[str, Any]] = {}
        self.saves = 0

    async def get(self, user_id):
        data = self.records.get(user_id)
        return UsageRecord.from_dict(data) if data else UsageRecord(user_id=user_id)

    async def save(self, record):
        self.saves += 1
        self.records[record.user_id] = record.to_dict()

    async def close(self):
        pass


class FakeStructuredGenerator(StructuredGenerator):
    """Returns queued payloads validated against the requested schema"""

    def __init__(self, *payloads):
        self.payloads = list(payloads)
        self.prompts: List[Tuple[str, str]] = []

    async def generate_structured(self, prompt, schema, operation, system_prompt=None):
        self.prompts.append((operation, prompt))
        payload = self.payloads.pop(0)
        if isinstance(payload, Exception):
            raise payload
        return schema.model_validate(payload)


@pytest.fixture
def personas():
    return make_personas()


@pytest.fixture
def limits():
    return ConsultationLimits()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def usage_store():
    return FakeUsageStore()


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def catalog(personas):
    return FakeCatalog(personas)


@pytest.fixture
def panel_service():
    return FakePanel()


@pytest.fixture
def dialogue_service():
    return FakeDialogue()


@pytest.fixture
def machine(catalog, panel_service, dialogue_service, usage_store, session_store, channel, limits):
    return SessionStateMachine(
        catalog=catalog,
        panel=panel_service,
        dialogue=dialogue_service,
        usage_store=usage_store,
        session_store=session_store,
        channel=channel,
        limits=limits,
    )


@pytest.fixture
def build_personas():
    return make_personas


@pytest.fixture
def build_panel():
    return make_panel


@pytest.fixture
def fake_generator():
    """FakeStructuredGenerator class: fake_generator(payload, ...)"""
    return FakeStructuredGenerator
