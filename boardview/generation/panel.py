"""
Advice panel: one advice per selected persona plus a synthesis

Модель не обязана возвращать id в точности. Запись сопоставляется с
запрошенной персоной по id, а если id нет, по точному совпадению имени
(без учёта регистра и пробелов). Всё остальное считается GenerationFailure.
"""

from typing import Dict, Sequence

from core.exceptions import GenerationFailure
from core.logging import LoggerMixin

from ..models import AdvicePanel, PersonaAdvice, PersonaDescriptor
from .llm_client import StructuredGenerator
from .prompts import render_panel_prompt
from .schemas import GeneratedAdvice, PanelResponse


def normalize_name(name: str) -> str:
    return " ".join(name.casefold().split())


class AdvicePanelService(LoggerMixin):

    operation = "panel"

    def __init__(self, generator: StructuredGenerator):
        self.generator = generator

    async def generate_panel(self, situation: str,
                             personas: Sequence[PersonaDescriptor]) -> AdvicePanel:
        response = await self.generator.generate_structured(
            render_panel_prompt(situation, personas),
            PanelResponse,
            self.operation,
        )
        return self.match_panel(response, personas)

    def match_panel(self, response: PanelResponse,
                    personas: Sequence[PersonaDescriptor]) -> AdvicePanel:
        """Map returned entries back to the requested personas"""
        by_id = {persona.id: persona for persona in personas}
        by_name = {normalize_name(persona.name): persona for persona in personas}
        matched: Dict[str, str] = {}

        for entry in response.advice:
            persona = self._resolve(entry, by_id, by_name)
            if persona.id in matched:
                raise GenerationFailure(self.operation, f"duplicate advice for '{persona.id}'")
            text = entry.advice.strip()
            if not text:
                raise GenerationFailure(self.operation, f"empty advice for '{persona.id}'")
            matched[persona.id] = text

        missing = [persona.id for persona in personas if persona.id not in matched]
        if missing:
            raise GenerationFailure(self.operation, f"no advice for: {', '.join(missing)}")

        synthesis = response.synthesis.strip()
        if not synthesis:
            raise GenerationFailure(self.operation, "empty synthesis")

        return AdvicePanel(
            advice=tuple(PersonaAdvice(persona.id, matched[persona.id]) for persona in personas),
            synthesis=synthesis,
        )

    def _resolve(self, entry: GeneratedAdvice, by_id: Dict[str, PersonaDescriptor],
                 by_name: Dict[str, PersonaDescriptor]) -> PersonaDescriptor:
        advisor_id = (entry.advisor_id or "").strip()
        if advisor_id:
            if advisor_id not in by_id:
                raise GenerationFailure(self.operation, f"unknown advisor id '{advisor_id}'")
            return by_id[advisor_id]

        name = normalize_name(entry.advisor_name or "")
        if not name:
            raise GenerationFailure(self.operation, "advice entry without id and name")
        persona = by_name.get(name)
        if persona is None:
            raise GenerationFailure(self.operation, f"unknown advisor name '{entry.advisor_name}'")

        self.logger.warning(f"⚠️ Advice matched by name: '{entry.advisor_name}' -> {persona.id}")
        return persona
