"""
Advisor catalog: five candidate personas for a situation

Два источника (ADVISOR_SOURCE):
- generate: модель придумывает советников сама
- pool: модель выбирает id из фиксированного пула data/advisor_pool.json
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from core.exceptions import GenerationFailure
from core.logging import LoggerMixin

from ..models import PersonaDescriptor
from .llm_client import StructuredGenerator
from .prompts import render_catalog_prompt, render_pool_prompt
from .schemas import CatalogResponse, GeneratedPersona, PoolSelectionResponse

MAX_ID_LENGTH = 32
DEFAULT_POOL_PATH = Path(__file__).parent / "data" / "advisor_pool.json"

_SLUG_RE = re.compile(r"[^a-z0-9_-]+")


def slugify(value: str) -> str:
    """Callback-safe id: lowercase latin, digits, '_' and '-'"""
    return _SLUG_RE.sub("", value.strip().lower().replace(" ", ""))[:MAX_ID_LENGTH]


@dataclass(frozen=True)
class AdvisorPool:
    personas: Tuple[PersonaDescriptor, ...]
    default_panel: Tuple[str, ...] = ()

    def get(self, persona_id: str) -> Optional[PersonaDescriptor]:
        for persona in self.personas:
            if persona.id == persona_id:
                return persona
        return None

    def default_trio(self) -> Tuple[PersonaDescriptor, ...]:
        return tuple(p for p in (self.get(pid) for pid in self.default_panel) if p)


def load_advisor_pool(path: Optional[Path] = None) -> AdvisorPool:
    with open(path or DEFAULT_POOL_PATH, "r", encoding="utf-8") as f:
        data = json.load(f)
    return AdvisorPool(
        personas=tuple(PersonaDescriptor.from_dict(item) for item in data["advisors"]),
        default_panel=tuple(data.get("default_panel", [])),
    )


class AdvisorCatalogService(LoggerMixin):
    """select_or_generate(situation) -> exactly candidate_count personas"""

    operation = "catalog"

    def __init__(self, generator: StructuredGenerator, candidate_count: int = 5,
                 pool: Optional[AdvisorPool] = None):
        self.generator = generator
        self.candidate_count = candidate_count
        self.pool = pool

    async def select_or_generate(self, situation: str) -> Tuple[PersonaDescriptor, ...]:
        if self.pool is not None:
            return await self._select_from_pool(situation)
        return await self._generate(situation)

    async def _generate(self, situation: str) -> Tuple[PersonaDescriptor, ...]:
        response = await self.generator.generate_structured(
            render_catalog_prompt(situation, self.candidate_count),
            CatalogResponse,
            self.operation,
        )
        advisors = self._cap(response.advisors)

        personas = [self._to_persona(item, index) for index, item in enumerate(advisors, 1)]
        ids = [persona.id for persona in personas]
        if len(set(ids)) != len(ids):
            raise GenerationFailure(self.operation, f"duplicate advisor ids: {ids}")

        self.logger.info(f"🎭 Generated advisors: {', '.join(ids)}")
        return tuple(personas)

    async def _select_from_pool(self, situation: str) -> Tuple[PersonaDescriptor, ...]:
        response = await self.generator.generate_structured(
            render_pool_prompt(situation, self.pool.personas, self.candidate_count),
            PoolSelectionResponse,
            self.operation,
        )
        ids = self._cap([item.strip().lower() for item in response.advisor_ids])

        if len(set(ids)) != len(ids):
            raise GenerationFailure(self.operation, f"duplicate advisor ids: {ids}")

        personas = []
        for persona_id in ids:
            persona = self.pool.get(persona_id)
            if persona is None:
                raise GenerationFailure(self.operation, f"advisor '{persona_id}' is not in the pool")
            personas.append(persona)

        self.logger.info(f"🎭 Selected advisors from pool: {', '.join(ids)}")
        return tuple(personas)

    def _cap(self, items: Sequence) -> List:
        if len(items) < self.candidate_count:
            raise GenerationFailure(
                self.operation,
                f"expected {self.candidate_count} advisors, got {len(items)}",
            )
        if len(items) > self.candidate_count:
            self.logger.warning(
                f"⚠️ Model returned {len(items)} advisors, keeping first {self.candidate_count}"
            )
        return list(items[:self.candidate_count])

    @staticmethod
    def _to_persona(item: GeneratedPersona, index: int) -> PersonaDescriptor:
        persona_id = slugify(item.id or "") or slugify(item.name) or f"advisor{index}"
        return PersonaDescriptor(
            id=persona_id,
            name=item.name,
            short_description=item.description.strip(),
            style=item.style.strip(),
            principles=item.principles.strip(),
            tone=item.tone.strip(),
        )
