"""Follow-up answers in the voice of the board"""

from typing import Sequence

from core.exceptions import GenerationFailure
from core.logging import LoggerMixin

from ..models import DialogueTurn, PersonaDescriptor
from .llm_client import StructuredGenerator
from .prompts import render_dialogue_prompt
from .schemas import DialogueResponse


class DialogueContinuationService(LoggerMixin):

    operation = "dialogue"

    def __init__(self, generator: StructuredGenerator):
        self.generator = generator

    async def continue_dialogue(self, history: Sequence[DialogueTurn], question: str,
                                personas: Sequence[PersonaDescriptor] = ()) -> str:
        response = await self.generator.generate_structured(
            render_dialogue_prompt(history, question, personas),
            DialogueResponse,
            self.operation,
        )
        answer = response.answer.strip()
        if not answer:
            raise GenerationFailure(self.operation, "empty answer")
        return answer
