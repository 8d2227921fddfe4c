"""
Response models for structured LLM output

Модели намеренно мягкие (id и имена опциональны, лишние поля игнорируются):
строгая проверка соответствия запросу делается в сервисах, где ошибка
превращается в GenerationFailure.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LenientModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class GeneratedPersona(LenientModel):
    id: Optional[str] = None
    name: str
    description: str = Field(default="", alias="short_description")
    style: str = ""
    principles: str = ""
    tone: str = ""

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("advisor name is empty")
        return value.strip()


class CatalogResponse(LenientModel):
    advisors: List[GeneratedPersona]


class PoolSelectionResponse(LenientModel):
    advisor_ids: List[str]


class GeneratedAdvice(LenientModel):
    advisor_id: Optional[str] = None
    advisor_name: Optional[str] = None
    advice: str = ""


class PanelResponse(LenientModel):
    advice: List[GeneratedAdvice]
    synthesis: str = ""


class DialogueResponse(LenientModel):
    answer: str = ""
