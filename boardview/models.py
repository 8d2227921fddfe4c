"""
Domain models: session, personas, advice panel, usage record

Session и его части неизменяемы: переходы создают новый объект через
dataclasses.replace, а хранилище сессий сохраняет его целиком.
"""

from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple


class Stage(str, Enum):
    """Стадии консультации"""
    AWAITING_SITUATION = "awaiting_situation"
    AWAITING_ADVISOR_SELECTION = "awaiting_advisor_selection"
    IN_DIALOGUE = "in_dialogue"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class PersonaDescriptor:
    """Advisor persona offered to the user"""
    id: str
    name: str
    short_description: str
    style: str = ""
    principles: str = ""
    tone: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersonaDescriptor":
        return cls(
            id=data["id"],
            name=data["name"],
            short_description=data.get("short_description", ""),
            style=data.get("style", ""),
            principles=data.get("principles", ""),
            tone=data.get("tone", ""),
        )


@dataclass(frozen=True)
class DialogueTurn:
    role: Role
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role.value, "text": self.text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DialogueTurn":
        return cls(role=Role(data["role"]), text=data["text"])


@dataclass(frozen=True)
class PersonaAdvice:
    persona_id: str
    text: str


@dataclass(frozen=True)
class AdvicePanel:
    """Per-persona advice plus the cross-persona synthesis"""
    advice: Tuple[PersonaAdvice, ...]
    synthesis: str

    def text_for(self, persona_id: str) -> Optional[str]:
        for item in self.advice:
            if item.persona_id == persona_id:
                return item.text
        return None


@dataclass(frozen=True)
class Session:
    """Per-user consultation state"""
    user_id: int
    stage: Stage = Stage.AWAITING_SITUATION
    consultation_id: Optional[str] = None
    situation_text: Optional[str] = None
    candidate_advisors: Tuple[PersonaDescriptor, ...] = ()
    selected_advisor_ids: Tuple[str, ...] = ()
    selection_message_ref: Optional[int] = None
    dialogue_history: Tuple[DialogueTurn, ...] = ()
    follow_ups_remaining: int = 0
    version: int = 0

    @property
    def candidate_ids(self) -> Tuple[str, ...]:
        return tuple(persona.id for persona in self.candidate_advisors)

    def selected_personas(self) -> Tuple[PersonaDescriptor, ...]:
        """Selected personas in selection order"""
        by_id = {persona.id: persona for persona in self.candidate_advisors}
        return tuple(by_id[pid] for pid in self.selected_advisor_ids if pid in by_id)

    def persona(self, persona_id: str) -> Optional[PersonaDescriptor]:
        for persona in self.candidate_advisors:
            if persona.id == persona_id:
                return persona
        return None

    def bump(self) -> "Session":
        return replace(self, version=self.version + 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "stage": self.stage.value,
            "consultation_id": self.consultation_id,
            "situation_text": self.situation_text,
            "candidate_advisors": [p.to_dict() for p in self.candidate_advisors],
            "selected_advisor_ids": list(self.selected_advisor_ids),
            "selection_message_ref": self.selection_message_ref,
            "dialogue_history": [t.to_dict() for t in self.dialogue_history],
            "follow_ups_remaining": self.follow_ups_remaining,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            user_id=int(data["user_id"]),
            stage=Stage(data.get("stage", Stage.AWAITING_SITUATION.value)),
            consultation_id=data.get("consultation_id"),
            situation_text=data.get("situation_text"),
            candidate_advisors=tuple(
                PersonaDescriptor.from_dict(p) for p in data.get("candidate_advisors", [])
            ),
            selected_advisor_ids=tuple(data.get("selected_advisor_ids", [])),
            selection_message_ref=data.get("selection_message_ref"),
            dialogue_history=tuple(
                DialogueTurn.from_dict(t) for t in data.get("dialogue_history", [])
            ),
            follow_ups_remaining=int(data.get("follow_ups_remaining", 0)),
            version=int(data.get("version", 0)),
        )


@dataclass
class UserProfile:
    """Display fields taken from the messaging platform"""
    first_name: str = ""
    last_name: str = ""
    username: str = ""

    @property
    def display_name(self) -> str:
        full = f"{self.first_name} {self.last_name}".strip()
        return full or self.username or ""


@dataclass
class UsageRecord:
    """Persisted consultation counter of one user"""
    user_id: int
    consultations_used: int = 0
    extra_quota: int = 0
    first_name: str = ""
    last_name: str = ""
    username: str = ""

    def limit(self, max_consultations: int) -> int:
        return max_consultations + self.extra_quota

    def remaining(self, max_consultations: int) -> int:
        return max(0, self.limit(max_consultations) - self.consultations_used)

    def is_exhausted(self, max_consultations: int) -> bool:
        return self.consultations_used >= self.limit(max_consultations)

    def apply_profile(self, profile: Optional[UserProfile]) -> bool:
        """Copy display fields; returns True if anything changed"""
        if profile is None:
            return False
        changed = (
            self.first_name != profile.first_name
            or self.last_name != profile.last_name
            or self.username != profile.username
        )
        if changed:
            self.first_name = profile.first_name
            self.last_name = profile.last_name
            self.username = profile.username
        return changed

    @property
    def display_name(self) -> str:
        return UserProfile(self.first_name, self.last_name, self.username).display_name

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageRecord":
        return cls(
            user_id=int(data["user_id"]),
            consultations_used=int(data.get("consultations_used", 0)),
            extra_quota=int(data.get("extra_quota", 0)),
            first_name=data.get("first_name", "") or "",
            last_name=data.get("last_name", "") or "",
            username=data.get("username", "") or "",
        )


def persona_names(personas: Sequence[PersonaDescriptor]) -> str:
    return ", ".join(persona.name for persona in personas)
