"""
Centralized Configuration Management for Boardview
"""
import os
from typing import Dict, Any, List, Optional
from pathlib import Path
from dataclasses import dataclass, field

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _int_list(raw: str) -> List[int]:
    return [int(item.strip()) for item in raw.split(",") if item.strip()]


@dataclass
class TelegramConfig:
    """Telegram bot configuration"""
    bot_token: str
    operator_ids: List[int] = field(default_factory=list)


@dataclass
class AIConfig:
    """AI configuration"""
    provider: str = "openai"
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    default_model: str = "gpt-4o-mini"
    max_tokens: int = 2000
    temperature: float = 0.7
    timeout_seconds: float = 60.0
    max_attempts: int = 3


@dataclass
class ConsultationConfig:
    """Consultation limits and advisor sourcing"""
    candidate_count: int = 5
    required_advisors: int = 3
    follow_up_budget: int = 3
    max_consultations: int = 3
    min_situation_length: int = 10
    advisor_source: str = "generate"  # generate | pool
    usage_db_path: Path = Path("db.json")


@dataclass
class RedisConfig:
    """Redis configuration (sessions, usage counters, instance lock)"""
    url: Optional[str] = None
    lock_key: str = "boardview:bot:instance_lock"
    lock_ttl: int = 30  # seconds
    session_ttl: int = 24 * 60 * 60
    key_prefix: str = "boardview"

    @property
    def enabled(self) -> bool:
        return bool(self.url)


@dataclass
class WebConfig:
    """HTTP advice endpoint"""
    host: str = "0.0.0.0"
    port: int = 8000


class Config:
    """Main configuration class"""

    def __init__(self):
        # Telegram bot
        self.telegram = TelegramConfig(
            bot_token=os.getenv("BOT_TOKEN", ""),
            operator_ids=_int_list(os.getenv("OPERATOR_IDS", ""))
        )

        # AI configuration
        self.ai = AIConfig(
            provider=os.getenv("AI_PROVIDER", "openai").lower(),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            default_model=os.getenv("DEFAULT_AI_MODEL", "gpt-4o-mini"),
            max_tokens=int(os.getenv("AI_MAX_TOKENS", 2000)),
            temperature=float(os.getenv("AI_TEMPERATURE", 0.7)),
            timeout_seconds=float(os.getenv("AI_TIMEOUT_SECONDS", 60)),
            max_attempts=int(os.getenv("AI_MAX_ATTEMPTS", 3))
        )

        # Consultation flow
        self.consultation = ConsultationConfig(
            candidate_count=int(os.getenv("CANDIDATE_COUNT", 5)),
            required_advisors=int(os.getenv("REQUIRED_ADVISORS", 3)),
            follow_up_budget=int(os.getenv("FOLLOW_UP_BUDGET", 3)),
            max_consultations=int(os.getenv("MAX_CONSULTATIONS", 3)),
            min_situation_length=int(os.getenv("MIN_SITUATION_LENGTH", 10)),
            advisor_source=os.getenv("ADVISOR_SOURCE", "generate").lower(),
            usage_db_path=Path(os.getenv("USAGE_DB_PATH", "db.json"))
        )

        # Redis
        self.redis = RedisConfig(
            url=os.getenv("REDIS_URL") or None,
            lock_key=os.getenv("BOT_INSTANCE_LOCK_KEY", "boardview:bot:instance_lock"),
            lock_ttl=int(os.getenv("BOT_INSTANCE_LOCK_TTL", 30)),
            session_ttl=int(os.getenv("SESSION_TTL_SECONDS", 24 * 60 * 60))
        )

        # Web endpoint
        self.web = WebConfig(
            host=os.getenv("WEB_HOST", "0.0.0.0"),
            port=int(os.getenv("WEB_PORT", 8000))
        )

        # Logging configuration
        self.logging = {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "file_path": Path(os.getenv("LOG_DIR", "logs")),
            "max_file_size": 10 * 1024 * 1024,  # 10MB
            "backup_count": 5
        }

    def as_dict(self) -> Dict[str, Any]:
        """Sanitized view for startup logs (no secrets)"""
        return {
            "ai_provider": self.ai.provider,
            "ai_model": self.ai.default_model,
            "advisor_source": self.consultation.advisor_source,
            "max_consultations": self.consultation.max_consultations,
            "redis": self.redis.enabled,
            "operators": len(self.telegram.operator_ids),
        }


# Global configuration instance
config = Config()


def get_config() -> Config:
    """Get the global configuration instance"""
    return config
