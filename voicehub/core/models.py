"""
Persisted domain records.

Records are plain dataclasses with ``to_dict``/``from_dict`` for the
SQLite store and the HTTP layer. Timestamps are timezone-aware UTC.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

TEMPERATURE_MIN = 0
TEMPERATURE_MAX = 200
DEFAULT_CONVERSATION_TEMPERATURE = 70


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def temperature_to_storage(value: float) -> int:
    """
    Convert a sampling temperature (0.0-2.0) to its stored integer form.

    >>> temperature_to_storage(0.73)
    73
    """
    stored = int(round(float(value) * 100))
    if not TEMPERATURE_MIN <= stored <= TEMPERATURE_MAX:
        raise ValueError(f"temperature must be between 0.0 and 2.0, got {value}")
    return stored


def temperature_from_storage(value: Optional[int]) -> Optional[float]:
    if value is None:
        return None
    return int(value) / 100


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class RequestType(str, Enum):
    TEXT = "text"
    VOICE = "voice"
    TTS = "tts"
    IMAGE = "image"


@dataclass
class User:
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass
class Conversation:
    user_id: str
    title: str = "New Conversation"
    system_prompt: Optional[str] = None
    llm_provider: Optional[str] = None
    llm_model: Optional[str] = None
    # Stored as integer x100 (70 == 0.70)
    temperature: int = DEFAULT_CONVERSATION_TEMPERATURE
    is_archived: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_message_at: Optional[datetime] = None
    id: Optional[int] = None

    @property
    def temperature_value(self) -> float:
        return temperature_from_storage(self.temperature)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("created_at", "updated_at", "last_message_at"):
            data[key] = format_timestamp(data[key])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conversation":
        return cls(
            id=data.get("id"),
            user_id=data["user_id"],
            title=data.get("title") or "New Conversation",
            system_prompt=data.get("system_prompt"),
            llm_provider=data.get("llm_provider"),
            llm_model=data.get("llm_model"),
            temperature=int(data.get("temperature") if data.get("temperature") is not None else DEFAULT_CONVERSATION_TEMPERATURE),
            is_archived=bool(data.get("is_archived")),
            created_at=parse_timestamp(data.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(data.get("updated_at")) or utcnow(),
            last_message_at=parse_timestamp(data.get("last_message_at")),
        )


@dataclass
class Message:
    conversation_id: int
    role: str
    content: str
    audio_url: Optional[str] = None
    token_count: Optional[int] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = format_timestamp(self.created_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            id=data.get("id"),
            conversation_id=int(data["conversation_id"]),
            role=data["role"],
            content=data.get("content") or "",
            audio_url=data.get("audio_url"),
            token_count=data.get("token_count"),
            provider=data.get("provider"),
            model=data.get("model"),
            created_at=parse_timestamp(data.get("created_at")) or utcnow(),
        )


@dataclass
class ProviderCredential:
    user_id: str
    provider: str
    api_key: str
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    def masked_key(self) -> str:
        if len(self.api_key) <= 8:
            return "****"
        return f"{self.api_key[:4]}...{self.api_key[-4:]}"

    def to_dict(self, *, include_secret: bool = False) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "provider": self.provider,
            "api_key": self.api_key if include_secret else self.masked_key(),
            "is_active": self.is_active,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }


@dataclass
class UserPreferences:
    user_id: str
    default_text_provider: str = "openai"
    default_text_model: str = "gpt-4"
    default_stt_provider: str = "whisper"
    default_stt_model: str = "whisper-1"
    default_tts_provider: str = "elevenlabs"
    default_tts_voice: str = "ZF6FPAbjXT4488VcRRnw"
    default_tts_model: str = "eleven_turbo_v2_5"
    vad_sensitivity: int = 70
    silence_threshold_ms: int = 1500
    tts_speed: int = 100
    auto_play_responses: bool = True
    theme: str = "dark"
    language: str = "en"
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = format_timestamp(self.created_at)
        data["updated_at"] = format_timestamp(self.updated_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserPreferences":
        kwargs = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        kwargs["auto_play_responses"] = bool(kwargs.get("auto_play_responses", True))
        kwargs["created_at"] = parse_timestamp(kwargs.get("created_at")) or utcnow()
        kwargs["updated_at"] = parse_timestamp(kwargs.get("updated_at")) or utcnow()
        return cls(**kwargs)


@dataclass
class UsageRecord:
    user_id: str
    provider: str
    request_type: str
    token_count: Optional[int] = None
    audio_seconds: Optional[int] = None
    request_count: int = 1
    date: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date"] = format_timestamp(self.date)
        return data


@dataclass
class VoiceProfile:
    user_id: str
    name: str
    provider: str
    voice_id: str
    sample_url: Optional[str] = None
    is_default: bool = False
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = format_timestamp(self.created_at)
        return data
