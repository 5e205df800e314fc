from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class RecognitionState(str, Enum):
    """Lifecycle states for continuous speech capture."""

    IDLE = "idle"
    LISTENING = "listening"
    STOPPING = "stopping"


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: ChatRole
    content: str
    position: int


@dataclass(slots=True)
class Session:
    """Per-controller voice interaction context."""

    selected_language: str
    voice_enabled: bool = True
    volume: float = 100.0
    session_id: str = field(default_factory=lambda: uuid4().hex)


@dataclass(frozen=True, slots=True)
class SynthesisRequest:
    text: str
    language: str
    volume: float


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Read-only view of controller state for the presentation layer."""

    session_id: str
    messages: tuple[ChatMessage, ...]
    is_active: bool
    voice_enabled: bool
    selected_language: str
    audio_quality: float
    volume: float
    last_error: str | None = None


def clamp_volume(volume: float) -> float:
    return max(0.0, min(100.0, float(volume)))
