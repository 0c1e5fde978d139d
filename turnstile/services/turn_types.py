from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Sequence

from turnstile.models.chat_message import ChatMessage
from turnstile.models.chat_session import ChatSession


class FrameType(str, Enum):
    TOKEN = 'token'
    ERROR = 'error'


class TurnStatus(str, Enum):
    RUNNING = 'running'
    COMPLETED = 'completed'
    PROVIDER_FAILED = 'provider_failed'
    PERSIST_FAILED = 'persist_failed'
    CANCELLED = 'cancelled'


@dataclass(frozen=True)
class StreamFrame:
    type: FrameType
    data: str

    @classmethod
    def token(cls, text: str) -> StreamFrame:
        return cls(type=FrameType.TOKEN, data=text)

    @classmethod
    def error(cls, message: str) -> StreamFrame:
        return cls(type=FrameType.ERROR, data=message)


@dataclass(frozen=True)
class TurnRequest:
    user_id: str
    session_id: str
    model_id: int
    content: str
    credential: str
    history: Sequence[Any] = ()


@dataclass
class TurnOutcome:
    status: TurnStatus = TurnStatus.RUNNING
    content: str = ''
    chunks: int = 0
    committed: bool = False
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class TranscriptPair:
    user_message: ChatMessage
    assistant_message: ChatMessage


@dataclass(frozen=True)
class ResolvedSession:
    session: ChatSession
    messages: list[ChatMessage] = field(default_factory=list)


@dataclass(frozen=True)
class SessionTranscript:
    session: ChatSession
    messages: list[ChatMessage] = field(default_factory=list)


@dataclass(frozen=True)
class SessionSummary:
    session: ChatSession
    message_count: int


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    product_id: int
    times: int
    duration: int
    used: int
    window_start: datetime
    window_end: datetime

    @property
    def remaining(self) -> int:
        return max(0, self.times - self.used)
