from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field
from turnstile.models.enums import ChatRole


class TurnStreamRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=64)
    model_id: int = Field(..., ge=1)
    content: str = Field(..., min_length=1)
    memory_prompt: Optional[str] = None
    api_key: Optional[str] = None


class ChatSessionOut(BaseModel):
    id: str
    memory_prompt: Optional[str] = None
    message_count: int = 0
    created_at: datetime
    updated_at: datetime


class ChatMessageOut(BaseModel):
    id: str
    session_id: str
    role: ChatRole
    content: str
    model_id: Optional[int] = None
    created_at: datetime


class ChatTranscriptOut(BaseModel):
    id: str
    memory_prompt: Optional[str] = None
    messages: list[ChatMessageOut]


class QuotaOut(BaseModel):
    allowed: bool
    product_id: int
    times: int
    duration: int
    used: int
    remaining: int
    window_start: datetime
    window_end: datetime
