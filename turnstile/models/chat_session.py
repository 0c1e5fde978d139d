from typing import Optional
from sqlalchemy import Text
from sqlmodel import Field, SQLModel
from turnstile.models.base import IDModel, TimestampModel


class ChatSession(IDModel, TimestampModel, SQLModel, table=True):
    __tablename__ = 'chat_sessions'

    user_id: str = Field(index=True)
    memory_prompt: Optional[str] = Field(default=None, sa_type=Text)
