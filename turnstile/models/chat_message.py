from typing import Optional
from sqlalchemy import Text
from sqlmodel import Field, SQLModel
from turnstile.models.base import IDModel, TimestampModel
from turnstile.models.enums import ChatRole, enum_column


class ChatMessage(IDModel, TimestampModel, SQLModel, table=True):
    __tablename__ = 'chat_messages'

    session_id: str = Field(index=True)
    user_id: str = Field(index=True)
    role: ChatRole = Field(sa_column=enum_column(ChatRole, 'chat_role'))
    content: str = Field(sa_type=Text)
    model_id: Optional[int] = Field(default=None, index=True)
