from typing import Optional
from sqlmodel import Field, SQLModel
from turnstile.models.base import IDModel, TimestampModel


class User(IDModel, TimestampModel, SQLModel, table=True):
    __tablename__ = 'users'

    email: Optional[str] = Field(default=None, index=True, unique=True)
    is_active: bool = True
