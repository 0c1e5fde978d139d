from sqlmodel import Field, SQLModel
from turnstile.models.base import TimestampModel


class ChatModel(TimestampModel, SQLModel, table=True):
    """Provider model exposed to callers; ``name`` is sent to the provider as-is."""

    __tablename__ = 'chat_models'

    id: int = Field(primary_key=True)
    name: str = Field(index=True, unique=True)
