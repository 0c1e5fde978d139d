from sqlmodel import SQLModel
from turnstile.db.session import engine
from turnstile.core.config import settings
from turnstile.models import (  # noqa: F401
    user,
    product,
    chat_model,
    model_limit,
    order,
    chat_session,
    chat_message,
)


def init_db(drop_all: bool = False) -> None:
    if drop_all:
        SQLModel.metadata.drop_all(engine)
    if settings.DB_URL.startswith('sqlite') or settings.ENV != 'production' or settings.AUTO_CREATE_TABLES:
        SQLModel.metadata.create_all(engine)
