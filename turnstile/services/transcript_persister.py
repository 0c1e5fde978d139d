from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

import anyio
from loguru import logger
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from turnstile.core.errors import PersistenceError
from turnstile.models.base import utc_now
from turnstile.models.chat_message import ChatMessage
from turnstile.models.enums import ChatRole
from turnstile.services.turn_types import TranscriptPair

# assistant reply sorts after its prompt even on coarse clocks
TRANSCRIPT_TIME_STEP = timedelta(milliseconds=1)


class TranscriptPersister:
    """Writes the user prompt and the assistant reply of a finished turn in one transaction."""

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utc_now) -> None:
        self._engine = engine
        self._clock = clock

    async def commit(
        self,
        user_id: str,
        session_id: str,
        model_id: int,
        user_content: str,
        assistant_content: str,
    ) -> TranscriptPair:
        return await anyio.to_thread.run_sync(
            self._commit,
            user_id,
            session_id,
            model_id,
            user_content,
            assistant_content,
        )

    def _user_message(self, user_id: str, session_id: str, content: str, created_at: datetime) -> ChatMessage:
        return ChatMessage(
            session_id=session_id,
            user_id=user_id,
            role=ChatRole.USER,
            content=content,
            created_at=created_at,
            updated_at=created_at,
        )

    def _assistant_message(
        self,
        user_id: str,
        session_id: str,
        model_id: int,
        content: str,
        created_at: datetime,
    ) -> ChatMessage:
        return ChatMessage(
            session_id=session_id,
            user_id=user_id,
            role=ChatRole.ASSISTANT,
            content=content,
            model_id=model_id,
            created_at=created_at,
            updated_at=created_at,
        )

    def _commit(
        self,
        user_id: str,
        session_id: str,
        model_id: int,
        user_content: str,
        assistant_content: str,
    ) -> TranscriptPair:
        timestamp = self._clock()
        with Session(self._engine) as db:
            try:
                prompt = self._user_message(user_id, session_id, user_content, timestamp)
                db.add(prompt)
                db.flush()
                reply = self._assistant_message(
                    user_id,
                    session_id,
                    model_id,
                    assistant_content,
                    timestamp + TRANSCRIPT_TIME_STEP,
                )
                db.add(reply)
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise PersistenceError(f"Failed to store transcript for session {session_id}") from exc
            db.refresh(prompt)
            db.refresh(reply)
        logger.debug(
            'transcript.committed',
            session_id=session_id,
            user_id=user_id,
            model_id=model_id,
            user_message_id=prompt.id,
            assistant_message_id=reply.id,
        )
        return TranscriptPair(user_message=prompt, assistant_message=reply)
