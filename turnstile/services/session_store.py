from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

import anyio
from loguru import logger
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, func, select

from turnstile.core.config import TurnConfig
from turnstile.core.errors import AuthorizationError, NotFoundError
from turnstile.models.base import utc_now
from turnstile.models.chat_message import ChatMessage
from turnstile.models.chat_session import ChatSession
from turnstile.models.enums import HistoryWindow
from turnstile.models.user import User
from turnstile.services.turn_types import ResolvedSession, SessionSummary, SessionTranscript


def list_messages(
    db: Session,
    session_id: str,
    limit: Optional[int] = None,
    window: HistoryWindow = HistoryWindow.OLDEST,
) -> list[ChatMessage]:
    """Return the session's messages oldest first.

    With ``limit`` the first messages of the session are kept, or the most
    recent ones when ``window`` is ``HistoryWindow.LATEST``.
    """
    statement = select(ChatMessage).where(ChatMessage.session_id == session_id)
    if limit is None or window == HistoryWindow.OLDEST:
        statement = statement.order_by(ChatMessage.created_at.asc())
        if limit is not None:
            statement = statement.limit(limit)
        return list(db.exec(statement).all())
    statement = statement.order_by(ChatMessage.created_at.desc()).limit(limit)
    return list(reversed(db.exec(statement).all()))


class SessionStore:
    def __init__(
        self,
        engine: Engine,
        config: TurnConfig,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._engine = engine
        self._config = config
        self._clock = clock

    async def resolve(
        self,
        session_id: str,
        user_id: str,
        memory_prompt: Optional[str] = None,
        history_limit: Optional[int] = None,
    ) -> ResolvedSession:
        limit = self._config.history_limit if history_limit is None else history_limit
        return await anyio.to_thread.run_sync(self._resolve, session_id, user_id, memory_prompt, limit)

    async def get_messages(
        self,
        user_id: str,
        session_id: str,
        limit: Optional[int] = None,
    ) -> Optional[SessionTranscript]:
        return await anyio.to_thread.run_sync(self._get_messages, user_id, session_id, limit)

    async def list_recent(self, user_id: str, limit: Optional[int] = None) -> list[SessionSummary]:
        size = self._config.recent_sessions_limit if limit is None else limit
        return await anyio.to_thread.run_sync(self._list_recent, user_id, size)

    def _resolve(
        self,
        session_id: str,
        user_id: str,
        memory_prompt: Optional[str],
        limit: int,
    ) -> ResolvedSession:
        with Session(self._engine) as db:
            try:
                record = self._upsert(db, session_id, user_id, memory_prompt)
            except IntegrityError:
                # lost a race creating the same id; the row exists now
                db.rollback()
                record = self._upsert(db, session_id, user_id, memory_prompt)
            messages = list_messages(db, record.id, limit, self._config.history_window) if limit > 0 else []
        return ResolvedSession(session=record, messages=messages)

    def _upsert(
        self,
        db: Session,
        session_id: str,
        user_id: str,
        memory_prompt: Optional[str],
    ) -> ChatSession:
        record = db.get(ChatSession, session_id)
        if record is None:
            if db.get(User, user_id) is None:
                raise NotFoundError('User', user_id)
            record = ChatSession(id=session_id, user_id=user_id, memory_prompt=memory_prompt)
            logger.info('session.created', session_id=session_id, user_id=user_id)
        elif record.user_id != user_id:
            logger.warning('session.owner_mismatch', session_id=session_id, user_id=user_id)
            raise AuthorizationError(f"Chat session {session_id} belongs to another user")
        else:
            if memory_prompt is not None:
                record.memory_prompt = memory_prompt
            record.updated_at = self._clock()
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    def _get_messages(self, user_id: str, session_id: str, limit: Optional[int]) -> Optional[SessionTranscript]:
        with Session(self._engine) as db:
            record = db.exec(
                select(ChatSession).where((ChatSession.id == session_id) & (ChatSession.user_id == user_id))
            ).first()
            if record is None:
                return None
            messages = list_messages(db, session_id, limit, self._config.history_window)
            return SessionTranscript(session=record, messages=messages)

    def _list_recent(self, user_id: str, limit: int) -> list[SessionSummary]:
        counts = (
            select(ChatMessage.session_id, func.count(ChatMessage.id).label('message_count'))
            .group_by(ChatMessage.session_id)
            .subquery()
        )
        statement = (
            select(ChatSession, func.coalesce(counts.c.message_count, 0))
            .outerjoin(counts, counts.c.session_id == ChatSession.id)
            .where(ChatSession.user_id == user_id)
            .order_by(ChatSession.updated_at.desc())
            .limit(limit)
        )
        with Session(self._engine) as db:
            rows = db.exec(statement).all()
        return [SessionSummary(session=record, message_count=int(count)) for record, count in rows]
