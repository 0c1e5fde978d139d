import json
from typing import Optional

from loguru import logger

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from turnstile.api.deps import get_quota_ledger, get_session_store, get_turn_orchestrator
from turnstile.core.env import resolve_provider_credential
from turnstile.core.errors import AuthorizationError, InvalidMessageError, NotFoundError, PersistenceError
from turnstile.models.chat_message import ChatMessage
from turnstile.models.user import User
from turnstile.schemas.chat import (
    ChatMessageOut,
    ChatSessionOut,
    ChatTranscriptOut,
    QuotaOut,
    TurnStreamRequest,
)
from turnstile.services.auth_service import get_current_user
from turnstile.services.quota_ledger import QuotaLedger
from turnstile.services.session_store import SessionStore
from turnstile.services.turn_orchestrator import TurnOrchestrator, TurnStream
from turnstile.services.turn_types import FrameType, StreamFrame, TurnRequest

router = APIRouter(prefix='/chat', tags=['chat'])


def _not_found(exc: NotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{exc.entity} not found")


def _to_message_out(message: ChatMessage) -> ChatMessageOut:
    return ChatMessageOut(
        id=message.id,
        session_id=message.session_id,
        role=message.role,
        content=message.content,
        model_id=message.model_id,
        created_at=message.created_at,
    )


def _sse(frame: StreamFrame) -> str:
    if frame.type == FrameType.ERROR:
        return f"event: error\ndata: {json.dumps({'message': frame.data}, ensure_ascii=False)}\n\n"
    return f"data: {json.dumps(frame.data, ensure_ascii=False)}\n\n"


async def _event_stream(turn: TurnStream):
    try:
        async for frame in turn:
            yield _sse(frame)
    except PersistenceError:
        # tokens already reached the client; the orchestrator has logged the failure
        logger.error(
            'chat.stream.unrecorded',
            session_id=turn.request.session_id,
            user_id=turn.request.user_id,
        )
    finally:
        await turn.aclose()
    yield "data: [DONE]\n\n"


@router.post('/stream')
async def stream_turn(
    payload: TurnStreamRequest,
    user: User = Depends(get_current_user),
    ledger: QuotaLedger = Depends(get_quota_ledger),
    store: SessionStore = Depends(get_session_store),
    orchestrator: TurnOrchestrator = Depends(get_turn_orchestrator),
):
    try:
        allowed = await ledger.check(user.id, payload.model_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    if not allowed:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail='Usage limit exceeded')

    try:
        resolved = await store.resolve(payload.session_id, user.id, payload.memory_prompt)
    except AuthorizationError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Not allowed') from exc
    except NotFoundError as exc:
        raise _not_found(exc) from exc

    try:
        credential = resolve_provider_credential(payload.api_key)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Provider credential missing') from exc

    request = TurnRequest(
        user_id=user.id,
        session_id=resolved.session.id,
        model_id=payload.model_id,
        content=payload.content,
        credential=credential,
        history=resolved.messages,
    )
    try:
        turn = await orchestrator.run(request)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    except InvalidMessageError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    return StreamingResponse(_event_stream(turn), media_type='text/event-stream')


@router.get('/sessions', response_model=list[ChatSessionOut])
async def list_recent_sessions(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    user: User = Depends(get_current_user),
    store: SessionStore = Depends(get_session_store),
) -> list[ChatSessionOut]:
    summaries = await store.list_recent(user.id, limit)
    return [
        ChatSessionOut(
            id=item.session.id,
            memory_prompt=item.session.memory_prompt,
            message_count=item.message_count,
            created_at=item.session.created_at,
            updated_at=item.session.updated_at,
        )
        for item in summaries
    ]


@router.get('/sessions/{session_id}/messages', response_model=ChatTranscriptOut)
async def get_session_messages(
    session_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    user: User = Depends(get_current_user),
    store: SessionStore = Depends(get_session_store),
) -> ChatTranscriptOut:
    transcript = await store.get_messages(user.id, session_id, limit)
    if transcript is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Chat session not found')
    return ChatTranscriptOut(
        id=transcript.session.id,
        memory_prompt=transcript.session.memory_prompt,
        messages=[_to_message_out(message) for message in transcript.messages],
    )


@router.get('/quota', response_model=QuotaOut)
async def get_quota(
    model_id: int = Query(..., ge=1),
    user: User = Depends(get_current_user),
    ledger: QuotaLedger = Depends(get_quota_ledger),
) -> QuotaOut:
    try:
        decision = await ledger.evaluate(user.id, model_id)
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return QuotaOut(
        allowed=decision.allowed,
        product_id=decision.product_id,
        times=decision.times,
        duration=decision.duration,
        used=decision.used,
        remaining=decision.remaining,
        window_start=decision.window_start,
        window_end=decision.window_end,
    )
