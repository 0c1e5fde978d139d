from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import aclosing
from typing import Optional, Protocol

import anyio
from loguru import logger
from sqlalchemy.engine import Engine
from sqlmodel import Session

from turnstile.core.config import TurnConfig
from turnstile.core.errors import NotFoundError, PersistenceError
from turnstile.models.chat_model import ChatModel
from turnstile.models.enums import CancelPolicy, ErrorPolicy
from turnstile.services.llm_gateway import CompletionHook
from turnstile.services.transcript_persister import TranscriptPersister
from turnstile.services.turn_history import build_provider_messages
from turnstile.services.turn_types import FrameType, StreamFrame, TurnOutcome, TurnRequest, TurnStatus


class TokenSource(Protocol):
    def stream_chat_completion(
        self,
        *,
        api_key: str,
        model: str,
        messages: list[dict[str, str]],
        on_complete: Optional[CompletionHook] = None,
    ): ...


class TurnStream:
    """Live token sequence of one turn.

    A producer task fills a bounded queue; the consumer either iterates the
    stream or pushes it to a subscriber with :meth:`forward`. ``None`` in the
    queue is the completion marker. :meth:`aclose` cancels the producer and
    with it the upstream provider call.
    """

    def __init__(self, request: TurnRequest, model_name: str, queue_size: int) -> None:
        self.request = request
        self.model_name = model_name
        self.outcome = TurnOutcome()
        self._queue: asyncio.Queue[Optional[StreamFrame]] = asyncio.Queue(maxsize=queue_size)
        self._task: Optional[asyncio.Task[None]] = None
        self._failure: Optional[PersistenceError] = None
        self._finished = False
        self._delivered: list[str] = []

    @property
    def delivered(self) -> str:
        """Text of the token frames already handed to the consumer."""
        return ''.join(self._delivered)

    def _attach(self, task: asyncio.Task[None]) -> None:
        self._task = task

    async def _emit(self, frame: StreamFrame) -> None:
        await self._queue.put(frame)

    async def _finish(self, failure: Optional[PersistenceError] = None) -> None:
        self._failure = failure
        await self._queue.put(None)

    def __aiter__(self) -> TurnStream:
        return self

    async def __anext__(self) -> StreamFrame:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is None:
            self._finished = True
            if self._failure is not None:
                raise self._failure
            raise StopAsyncIteration
        if item.type == FrameType.TOKEN:
            self._delivered.append(item.data)
        return item

    async def forward(self, send: Callable[[StreamFrame], Awaitable[None]]) -> TurnOutcome:
        try:
            async for frame in self:
                await send(frame)
        except BaseException:
            await self.aclose()
            raise
        return await self.wait()

    async def wait(self) -> TurnOutcome:
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        return self.outcome

    async def aclose(self) -> None:
        self._finished = True
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.wait({task})


def _log_task_error(done_task: asyncio.Task[None]) -> None:
    if done_task.cancelled():
        return
    error = done_task.exception()
    if error:
        logger.opt(exception=error).error('turn.task.failed')


class TurnOrchestrator:
    def __init__(
        self,
        engine: Engine,
        config: TurnConfig,
        persister: TranscriptPersister,
        gateway: TokenSource,
    ) -> None:
        self._engine = engine
        self._config = config
        self._persister = persister
        self._gateway = gateway

    def _model_name(self, model_id: int) -> str:
        with Session(self._engine) as db:
            record = db.get(ChatModel, model_id)
            if record is None:
                raise NotFoundError('Model', model_id)
            return record.name

    async def run(self, request: TurnRequest) -> TurnStream:
        model_name = await anyio.to_thread.run_sync(self._model_name, request.model_id)
        messages = build_provider_messages(request.history, request.content)
        stream = TurnStream(request, model_name, self._config.stream_queue_size)
        task = asyncio.create_task(self._produce(stream, messages))
        task.add_done_callback(_log_task_error)
        stream._attach(task)
        return stream

    async def _produce(self, stream: TurnStream, messages: list[dict[str, str]]) -> None:
        request = stream.request
        outcome = stream.outcome
        chunks: list[str] = []
        context = {
            'session_id': request.session_id,
            'user_id': request.user_id,
            'model': stream.model_name,
        }

        async def commit_transcript(generated: str) -> None:
            await self._persister.commit(
                request.user_id,
                request.session_id,
                request.model_id,
                request.content,
                generated,
            )
            outcome.committed = True

        upstream = self._gateway.stream_chat_completion(
            api_key=request.credential,
            model=stream.model_name,
            messages=messages,
            on_complete=commit_transcript,
        )
        logger.info('turn.stream.start', messages=len(messages), **context)
        try:
            async with aclosing(upstream):
                async for token in upstream:
                    chunks.append(token)
                    outcome.chunks = len(chunks)
                    await stream._emit(StreamFrame.token(token))
        except asyncio.CancelledError:
            outcome.status = TurnStatus.CANCELLED
            # queued but undelivered tokens are dropped with the stream
            outcome.content = stream.delivered
            logger.info('turn.stream.cancelled', chunks=len(chunks), delivered=len(stream._delivered), **context)
            if (
                self._config.cancel_policy == CancelPolicy.COMMIT_PARTIAL
                and outcome.content
                and not outcome.committed
            ):
                try:
                    await commit_transcript(outcome.content)
                except PersistenceError as exc:
                    outcome.error = exc
                    logger.opt(exception=exc).error('turn.persist.failed', partial=True, **context)
            raise
        except PersistenceError as exc:
            outcome.status = TurnStatus.PERSIST_FAILED
            outcome.content = ''.join(chunks)
            outcome.error = exc
            logger.opt(exception=exc).error('turn.persist.failed', chunks=len(chunks), **context)
            await stream._finish(failure=exc)
            return
        except Exception as exc:  # noqa: BLE001
            outcome.status = TurnStatus.PROVIDER_FAILED
            outcome.content = ''.join(chunks)
            outcome.error = exc
            logger.warning('turn.provider.failed', error=str(exc), chunks=len(chunks), **context)
            if self._config.error_policy == ErrorPolicy.SURFACE:
                await stream._emit(StreamFrame.error(str(exc)))
            await stream._finish()
            return

        outcome.status = TurnStatus.COMPLETED
        outcome.content = ''.join(chunks)
        if chunks:
            logger.info('turn.stream.done', chunks=len(chunks), content_len=len(outcome.content), **context)
        else:
            logger.warning('turn.stream.empty', **context)
        await stream._finish()
