from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

import anyio
from loguru import logger
from sqlalchemy.engine import Engine
from sqlmodel import Session, func, select

from turnstile.core.config import TurnConfig
from turnstile.core.errors import NotFoundError
from turnstile.models.base import utc_now
from turnstile.models.chat_message import ChatMessage
from turnstile.models.model_limit import ModelLimit
from turnstile.models.order import Order
from turnstile.models.user import User
from turnstile.services.turn_types import QuotaDecision


def count_recent_messages(db: Session, user_id: str, duration: int, now: datetime) -> int:
    """Count the user's messages created within the closed window ``[now - duration, now]``."""
    start = now - timedelta(seconds=duration)
    statement = (
        select(func.count())
        .select_from(ChatMessage)
        .where(
            (ChatMessage.user_id == user_id)
            & (ChatMessage.created_at >= start)
            & (ChatMessage.created_at <= now)
        )
    )
    return int(db.exec(statement).one())


def active_product_id(db: Session, user_id: str, now: datetime, default_product_id: int) -> int:
    order = db.exec(
        select(Order)
        .where((Order.user_id == user_id) & (Order.start_at <= now) & (Order.end_at >= now))
        .order_by(Order.start_at.asc())
    ).first()
    return order.product_id if order else default_product_id


class QuotaLedger:
    """Decides whether a user may start another turn with a given model.

    Usage is counted from committed messages at check time; nothing is
    reserved, so two concurrent turns of the same user can both pass.
    """

    def __init__(
        self,
        engine: Engine,
        config: TurnConfig,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._engine = engine
        self._config = config
        self._clock = clock

    async def check(self, user_id: str, model_id: int) -> bool:
        decision = await self.evaluate(user_id, model_id)
        return decision.allowed

    async def evaluate(self, user_id: str, model_id: int) -> QuotaDecision:
        decision = await anyio.to_thread.run_sync(self._evaluate, user_id, model_id)
        if not decision.allowed:
            logger.info(
                'quota.denied',
                user_id=user_id,
                model_id=model_id,
                product_id=decision.product_id,
                used=decision.used,
                times=decision.times,
            )
        return decision

    def _evaluate(self, user_id: str, model_id: int) -> QuotaDecision:
        now = self._clock()
        with Session(self._engine) as db:
            if db.get(User, user_id) is None:
                raise NotFoundError('User', user_id)
            product_id = active_product_id(db, user_id, now, self._config.default_product_id)
            limit = db.get(ModelLimit, (model_id, product_id))
            if limit is None:
                raise NotFoundError('ModelLimit', (model_id, product_id))
            used = count_recent_messages(db, user_id, limit.duration, now)
        return QuotaDecision(
            allowed=limit.times - used > 0,
            product_id=product_id,
            times=limit.times,
            duration=limit.duration,
            used=used,
            window_start=now - timedelta(seconds=limit.duration),
            window_end=now,
        )
