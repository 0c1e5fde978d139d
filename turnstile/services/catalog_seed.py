from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from sqlmodel import Session

from turnstile.core.catalog import CatalogRegistry
from turnstile.models.chat_model import ChatModel
from turnstile.models.model_limit import ModelLimit
from turnstile.models.product import Product


@dataclass(frozen=True)
class SeedSummary:
    created: int
    updated: int
    unchanged: int


def _upsert(session: Session, record, values: dict, key) -> str:
    existing = session.get(type(record), key)
    if existing is None:
        session.add(record)
        return 'created'
    changed = False
    for field, value in values.items():
        if getattr(existing, field) != value:
            setattr(existing, field, value)
            changed = True
    if not changed:
        return 'unchanged'
    session.add(existing)
    return 'updated'


def seed_catalog(session: Session, registry: CatalogRegistry) -> SeedSummary:
    """Upsert products, models and their limits; rows missing from the catalog are left alone."""
    counts = {'created': 0, 'updated': 0, 'unchanged': 0}
    for product in registry.products():
        result = _upsert(
            session,
            Product(id=product.id, name=product.name),
            {'name': product.name},
            product.id,
        )
        counts[result] += 1
    for model in registry.models():
        result = _upsert(
            session,
            ChatModel(id=model.id, name=model.name.strip()),
            {'name': model.name.strip()},
            model.id,
        )
        counts[result] += 1
        for limit in model.limits:
            result = _upsert(
                session,
                ModelLimit(
                    model_id=model.id,
                    product_id=limit.product_id,
                    times=limit.times,
                    duration=limit.duration,
                ),
                {'times': limit.times, 'duration': limit.duration},
                (model.id, limit.product_id),
            )
            counts[result] += 1
    session.commit()
    summary = SeedSummary(**counts)
    logger.info('catalog.seeded', created=summary.created, updated=summary.updated, unchanged=summary.unchanged)
    return summary
