import json

import pytest
from sqlmodel import Session

from turnstile.core.catalog import CatalogRegistry, load_catalog_file, parse_catalog
from turnstile.core.config import DEFAULT_CATALOG_JSON
from turnstile.db.session import engine
from turnstile.models.chat_model import ChatModel
from turnstile.models.model_limit import ModelLimit
from turnstile.services.catalog_seed import seed_catalog


def test_default_catalog_parses():
    registry = CatalogRegistry(parse_catalog(DEFAULT_CATALOG_JSON))
    assert {product.name for product in registry.products()} == {"free", "plus"}
    limit = registry.limit_for(1, 1)
    assert limit is not None
    assert limit.times > 0
    assert registry.limit_for(1, 99) is None


def test_catalog_rejects_unknown_fields():
    with pytest.raises(RuntimeError):
        parse_catalog(json.dumps({"products": [{"id": 1, "name": "free", "tier": 3}], "models": []}))


def test_catalog_rejects_limits_for_unknown_products():
    raw = json.dumps(
        {
            "products": [{"id": 1, "name": "free"}],
            "models": [{"id": 1, "name": "m", "limits": [{"product_id": 5, "times": 1, "duration": 60}]}],
        }
    )
    with pytest.raises(RuntimeError):
        CatalogRegistry(parse_catalog(raw))


def test_catalog_rejects_duplicate_models():
    raw = json.dumps(
        {
            "products": [{"id": 1, "name": "free"}],
            "models": [{"id": 1, "name": "m"}, {"id": 1, "name": "n"}],
        }
    )
    with pytest.raises(RuntimeError):
        CatalogRegistry(parse_catalog(raw))


def test_seed_catalog_is_idempotent_and_updates_limits(tmp_path):
    payload = {
        "products": [{"id": 1, "name": "free"}],
        "models": [{"id": 50, "name": "seed-model", "limits": [{"product_id": 1, "times": 4, "duration": 30}]}],
    }
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    registry = CatalogRegistry(load_catalog_file(path))

    with Session(engine) as session:
        first = seed_catalog(session, registry)
    with Session(engine) as session:
        second = seed_catalog(session, registry)

    assert first.created == 2
    assert second.created == 0
    assert second.updated == 0

    payload["models"][0]["limits"][0]["times"] = 8
    path.write_text(json.dumps(payload), encoding="utf-8")
    with Session(engine) as session:
        third = seed_catalog(session, CatalogRegistry(load_catalog_file(path)))
        limit = session.get(ModelLimit, (50, 1))
        model = session.get(ChatModel, 50)

    assert third.updated == 1
    assert limit.times == 8
    assert model.name == "seed-model"


def test_load_catalog_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_catalog_file(tmp_path / "missing.json")
