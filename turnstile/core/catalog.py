from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from turnstile.core.config import settings


class ProductConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    id: int = Field(..., ge=1)
    name: str = Field(..., min_length=1)


class LimitConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    product_id: int = Field(..., ge=1)
    times: int = Field(..., ge=0)
    duration: int = Field(..., ge=1)


class ModelConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    id: int = Field(..., ge=1)
    name: str = Field(..., min_length=1)
    limits: list[LimitConfig] = Field(default_factory=list)


class CatalogConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    products: list[ProductConfig] = Field(..., min_length=1)
    models: list[ModelConfig] = Field(..., min_length=1)


class CatalogRegistry:
    def __init__(self, catalog: CatalogConfig) -> None:
        self._catalog = catalog
        self._products: dict[int, ProductConfig] = {}
        self._models: dict[int, ModelConfig] = {}
        seen_names: set[str] = set()
        for product in catalog.products:
            if product.id in self._products:
                raise RuntimeError(f"Duplicate product id: {product.id}")
            self._products[product.id] = product
        for model in catalog.models:
            name = model.name.strip()
            if model.id in self._models:
                raise RuntimeError(f"Duplicate model id: {model.id}")
            if name in seen_names:
                raise RuntimeError(f"Duplicate model name: {name}")
            seen_names.add(name)
            limited: set[int] = set()
            for limit in model.limits:
                if limit.product_id not in self._products:
                    raise RuntimeError(f"Model {model.id} references unknown product {limit.product_id}")
                if limit.product_id in limited:
                    raise RuntimeError(f"Duplicate limit for model {model.id} and product {limit.product_id}")
                limited.add(limit.product_id)
            self._models[model.id] = model

    @property
    def catalog(self) -> CatalogConfig:
        return self._catalog

    def products(self) -> list[ProductConfig]:
        return list(self._products.values())

    def models(self) -> list[ModelConfig]:
        return list(self._models.values())

    def limit_for(self, model_id: int, product_id: int) -> LimitConfig | None:
        model = self._models.get(model_id)
        if not model:
            return None
        for limit in model.limits:
            if limit.product_id == product_id:
                return limit
        return None


def parse_catalog(raw: str) -> CatalogConfig:
    if not raw or not raw.strip():
        raise RuntimeError("CATALOG is missing in environment or .env")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RuntimeError("CATALOG must be valid JSON") from exc
    if not isinstance(payload, dict):
        raise RuntimeError("CATALOG must be a JSON object")
    try:
        return CatalogConfig.model_validate(payload)
    except ValidationError as exc:
        raise RuntimeError(f"CATALOG validation error: {exc}") from exc


def load_catalog_file(path: Path) -> CatalogConfig:
    if not path.exists():
        raise FileNotFoundError(f"Catalog file not found: {path}")
    return parse_catalog(path.read_text(encoding='utf-8'))


@lru_cache
def get_catalog_registry() -> CatalogRegistry:
    return CatalogRegistry(parse_catalog(settings.CATALOG))


def reset_catalog_registry() -> None:
    get_catalog_registry.cache_clear()
