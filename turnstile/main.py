from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
from turnstile.api.v1.router import api_router
from turnstile.core.catalog import get_catalog_registry
from turnstile.core.config import settings
from turnstile.core.logging import configure_logging
from turnstile.db.init_db import init_db
from turnstile.db.session import engine
from turnstile.services.catalog_seed import seed_catalog

configure_logging(settings.LOG_LEVEL, serialize=settings.LOG_JSON)


@asynccontextmanager
async def lifespan(_: FastAPI):
    registry = get_catalog_registry()
    init_db()
    if settings.SEED_CATALOG_ON_STARTUP:
        with Session(engine) as session:
            seed_catalog(session, registry)
    yield

app = FastAPI(title=settings.PROJECT_NAME, debug=settings.DEBUG, lifespan=lifespan)

allow_origins = settings.CORS_ORIGINS
allow_credentials = '*' not in allow_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(api_router)
