import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

DEFAULT_TEST_DB_URL = f"sqlite:///{Path(tempfile.mkdtemp()) / 'turnstile-test.db'}"

TEST_CATALOG_JSON = """
{
  "products": [{"id": 1, "name": "free"}, {"id": 2, "name": "plus"}],
  "models": [
    {"id": 1, "name": "gpt-test", "limits": [
      {"product_id": 1, "times": 3, "duration": 60},
      {"product_id": 2, "times": 100, "duration": 60}
    ]},
    {"id": 2, "name": "gpt-unlimited-free", "limits": [
      {"product_id": 2, "times": 100, "duration": 60}
    ]}
  ]
}
"""

TEST_DB_URL = os.getenv("TEST_DB_URL", DEFAULT_TEST_DB_URL)
os.environ["DB_URL"] = TEST_DB_URL
os.environ.setdefault("OPENAI_API_KEY", "test")
os.environ["CATALOG"] = TEST_CATALOG_JSON

from turnstile.core.catalog import CatalogRegistry, parse_catalog
from turnstile.core.config import TurnConfig, settings
from turnstile.db.init_db import init_db
from turnstile.db.session import engine
from turnstile.models.user import User
from turnstile.services.catalog_seed import seed_catalog

settings.DB_URL = TEST_DB_URL


def _ensure_mysql_database(url: str) -> None:
    parsed_url = make_url(url)
    if not parsed_url.drivername.startswith("mysql"):
        return
    database = parsed_url.database
    if not database:
        raise RuntimeError("TEST_DB_URL must include a database name.")
    test_engine = create_engine(parsed_url, pool_pre_ping=True)
    try:
        with test_engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            return
    except OperationalError as exc:
        if "Unknown database" not in str(exc):
            raise
    finally:
        test_engine.dispose()

    admin_url = os.getenv("TEST_DB_ADMIN_URL") or parsed_url.set(database="mysql")
    admin_engine = create_engine(admin_url, pool_pre_ping=True)
    with admin_engine.connect() as connection:
        connection.execute(
            text(
                f"CREATE DATABASE IF NOT EXISTS `{database}` "
                "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
            )
        )
    admin_engine.dispose()

def reset_database() -> None:
    init_db(drop_all=True)
    with Session(engine) as session:
        seed_catalog(session, CatalogRegistry(parse_catalog(TEST_CATALOG_JSON)))

def create_user() -> User:
    with Session(engine) as session:
        user = User(email=f"{uuid4()}@example.com")
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)

@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"

@pytest.fixture(autouse=True, scope="session")
def _configure_test_database():
    _ensure_mysql_database(TEST_DB_URL)
    reset_database()
    yield

@pytest.fixture
def turn_config() -> TurnConfig:
    return TurnConfig(provider_base_url="http://provider.test/v1", default_product_id=1)

@pytest.fixture
def user() -> User:
    return create_user()

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
