import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")
os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("RECONCILER_ENABLED", "false")

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from main import app as root_app
from services.address_service import models as address_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401
from services.order_service.main import order_app
from services.payment_service import models as payment_models  # noqa: F401
from services.payment_service.main import paypal_app, ziina_app
from services.product_service.main import product_app
from services.seller_service.main import seller_app
from shared.config.database import Base, get_db
from shared.security import limiter

limiter.enabled = False

APPS = (root_app, order_app, seller_app, product_app, paypal_app, ziina_app)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'marketplace.db'}")

    # let SQLAlchemy drive BEGIN so SAVEPOINTs work on SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def override_db(session_factory):
    async def _get_db():
        async with session_factory() as session:
            yield session

    for app in APPS:
        app.dependency_overrides[get_db] = _get_db
    yield
    for app in APPS:
        app.dependency_overrides.clear()


@pytest.fixture
async def api(override_db):
    """Factory for an httpx client bound to one mounted sub-app."""
    clients = []

    def _client(app) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield _client
    for client in clients:
        await client.aclose()

