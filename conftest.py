import pytest
from typing import Dict, Optional
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_engine.main import app
from order_engine.db.session import build_engine, get_db
from order_engine.models.base import Base
from order_engine.models import audit, contract, dispute, offer, order, order_event, review  # noqa: F401
from order_engine.core import redis as redis_module
from order_engine.core.security import create_access_token
from order_engine.core.enums import UserRole
from order_engine.schemas.caller import Caller
from order_engine.schemas.catalog import ServiceSnapshot
from order_engine.services import offers, signals
from order_engine.services.catalog import get_catalog


CLIENT_ID = 1
FREELANCER_ID = 2
OTHER_CLIENT_ID = 3
OTHER_FREELANCER_ID = 4
ADMIN_ID = 99

SERVICE_ID = 10
UNPRICED_SERVICE_ID = 11


class FakeCatalog:
    """In-memory stand-in for the catalog service."""

    def __init__(self, services: Optional[Dict[int, ServiceSnapshot]] = None):
        self.services = dict(services or {})
        self.calls = []

    def add(self, **fields) -> ServiceSnapshot:
        service = ServiceSnapshot(**fields)
        self.services[service.id] = service
        return service

    async def get_service(self, service_id: int) -> Optional[ServiceSnapshot]:
        self.calls.append(service_id)
        return self.services.get(service_id)


class FakeRedis:
    """Subset of the redis.asyncio client used by rate limiting and idempotency."""

    def __init__(self):
        self.store = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value.encode() if isinstance(value, str) else value
        return True

    async def incr(self, key):
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value).encode()
        return value

    async def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def close(self):
        pass


@pytest.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def catalog():
    fake = FakeCatalog()
    fake.add(
        id=SERVICE_ID,
        title="Logo design",
        description="Three logo concepts with source files",
        price=100.0,
        currency="USD",
        owner_id=FREELANCER_ID,
    )
    fake.add(
        id=UNPRICED_SERVICE_ID,
        title="Custom illustration",
        description=None,
        price=None,
        currency="EUR",
        owner_id=FREELANCER_ID,
    )
    return fake


@pytest.fixture(autouse=True)
def signal_log():
    """Capture emitted signals instead of queueing them on celery."""
    emitted = []
    signals.set_signal_sink(lambda signal, envelope: emitted.append((signal, envelope)))
    yield emitted
    signals.set_signal_sink(None)


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(redis_module, "redis", fake)
    return fake


@pytest.fixture
def client_caller():
    return Caller(id=CLIENT_ID, role=UserRole.CLIENT)


@pytest.fixture
def freelancer_caller():
    return Caller(id=FREELANCER_ID, role=UserRole.FREELANCER)


@pytest.fixture
def other_client_caller():
    return Caller(id=OTHER_CLIENT_ID, role=UserRole.CLIENT)


@pytest.fixture
def other_freelancer_caller():
    return Caller(id=OTHER_FREELANCER_ID, role=UserRole.FREELANCER)


@pytest.fixture
def admin_caller():
    return Caller(id=ADMIN_ID, role=UserRole.ADMIN)


@pytest.fixture
def offer_factory(db, catalog, freelancer_caller):
    async def _create_offer(**kwargs):
        data = {
            "service_id": SERVICE_ID,
            "client_id": CLIENT_ID,
            "conversation_id": 500,
            "delivery_time_days": 5,
            "revisions_included": 1,
            "price": 100.0,
        }
        data.update(kwargs)
        return await offers.create_offer(db, freelancer_caller, catalog, **data)

    return _create_offer


@pytest.fixture
def order_factory(db, offer_factory, client_caller):
    async def _create_order(**kwargs):
        offer = await offer_factory(**kwargs)
        _, order = await offers.accept_offer(db, client_caller, offer.id)
        return order

    return _create_order


def auth_headers(caller: Caller) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(caller.id), caller.role)}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
async def test_client(session_factory, catalog):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_catalog] = lambda: catalog

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
    config.addinivalue_line(
        "markers", "lifecycle: order state machine tests"
    )
    config.addinivalue_line(
        "markers", "disputes: dispute resolution tests"
    )
    config.addinivalue_line(
        "markers", "reviews: review gate tests"
    )
    config.addinivalue_line(
        "markers", "concurrency: concurrent writer tests"
    )
