"""
Centralized Test Configuration.

Each test gets its own file-backed SQLite database so that separate
connections really contend for the write lock, plus a MockRedis stand-in.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace

from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from ledger_backend.app.main import app
from ledger_backend.app.db.session import Base, get_db, enable_sqlite_write_locking
from ledger_backend.app.core.dependencies import get_ledger_store
from ledger_backend.app.core.jwt import create_access_token
from ledger_backend.app.core.redis_client import get_redis
import ledger_backend.app.core.redis_client as redis_client_module
from ledger_backend.app.domain.settlement.ledger_store import LedgerStore
from ledger_backend.app.domain.settlement.settlement_service import SettlementService
from ledger_backend.app.models.ledger_enums import EntryType, Category, PaymentMethod
from ledger_backend.app.schemas.ledger import EntryCreate
from ledger_backend.app.services.cache import ReportCache
from ledger_backend.app.services.entry_service import EntryService
from ledger_backend.app.services.party_service import PartyService
from ledger_backend.app.services.reports import ReportService

OWNER_ID = 1
OTHER_OWNER_ID = 2

TODAY = date.today()
YESTERDAY = TODAY - timedelta(days=1)
LAST_WEEK = TODAY - timedelta(days=7)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    enable_sqlite_write_locking(engine)

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable foreign key constraints for SQLite."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory):
    return LedgerStore(session_factory)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def incr(self, key):
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture
def redis():
    return MockRedis()


@pytest.fixture
def cache(redis):
    return ReportCache(redis)


@pytest.fixture
def settlement_service(store, cache):
    return SettlementService(store, cache)


@pytest.fixture
def entry_service(store, cache):
    return EntryService(store, cache)


@pytest.fixture
def party_service(store, cache):
    return PartyService(store, cache)


@pytest.fixture
def report_service(store, cache):
    return ReportService(store, cache)


@pytest.fixture
def make_entry(entry_service):
    """Record an entry through the creation service. Defaults to a 1000.00 Credit sale."""
    async def _make(owner_id: int = OWNER_ID, **overrides):
        data = {
            "entry_type": EntryType.CREDIT,
            "category": Category.SALES,
            "payment_method": None,
            "amount": Decimal("1000.00"),
            "entry_date": LAST_WEEK,
        }
        data.update(overrides)
        return await entry_service.create_entry(owner_id, EntryCreate(**data))

    return _make


@pytest.fixture
def entry_factory():
    """In-memory entry for the pure projector and classification tests."""
    counter = {"id": 0}

    def _build(entry_type, category, amount="100.00", payment_method=PaymentMethod.CASH, **overrides):
        counter["id"] += 1
        amount = Decimal(amount)
        fields = {
            "id": counter["id"],
            "owner_id": OWNER_ID,
            "entry_type": entry_type,
            "category": category,
            "payment_method": payment_method,
            "amount": amount,
            "remaining_amount": amount,
            "entry_date": YESTERDAY,
            "settled": False,
            "settled_at": None,
            "notes": None,
            "party_id": None,
            "source_entry_id": None,
        }
        fields.update(overrides)
        if "remaining_amount" in overrides:
            fields["remaining_amount"] = Decimal(overrides["remaining_amount"])
        return SimpleNamespace(**fields)

    return _build


@pytest.fixture
async def client(store, redis, session_factory):
    """Async client for testing, wired to the per-test database and MockRedis."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return redis

    async def override_get_ledger_store():
        return store

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_ledger_store] = override_get_ledger_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


def _bearer(owner_id: int) -> dict:
    token = create_access_token(data={"sub": f"owner-{owner_id}", "user_id": owner_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    return _bearer(OWNER_ID)


@pytest.fixture
def other_owner_headers():
    return _bearer(OTHER_OWNER_ID)
