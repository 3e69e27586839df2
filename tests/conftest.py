import pytest
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from chatapp.models.base import Base
from chatapp.models.entity import EntityRow  # noqa: F401
from chatapp.database.datastore import Datastore
from chatapp.schemas.user import User
from chatapp.services.persistent_data_store import PersistentDataStore

DATABASE_URL = "sqlite+aiosqlite:///:memory:"

@pytest.fixture
async def engine():
    engine = create_async_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

@pytest.fixture
def datastore(session_factory):
    return Datastore(session_factory)

@pytest.fixture
def store(datastore):
    return PersistentDataStore(datastore)

@pytest.fixture
def test_user():
    return User.register(
        "Ada",
        "password123",
        creation=datetime(2018, 3, 1, 12, 30, 15, 250000, tzinfo=timezone.utc),
    )
