import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_pastebin.db")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("CLEANUP_ENABLED", "false")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.db import Base, get_db
from app.core.security import create_access_token
from app.db import models  # noqa: F401
from app.db.repositories.user_repository import UserRepository
from app.domains.identity.entities import User, ROLE_ADMIN
from app.domains.pastes.cleanup import PasteCleanupScheduler
from app.domains.pastes.stats import StatsCache
from app.main import app

TEST_DB_URL = os.environ["DATABASE_URL"]

engine = create_async_engine(TEST_DB_URL, poolclass=NullPool)
TestingSession = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@event.listens_for(engine.sync_engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def override_get_db():
    async with TestingSession() as session:
        yield session


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
async def setup_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db():
    async with TestingSession() as session:
        yield session


@pytest.fixture
async def client():
    app.state.cleanup_scheduler = PasteCleanupScheduler(TestingSession, enabled=False)
    app.state.stats_cache = StatsCache(ttl_seconds=60)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def create_user(db, username: str, role: str = "user") -> User:
    user = User.create_user(
        email=f"{username}@example.com",
        username=username,
        password="Password123",
        role=role,
    )
    return await UserRepository(db).create(user)


@pytest.fixture
async def users(db):
    """owner, other, third and an admin"""
    return {
        "owner": await create_user(db, "owner"),
        "other": await create_user(db, "other"),
        "third": await create_user(db, "third"),
        "admin": await create_user(db, "admin", role=ROLE_ADMIN),
    }


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.uuid), "username": user.username, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers(users):
    return {name: auth_headers(user) for name, user in users.items()}


@pytest.fixture
def session_factory():
    return TestingSession
