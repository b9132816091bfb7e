"""Test fixtures — an in-memory database per test, plus chat fakes.

Learn: Testing pattern for async SQLAlchemy + FastAPI without a server:

1. Each test gets its own SQLite (aiosqlite) in-memory engine. StaticPool
   keeps the single connection alive, so every session sees the same
   database, and `create_all` builds the schema from the ORM models.
2. The `client` fixture overrides get_db (that database) and
   get_registry (a fresh, empty registry) on the real app.
3. REST auth is NOT overridden: tests send real Bearer tokens from
   create_access_token, so the same JWT path the socket uses is exercised.

WebSocket session tests don't need a database at all: they drive
ChatSession with the fakes in chat_fakes.py.
"""

import uuid
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from gradwork.auth.jwt import create_access_token
from gradwork.chat.registry import ConnectionRegistry, get_registry
from gradwork.db.engine import get_db
from gradwork.db.models import CONTRACT_ACCEPTED, Base, Contract, Gig, User
from gradwork.main import app

TEST_DB_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def registry():
    """A fresh registry — never the process-wide one."""
    return ConnectionRegistry()


@pytest_asyncio.fixture()
async def client(db_session, registry):
    """HTTP client with the app's get_db and get_registry overridden."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry] = lambda: registry

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers(user_id) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(user_id))}"}


@pytest.fixture
def auth():
    """auth(user_id) → headers carrying a valid token for that user."""
    return auth_headers


# ═══════════════════════════════════════════════════════════
# Seed data
# ═══════════════════════════════════════════════════════════


async def seed_contract(db, status=CONTRACT_ACCEPTED, client_user=None, freelancer=None):
    """Create (or reuse) a client and a freelancer, a gig and a contract."""
    if client_user is None:
        client_user = User(
            id=uuid.uuid4(),
            email=f"client-{uuid.uuid4().hex[:8]}@example.com",
            display_name="Cleo Client",
        )
        db.add(client_user)
    if freelancer is None:
        freelancer = User(
            id=uuid.uuid4(),
            email=f"free-{uuid.uuid4().hex[:8]}@example.com",
            display_name="Fran Freelancer",
        )
        db.add(freelancer)

    gig = Gig(
        id=uuid.uuid4(),
        title="Landing page in React",
        description="Responsive, with a contact form",
        price=250.0,
        category="web_development",
        user_id=freelancer.id,
        owner=freelancer,
    )
    db.add(gig)
    contract = Contract(
        id=uuid.uuid4(),
        gig_id=gig.id,
        user_id=client_user.id,
        status=status,
        gig=gig,
    )
    db.add(contract)
    await db.commit()

    return SimpleNamespace(
        client=client_user,
        freelancer=freelancer,
        gig=gig,
        contract=contract,
    )


@pytest_asyncio.fixture()
async def chat(db_session):
    """An accepted contract between a client and a freelancer."""
    return await seed_contract(db_session)


@pytest.fixture
def seed(db_session):
    """seed(**kwargs) → another contract, e.g. seed(status="pending")."""

    def _seed(**kwargs):
        return seed_contract(db_session, **kwargs)

    return _seed
