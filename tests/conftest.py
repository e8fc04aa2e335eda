"""
Pytest configuration and fixtures for async database testing.

Every test gets its own in-memory SQLite database (aiosqlite) with all tables
created, so tests never share rows. The environment is pinned before the
application is imported because settings are cached on first use.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["STORE_JWT_SECRET"] = "test-store-secret"
os.environ["ADMIN_JWT_SECRET"] = "test-admin-secret"
os.environ["BOOTSTRAP_ADMIN_USERNAME"] = ""
os.environ["BOOTSTRAP_ADMIN_PASSWORD"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from orderdesk.core.db import Base, get_session
from orderdesk.main import app
from orderdesk.models import AdminUser, Store, StoreSlugHistory, StoreUser
from orderdesk.roles import AdminRole, StoreRole
from orderdesk.security import create_admin_token, create_store_token, hash_password
from orderdesk.seed import seed_default_settings_for_store

PASSWORD = "correct-horse"

ACME_ID = "10234567"
BETA_ID = "20000001"


# ────────────────────────────────────────────────────────────────
# Database
# ────────────────────────────────────────────────────────────────

@pytest.fixture(scope="function")
async def async_engine():
    """Fresh in-memory database per test; StaticPool keeps it on one connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
async def async_session(async_engine):
    session_maker = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


@pytest.fixture(scope="function")
def asgi_transport(async_session):
    """ASGI transport for the app with the database dependency pointed at the test session."""

    async def override_get_session():
        yield async_session

    app.dependency_overrides[get_session] = override_get_session
    yield ASGITransport(app=app)
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client(asgi_transport):
    async with AsyncClient(transport=asgi_transport, base_url="http://test") as ac:
        yield ac


# ────────────────────────────────────────────────────────────────
# Data helpers
# ────────────────────────────────────────────────────────────────

async def create_store(session, store_id, slug, name=None, is_active=True, old_slugs=()):
    store = Store(store_id=store_id, store_name=name or slug.title(), store_slug=slug, is_active=is_active)
    session.add(store)
    await session.flush()
    for old_slug in old_slugs:
        session.add(StoreSlugHistory(store_id=store_id, old_slug=old_slug))
    await seed_default_settings_for_store(session, store_id)
    await session.commit()
    return store


async def create_store_user(session, store, username, role=StoreRole.STORE_ADMIN, password=PASSWORD):
    user = StoreUser(
        store_id=store.store_id,
        username=username,
        password_hash=hash_password(password),
        role=role,
    )
    session.add(user)
    await session.commit()
    return user


async def create_admin(session, username, role=AdminRole.SUPER_ADMIN, password=PASSWORD):
    admin = AdminUser(username=username, password_hash=hash_password(password), role=role)
    session.add(admin)
    await session.commit()
    return admin


def store_headers(user) -> dict:
    issued = create_store_token(
        user_id=str(user.id),
        store_id=user.store_id,
        username=user.username,
        role=user.role.value,
    )
    return {"Authorization": f"Bearer {issued.token}"}


def admin_headers(admin) -> dict:
    issued = create_admin_token(admin_id=str(admin.id), username=admin.username, role=admin.role.value)
    return {"Authorization": f"Bearer {issued.token}"}


# ────────────────────────────────────────────────────────────────
# Stores and users
# ────────────────────────────────────────────────────────────────

@pytest.fixture
async def acme(async_session):
    """Store "Acme" (10234567), renamed from "acme" to "acme-shop"."""
    return await create_store(async_session, ACME_ID, "acme-shop", name="Acme", old_slugs=("acme",))


@pytest.fixture
async def beta(async_session):
    return await create_store(async_session, BETA_ID, "beta-store", name="Beta Store")


@pytest.fixture
async def acme_admin(async_session, acme):
    return await create_store_user(async_session, acme, "owner", StoreRole.STORE_ADMIN)


@pytest.fixture
async def acme_clerk(async_session, acme):
    return await create_store_user(async_session, acme, "clerk", StoreRole.DATA_ENTRY)


@pytest.fixture
async def acme_viewer(async_session, acme):
    return await create_store_user(async_session, acme, "viewer", StoreRole.VIEWER)


@pytest.fixture
async def beta_admin(async_session, beta):
    return await create_store_user(async_session, beta, "owner", StoreRole.STORE_ADMIN)


@pytest.fixture
def acme_headers(acme_admin):
    return store_headers(acme_admin)


@pytest.fixture
def beta_headers(beta_admin):
    return store_headers(beta_admin)


@pytest.fixture
async def super_admin(async_session):
    return await create_admin(async_session, "root", AdminRole.SUPER_ADMIN)


@pytest.fixture
def super_admin_headers(super_admin):
    return admin_headers(super_admin)
