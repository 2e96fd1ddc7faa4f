"""Test configuration and fixtures"""
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
import fakeredis
import httpx
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("MODERATION_PROVIDER", "mock")

from shared.auth import SESSION_HEADER
from shared.database import Base, get_db_session
from shared.models import (
    ContentType, MarketplaceProduct, MarketplaceReview, ModerationRule, User, UserReputation,
)
from shared.rbac import Role
from shared.redis_client import get_redis
from shared.sessions import SessionManager
from services.search_service.settings import clear_search_settings_cache


@pytest.fixture(autouse=True)
def search_settings_cache():
    clear_search_settings_cache()
    yield
    clear_search_settings_cache()


@pytest.fixture
async def test_engine():
    """Create test database engine"""
    # Use in-memory SQLite for tests
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Cleanup
    await engine.dispose()


@pytest.fixture
async def test_session(test_engine):
    """Create test database session"""
    async_session = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def fake_redis():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


async def _make_user(session, role: Role, email: str, created_days_ago: int = 365, **kwargs) -> User:
    user = User(
        email=email,
        name=email.split("@")[0].title(),
        role=role,
        created_at=datetime.now(timezone.utc) - timedelta(days=created_days_ago),
        **kwargs
    )
    session.add(user)
    await session.flush()
    return user


@pytest.fixture
async def user(test_session):
    return await _make_user(test_session, Role.USER, "farmer@example.com")


@pytest.fixture
async def other_user(test_session):
    return await _make_user(test_session, Role.USER, "grower@example.com")


@pytest.fixture
async def vendor(test_session):
    return await _make_user(test_session, Role.VENDOR, "seller@example.com")


@pytest.fixture
async def moderator(test_session):
    return await _make_user(test_session, Role.MODERATOR, "moderator@example.com")


@pytest.fixture
async def admin(test_session):
    return await _make_user(test_session, Role.ADMIN, "admin@example.com")


@pytest.fixture
async def new_user(test_session):
    return await _make_user(test_session, Role.USER, "newbie@example.com", created_days_ago=2)


@pytest.fixture
def session_manager(fake_redis):
    return SessionManager(fake_redis)


@pytest.fixture
def auth_headers(session_manager):
    """Factory returning ``X-Session-ID`` headers for a freshly created session"""
    async def make(for_user: User) -> dict:
        session = await session_manager.create_session(for_user, "pytest", "127.0.0.1")
        return {SESSION_HEADER: session.id}
    return make


@pytest.fixture
def make_rule(test_session):
    async def make(**kwargs) -> ModerationRule:
        kwargs.setdefault("content_type", ContentType.POST)
        rule = ModerationRule(**kwargs)
        test_session.add(rule)
        await test_session.flush()
        return rule
    return make


@pytest.fixture
async def product(test_session, vendor):
    item = MarketplaceProduct(
        seller_id=vendor.id,
        name="Organic Tomato Seeds",
        description="Heirloom tomato seeds for greenhouse growing",
        category="seeds",
        price=4.5,
    )
    test_session.add(item)
    await test_session.flush()
    return item


@pytest.fixture
def make_review(test_session, product, user):
    async def make(**kwargs) -> MarketplaceReview:
        kwargs.setdefault("product_id", product.id)
        kwargs.setdefault("user_id", user.id)
        kwargs.setdefault("rating", 4)
        kwargs.setdefault("content", "Germinated well in my greenhouse")
        review = MarketplaceReview(**kwargs)
        test_session.add(review)
        await test_session.flush()
        return review
    return make


@pytest.fixture
def set_reputation(test_session):
    async def make(for_user: User, score: float) -> UserReputation:
        reputation = UserReputation(user_id=for_user.id, reputation_score=score)
        test_session.add(reputation)
        await test_session.flush()
        return reputation
    return make


@pytest.fixture
def api_client(test_session, fake_redis):
    """Factory for an httpx client bound to a service app with test dependencies"""
    clients = []

    def make(app, overrides=None) -> httpx.AsyncClient:
        async def override_db_session():
            yield test_session
            await test_session.flush()

        app.dependency_overrides[get_db_session] = override_db_session
        app.dependency_overrides[get_redis] = lambda: fake_redis
        app.dependency_overrides.update(overrides or {})

        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
        clients.append((app, client))
        return client

    yield make

    for app, _ in clients:
        app.dependency_overrides.clear()
