import pytest
from datetime import datetime
from typing import AsyncGenerator, Callable, Awaitable
from unittest.mock import patch

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.models import Base, UserRole, RequestType
from app.db.session import register_sqlite_functions
from app.schemas.auth_schemas import Principal
from app.schemas.request_schemas import DocumentRequestResponse
from app.services.request_lifecycle_service import RequestLifecycleService


# Test database setup
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """Create a fresh in-memory database engine per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    register_sqlite_functions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async_session_maker = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def service(db_session: AsyncSession) -> RequestLifecycleService:
    return RequestLifecycleService(db_session)


# Principals
@pytest.fixture
def owner() -> Principal:
    return Principal(id="user-100", role=UserRole.USER, first_name="Asha", last_name="Rao")


@pytest.fixture
def other_user() -> Principal:
    return Principal(id="user-200", role=UserRole.USER, first_name="Vikram", last_name="Iyer")


@pytest.fixture
def admin() -> Principal:
    return Principal(id="admin-1", role=UserRole.ADMIN, first_name="Meera", last_name="Nair")


# Test data factories
@pytest.fixture
def make_request(
    service: RequestLifecycleService, owner: Principal
) -> Callable[..., Awaitable[DocumentRequestResponse]]:
    """Create a request, optionally pinning its creation timestamp."""

    async def _make_request(
        owner_id: str = None,
        request_type: RequestType = RequestType.TRANSCRIPT,
        title: str = "Transcript request",
        description: str = "Need an official transcript",
        created_at: datetime = None,
        **kwargs,
    ) -> DocumentRequestResponse:
        create_kwargs = dict(
            owner_id=owner_id or owner.id,
            request_type=request_type,
            title=title,
            description=description,
            **kwargs,
        )
        if created_at is None:
            return await service.create_request(**create_kwargs)

        with patch(
            "app.services.request_lifecycle_service.naive_utc_now",
            return_value=created_at,
        ):
            return await service.create_request(**create_kwargs)

    return _make_request
