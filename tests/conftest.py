import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from buyer_leads.db.base import Base
from buyer_leads.models import Lead, LeadHistory, User  # noqa: F401
from buyer_leads.models.enums import Role
from buyer_leads.services.auth import Identity


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session


async def _add_user(session: AsyncSession, external_id: str, email: str, role: Role) -> Identity:
    user = User(id=uuid.uuid4(), external_id=external_id, email=email, name=external_id, role=role)
    session.add(user)
    await session.commit()
    return Identity(id=user.id, role=user.role, email=user.email)


@pytest.fixture
async def user_a(db_session):
    return await _add_user(db_session, "user-a", "a@example.com", Role.USER)


@pytest.fixture
async def user_b(db_session):
    return await _add_user(db_session, "user-b", "b@example.com", Role.USER)


@pytest.fixture
async def admin(db_session):
    return await _add_user(db_session, "admin", "admin@example.com", Role.ADMIN)


def make_lead(**overrides):
    """A valid wire-form lead; override any field by its camelCase name."""
    data = {
        "fullName": "Asha Verma",
        "email": "asha@example.com",
        "phone": "9876543210",
        "city": "Chandigarh",
        "propertyType": "Apartment",
        "bhk": "2",
        "purpose": "Buy",
        "budgetMin": 5000000,
        "budgetMax": 7500000,
        "timeline": "0-3m",
        "source": "Website",
        "notes": "Prefers a corner unit",
        "tags": ["hot", "nri"],
    }
    data.update(overrides)
    return data


@pytest.fixture
def lead_payload():
    return make_lead
