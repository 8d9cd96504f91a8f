"""Shared models and fixtures for capability tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
from sqlalchemy import Column, Float, Integer, MetaData, String, Table
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from cqrs_ddd_capabilities import CapabilityFactory, SpecCompiler
from cqrs_ddd_capabilities.events import ListenerRegistry, set_listener_registry


class Base(DeclarativeBase):
    pass


class UserRecord(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String, nullable=False, unique=True, info={"type": "text"})
    name = Column(String)
    age = Column(Integer)
    status = Column(String)
    score = Column(Float)


# No primary key: factories must refuse it.
audit_log = Table(
    "audit_log",
    MetaData(),
    Column("message", String),
    Column("level", String),
)


@pytest.fixture(autouse=True)
def listener_registry() -> ListenerRegistry:
    """A fresh listener registry per test so captures never leak."""
    registry = ListenerRegistry()
    set_listener_registry(registry)
    return registry


@pytest.fixture
def users() -> Table:
    return UserRecord.__table__  # type: ignore[return-value]


@pytest.fixture
def audit() -> Table:
    return audit_log


@pytest.fixture
def compiler() -> SpecCompiler:
    return SpecCompiler(UserRecord)


@pytest.fixture
def factory() -> CapabilityFactory:
    return CapabilityFactory(UserRecord)


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()
