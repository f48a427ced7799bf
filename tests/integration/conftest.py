"""Fixtures backed by a throwaway SQLite database."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pdv_sentinel.db.models import Base, Employee
from pdv_sentinel.db.store import EntityStore
from pdv_sentinel.domains.audit.recorder import AuditRecorder


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sentinel.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        session.add_all(
            [
                Employee(cpf="11111111111", name="Ana Souza"),
                Employee(cpf="22222222222", name="Bruno Lima"),
            ]
        )
        await session.commit()

    yield factory
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> EntityStore:
    return EntityStore(session_factory)


@pytest.fixture
def recorder(session_factory) -> AuditRecorder:
    return AuditRecorder(session_factory)
