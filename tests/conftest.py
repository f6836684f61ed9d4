from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database.engine import build_engine, get_db, init_db
from app.features.organizations.models import Branch, Organization, Project
from app.main import app


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def session_factory(tmp_path):
    """Session factory over a fresh SQLite file with all tables created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory
    await engine.dispose()


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def database(tmp_path):
    """acme owns api (branch main) and web."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'routes.db'}")
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def seed():
        await init_db(engine)
        async with factory() as session:
            session.add_all([
                Organization(id="acme", slug="acme", name="Acme"),
                Project(id="api", organization_id="acme", name="api"),
                Project(id="web", organization_id="acme", name="web"),
                Branch(id="main", project_id="api", name="main"),
            ])
            await session.commit()

    asyncio.run(seed())

    async def override_get_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield factory
    asyncio.run(engine.dispose())
