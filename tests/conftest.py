"""Shared fixtures."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from imageproxy.models.db import Base
from imageproxy.services.proxy_links import ProxyLinkBuilder
from imageproxy.services.url_rewriter import ReferenceRewriter


@pytest.fixture
def links() -> ProxyLinkBuilder:
    """Link builder pointing at a local proxy endpoint."""
    return ProxyLinkBuilder("http://localhost")


@pytest.fixture
def rewriter(links: ProxyLinkBuilder) -> ReferenceRewriter:
    """Rewriter using the local link builder."""
    return ReferenceRewriter(links)


@pytest_asyncio.fixture
async def session_factory():
    """In-memory database with tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    """A database session on the in-memory database."""
    async with session_factory() as session:
        yield session
