"""
Shared fixtures for Draftwright backend tests.

API tests run against an in-memory SQLite database by default (aiosqlite,
single shared connection).  Point TEST_DATABASE_URL at a PostgreSQL database
to run them against the production driver instead.  Tables are created before
and dropped after every test, so each test starts with a clean slate.
"""
from __future__ import annotations

import io
import os
from typing import AsyncGenerator, Iterable, Optional, Tuple

import pytest_asyncio
from docx import Document
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

# Override DATABASE_URL *before* any app module is imported, so that
# settings.DATABASE_URL and the global engine point at the test DB.
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402


def _test_engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        # One shared connection keeps the in-memory database alive
        return create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a DB session for each test. After the test, all tables are dropped
    so each test starts with a clean slate.
    """
    engine = _test_engine()

    async with engine.begin() as conn:
        from app.models import database_models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the DB dependency
    overridden to use the per-test session.
    """

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def build_docx(paragraphs: Iterable[Tuple[str, Optional[str]]]) -> bytes:
    """
    Build a DOCX in memory from ``(text, style)`` pairs.

    A style of ``None`` means a plain Normal paragraph.
    """
    doc = Document()
    for text, style in paragraphs:
        if style is None:
            doc.add_paragraph(text)
        else:
            doc.add_paragraph(text, style=style)
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def sample_template_docx() -> bytes:
    """A small research-report template with two levels of headings."""
    return build_docx(
        [
            ("Introduction", "Heading 1"),
            ("Describe the research question.", None),
            ("Background", "Heading 2"),
            ("Methods", "Heading 1"),
            ("Results", "Heading 1"),
            ("{{DISCUSSION}}", "Heading 1"),
        ]
    )


def upload(filename: str, data: bytes):
    return {"file": (filename, io.BytesIO(data), DOCX_MEDIA_TYPE)}
