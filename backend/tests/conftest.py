"""
Test configuration and fixtures.
Uses a file-backed SQLite database (aiosqlite) per test so the atomic
upsert and increment run against a real transactional store.
"""
import os

# Set test environment before any imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_unused.db"
os.environ["REDIS_URL"] = "redis://localhost:6379/0"
os.environ["ENVIRONMENT"] = "test"
os.environ["ENABLE_USER_MANAGEMENT"] = "true"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["POSTHOG_API_KEY"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import json
import pytest
from typing import AsyncGenerator, Callable
from unittest.mock import MagicMock

import httpx
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.ai.openai_provider import CompletionResult
from app.auth.dependencies import KeyResolver
from app.auth.key_verification import KeyVerifier
from app.config import AuthorizationMode
from app.models.base import Base
from app.models.usage_record import UsageRecord
from app.services.metering_pipeline import MeteringPipeline


VALID_KEY = "nc_valid_key"
VALID_USER_ID = "user_123"
TITLE_TOKENS = 50


@pytest.fixture(scope="function")
async def engine(tmp_path):
    """Fresh database file per test."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_maker(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    async with session_maker() as session:
        yield session


@pytest.fixture(scope="function")
def make_record(db_session: AsyncSession) -> Callable:
    """Factory for usage records; unspecified fields use the model defaults."""
    async def _make(user_id: str = VALID_USER_ID, **fields) -> UsageRecord:
        fields.setdefault("max_token_usage", 100_000)
        record = UsageRecord(user_id=user_id, **fields)
        db_session.add(record)
        await db_session.commit()
        await db_session.refresh(record)
        return record

    return _make


@pytest.fixture(scope="function")
def fetch_record(session_maker) -> Callable:
    """Read a record through a fresh session, bypassing any identity map."""
    async def _fetch(user_id: str = VALID_USER_ID):
        async with session_maker() as session:
            result = await session.execute(select(UsageRecord).where(UsageRecord.user_id == user_id))
            return result.scalar_one_or_none()

    return _fetch


def verification_handler(request: httpx.Request) -> httpx.Response:
    """Key service stand-in: VALID_KEY is valid, everything else is not."""
    body = json.loads(request.content)
    if body.get("key") == VALID_KEY:
        return httpx.Response(
            200,
            json={
                "meta": {"requestId": "req_1"},
                "data": {"valid": True, "keyId": "key_1", "identity": {"id": "id_1", "externalId": VALID_USER_ID}},
            },
        )
    return httpx.Response(
        200,
        json={"meta": {"requestId": "req_2"}, "data": {"valid": False, "code": "NOT_FOUND"}},
    )


@pytest.fixture
def key_verifier() -> KeyVerifier:
    return KeyVerifier(
        root_key="root_test",
        api_id="api_test",
        base_url="https://keys.test",
        timeout=1.0,
        transport=httpx.MockTransport(verification_handler),
    )


@pytest.fixture
def session_verifier() -> MagicMock:
    """Session cookie verifier; rejects every cookie unless a test says otherwise."""
    verifier = MagicMock(side_effect=ValueError("invalid session"))
    return verifier


@pytest.fixture
def key_resolver(key_verifier: KeyVerifier, session_verifier: MagicMock) -> KeyResolver:
    return KeyResolver(AuthorizationMode.ENFORCED, verifier=key_verifier, session_verifier=session_verifier)


@pytest.fixture
def pipeline() -> MeteringPipeline:
    return MeteringPipeline(AuthorizationMode.ENFORCED)


@pytest.fixture
def chat_provider() -> MagicMock:
    provider = MagicMock()
    provider.generate_title.return_value = CompletionResult(text="Weekly Planning Notes", total_tokens=TITLE_TOKENS)
    return provider


@pytest.fixture
def transcription_provider() -> MagicMock:
    provider = MagicMock()
    provider.transcribe_from_bytes.return_value = "hello from the recording"
    return provider


def get_test_app(session_maker, resolver: KeyResolver, pipeline: MeteringPipeline,
                 chat_provider, transcription_provider) -> FastAPI:
    """Create a test FastAPI app with overridden dependencies."""
    from app.main import app
    from app.database import get_db
    from app.auth.dependencies import get_key_resolver
    from app.services.metering_pipeline import get_metering_pipeline
    from app.api.title import get_chat_provider
    from app.api.transcribe import get_transcription_provider

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_key_resolver] = lambda: resolver
    app.dependency_overrides[get_metering_pipeline] = lambda: pipeline
    app.dependency_overrides[get_chat_provider] = lambda: chat_provider
    app.dependency_overrides[get_transcription_provider] = lambda: transcription_provider

    return app


@pytest.fixture(scope="function")
async def client(session_maker, key_resolver, pipeline, chat_provider,
                 transcription_provider) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    app = get_test_app(session_maker, key_resolver, pipeline, chat_provider, transcription_provider)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Clean up overrides
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def disabled_client(session_maker, chat_provider,
                          transcription_provider) -> AsyncGenerator[AsyncClient, None]:
    """Client for a self-hosted deployment with user management off."""
    app = get_test_app(
        session_maker,
        KeyResolver(AuthorizationMode.DISABLED),
        MeteringPipeline(AuthorizationMode.DISABLED),
        chat_provider,
        transcription_provider,
    )

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {VALID_KEY}"}
