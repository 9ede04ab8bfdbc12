"""Shared fixtures: settings, cipher and an in-memory SQLite token store."""

import os

# Settings are read once and cached; the key must be in place before any
# socialhub module builds them.
TEST_SECRET = "test-encryption-secret-0123456789abcdef"
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", TEST_SECRET)

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from socialhub.core.config import Settings
from socialhub.core.database import Base
from socialhub.core.message_bus import MessageBus
from socialhub.core.security import TokenCipher
from socialhub.core.token_store import TokenStore
import socialhub.models.database  # noqa: F401  (registers tables on Base.metadata)


@pytest.fixture(scope="session")
def cipher():
    return TokenCipher(TEST_SECRET)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        TOKEN_ENCRYPTION_KEY=TEST_SECRET,
        TELEGRAM_ENABLED=True,
        TELEGRAM_BOT_TOKEN="123:abc",
        SLACK_ENABLED=True,
        SLACK_BOT_TOKEN="xoxb-operator",
        SLACK_SIGNING_SECRET="slack-signing-secret",
        FACEBOOK_ENABLED=True,
        FB_PAGE_ACCESS_TOKEN="page-token",
        FB_VERIFY_TOKEN="verify-me",
        FB_APP_ID="fb-app",
        FB_APP_SECRET="fb-secret",
        SLACK_CLIENT_ID="slack-app",
        SLACK_CLIENT_SECRET="slack-secret",
        GOOGLE_CLIENT_ID="google-app",
        GOOGLE_CLIENT_SECRET="google-secret",
        TWITTER_CLIENT_ID="twitter-app",
        TWITTER_CLIENT_SECRET="twitter-secret",
    )


@pytest.fixture
def message_bus():
    return MessageBus()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def token_store(cipher, session_factory):
    return TokenStore(cipher, session_factory)
