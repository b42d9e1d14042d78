import contextlib
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from playlog.db import DatabaseManager, get_db_manager
from playlog.collecter.tokens import CredentialStore, TokenManager
from tests.mocks.spotify import Clock_fake, SpotifyOAuth_fake, Spotify_fake

TEST_DB_URL = "sqlite+aiosqlite://"
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@contextlib.asynccontextmanager
async def fresh_db():
    """Fresh in-memory database, usable where fixtures can't be (hypothesis examples)."""
    await DatabaseManager.cleanup_all_instances()

    manager = get_db_manager()
    await manager.initialize(TEST_DB_URL)
    await manager.create_tables()
    try:
        yield manager
    finally:
        await DatabaseManager.cleanup_all_instances()


@contextlib.contextmanager
def fake_spotify(fake: Spotify_fake):
    """Every spotify_client(token) call hands out the fake."""
    with patch("playlog.collecter.spotify.spotify_client", lambda access_token: fake):
        yield fake


@pytest.fixture
async def test_db():
    async with fresh_db() as manager:
        yield manager


@pytest.fixture
def clock():
    return Clock_fake(NOW)


@pytest.fixture
def oauth():
    return SpotifyOAuth_fake()


@pytest.fixture
def tokens(test_db, oauth, clock):
    return TokenManager(oauth, store=CredentialStore(), clock=clock)
