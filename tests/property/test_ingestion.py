import pytest
from hypothesis import given, settings, HealthCheck
from sqlalchemy import select, func

from playlog.db import get_session
from playlog.models import Play
from playlog.collecter.listens import run_ingestion, save_plays, parse_played_at
from tests.conftest import fresh_db, fake_spotify
from tests.mocks.spotify import Spotify_fake, Tokens_fake
from tests.strategies.plays import overlapping_batches_strat

pytestmark = pytest.mark.collecter


async def n_plays():
    async with get_session() as s:
        result = await s.execute(select(func.count(Play.play_id)))
        return result.scalar()


@pytest.mark.asyncio
@given(batches=overlapping_batches_strat())
@settings(max_examples=25, deadline=None, suppress_health_check=[HealthCheck.too_slow])
async def test_saved_count_is_number_of_new_played_at(batches):
    """Saved count of a poll equals the played_at values not stored yet."""
    stored, polled = batches

    async with fresh_db():
        await save_plays(stored)

        stored_keys = {parse_played_at(e["played_at"]) for e in stored}
        polled_keys = {parse_played_at(e["played_at"]) for e in polled}

        with fake_spotify(Spotify_fake(items=polled)):
            result = await run_ingestion(Tokens_fake())

        assert result is not None
        assert result.saved == len(polled_keys - stored_keys)
        assert result.duplicates == len(polled) - result.saved
        assert result.failed == 0
        assert await n_plays() == len(stored_keys | polled_keys)


@pytest.mark.asyncio
@given(batches=overlapping_batches_strat(max_size=20))
@settings(max_examples=15, deadline=None, suppress_health_check=[HealthCheck.too_slow])
async def test_repeated_poll_is_a_no_op(batches):
    """Polling the same feed twice never adds rows the second time."""
    _, polled = batches

    async with fresh_db():
        with fake_spotify(Spotify_fake(items=polled)):
            await run_ingestion(Tokens_fake())
            count = await n_plays()

            second = await run_ingestion(Tokens_fake())

        assert second.saved == 0
        assert second.duplicates == len(polled)
        assert await n_plays() == count
