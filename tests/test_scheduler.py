import pytest

from playlog.collecter.scheduler import IngestionScheduler, INGEST_JOB_ID
from tests.conftest import fake_spotify
from tests.mocks.spotify import Spotify_fake, Tokens_fake, play_event

pytestmark = pytest.mark.collecter


@pytest.mark.asyncio
async def test_arm_schedules_top_of_every_hour():
    scheduler = IngestionScheduler(Tokens_fake())
    assert not scheduler.armed

    try:
        scheduler.arm()
        scheduler.arm()  # Re-authorizing must not stack jobs.

        assert scheduler.armed
        jobs = scheduler._scheduler.get_jobs()
        assert [job.id for job in jobs] == [INGEST_JOB_ID]

        fields = {f.name: str(f) for f in jobs[0].trigger.fields}
        assert fields["minute"] == "0"
        assert fields["hour"] == "*"
        assert jobs[0].coalesce is True
        assert jobs[0].max_instances == 1
    finally:
        await scheduler.shutdown()

    assert not scheduler._scheduler.running


@pytest.mark.asyncio
async def test_run_now_ingests(test_db):
    scheduler = IngestionScheduler(Tokens_fake())

    with fake_spotify(Spotify_fake(items=[play_event()])):
        result = await scheduler.run_now()

    assert result.saved == 1


@pytest.mark.asyncio
async def test_shutdown_before_arm_is_fine():
    await IngestionScheduler(Tokens_fake()).shutdown()
