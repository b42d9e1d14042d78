from collections import Counter

import pytest
from hypothesis import given, settings, strategies as st, HealthCheck

from playlog import stats
from playlog.collecter.listens import save_plays, parse_played_at
from tests.conftest import fresh_db
from tests.strategies.plays import BASE_TIME, play_event_strat, played_at_strat

pytestmark = pytest.mark.stats

TRACKS = ["trackA", "trackB", "trackC"]


@st.composite
def history_strat(draw):
    times = draw(st.lists(played_at_strat(max_age_days=14), max_size=30, unique=True))
    return [draw(play_event_strat(played_at=t, track_ids=TRACKS)) for t in times]


@pytest.mark.asyncio
@given(history=history_strat())
@settings(max_examples=25, deadline=None, suppress_health_check=[HealthCheck.too_slow])
async def test_top_song_only_counts_the_window(history):
    in_window = [e for e in history
                 if parse_played_at(e["played_at"]) >= stats.window_start(BASE_TIME)]

    async with fresh_db():
        await save_plays(history)
        top = await stats.top_song(now=BASE_TIME)
        listening = await stats.listening_stats(now=BASE_TIME)

    if not in_window:
        assert top is None
        assert listening is None
        return

    counts = Counter(e["track"]["name"] for e in in_window)
    best = max(counts.values())
    assert top["listens"] == best
    assert top["song"] == min(name for name, n in counts.items() if n == best)

    total_ms = sum(e["track"]["duration_ms"] for e in in_window)
    assert listening == {"totalListeningTime": {"minutes": round(total_ms / 60_000)}}
