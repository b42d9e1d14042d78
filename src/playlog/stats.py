"""
Listening statistics over the stored plays.

Every "top" query and the listening time only look at the trailing WINDOW.
Queries return None when the window holds no plays, the API turns that into a
"no data" message rather than an error.
"""
from datetime import datetime, timedelta

import logging
LOGGER = logging.getLogger(__name__)

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from playlog.db import pass_session_capable
from playlog.errors import MissingArtworkVariant, StoreError
from playlog.models import Play, PlayArtist, utcnow
from playlog.collecter.spotify import RECENT_LIMIT, ARTIST_ART_WIDTH, fetch_artist, pick_image

WINDOW = timedelta(days=7)
NO_DATA_MESSAGE = "No listening data found for the past 7 days"


def window_start(now: datetime = None) -> datetime:
    return (now or utcnow()) - WINDOW


async def _execute(session, stmt, description: str):
    try:
        return await session.execute(stmt)
    except SQLAlchemyError as e:
        raise StoreError(f"Could not query {description}: {e}") from e


@pass_session_capable
async def recent_plays(limit: int = RECENT_LIMIT, session=None) -> list[dict]:
    stmt = (select(Play)
            .options(selectinload(Play.artists))
            .order_by(Play.played_at.desc())
            .limit(limit))
    result = await _execute(session, stmt, "recent plays")
    return [play.to_dict() for play in result.scalars().all()]


@pass_session_capable
async def _top_artist_row(now: datetime = None, session=None):
    listens = func.count().label("listens")
    stmt = (select(PlayArtist.artist_name,
                   func.min(PlayArtist.artist_id).label("artist_id"),
                   listens)
            .join(Play, Play.play_id == PlayArtist.play_id)
            .where(Play.played_at >= window_start(now))
            .group_by(PlayArtist.artist_name)
            .order_by(listens.desc(), PlayArtist.artist_name.asc())
            .limit(1))
    result = await _execute(session, stmt, "top artist")
    return result.first()


async def top_artist(tokens, now: datetime = None) -> dict | None:
    """Most listened artist, with artwork looked up live on Spotify."""
    row = await _top_artist_row(now)
    if row is None:
        return None

    access_token = await tokens.get_valid_access_token()
    artist = await fetch_artist(access_token, row.artist_id)
    try:
        img_url = pick_image(artist.get("images"), ARTIST_ART_WIDTH)
    except MissingArtworkVariant as e:
        LOGGER.warning(f"No artwork for artist '{row.artist_name}': {e}")
        img_url = None

    return {"artist": row.artist_name,
            "artistId": row.artist_id,
            "listens": row.listens,
            "imgURL": img_url}


@pass_session_capable
async def top_song(now: datetime = None, session=None) -> dict | None:
    listens = func.count().label("listens")
    stmt = (select(Play.track_id, Play.name, Play.artwork_url, listens)
            .where(Play.played_at >= window_start(now))
            .group_by(Play.track_id, Play.name, Play.artwork_url)
            .order_by(listens.desc(), Play.name.asc())
            .limit(1))
    row = (await _execute(session, stmt, "top song")).first()
    if row is None:
        return None

    return {"song": row.name,
            "trackId": row.track_id,
            "listens": row.listens,
            "imgURL": row.artwork_url}


@pass_session_capable
async def top_album(now: datetime = None, session=None) -> dict | None:
    since = window_start(now)
    listens = func.count().label("listens")
    stmt = (select(Play.album_id, Play.album, listens)
            .where(Play.played_at >= since)
            .group_by(Play.album_id, Play.album)
            .order_by(listens.desc(), Play.album.asc())
            .limit(1))
    row = (await _execute(session, stmt, "top album")).first()
    if row is None:
        return None

    # Artwork of the first play of that album in the window.
    artwork_stmt = (select(Play.artwork_url)
                    .where(Play.album_id == row.album_id, Play.played_at >= since)
                    .order_by(Play.played_at.asc())
                    .limit(1))
    artwork_url = (await _execute(session, artwork_stmt, "album artwork")).scalar_one_or_none()

    return {"album": row.album,
            "albumId": row.album_id,
            "listens": row.listens,
            "imgURL": artwork_url}


@pass_session_capable
async def listening_stats(now: datetime = None, session=None) -> dict | None:
    stmt = (select(func.count(Play.play_id).label("plays"),
                   func.sum(Play.duration_ms).label("total_ms"))
            .where(Play.played_at >= window_start(now)))
    row = (await _execute(session, stmt, "listening stats")).one()
    if not row.plays:
        return None

    minutes = round((row.total_ms or 0) / 60_000)
    return {"totalListeningTime": {"minutes": minutes}}
