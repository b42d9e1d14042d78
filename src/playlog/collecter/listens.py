import traceback
import logging
LOGGER = logging.getLogger(__name__)

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from playlog.db import pass_session_capable, insert_for
from playlog.errors import DuplicatePlayError, MissingArtworkVariant, StoreError
from playlog.models import Play, PlayArtist
from playlog.collecter.spotify import (
    RECENT_LIMIT, ALBUM_ART_WIDTH,
    fetch_recently_played, pick_image
)


@dataclass(frozen=True)
class ArtistRef:
    name: str
    id: str


@dataclass(frozen=True)
class PlayRecord:
    track_id: str
    name: str
    artists: tuple[ArtistRef, ...]
    album: str
    album_id: str
    artwork_url: str | None
    spotify_link: str
    played_at: datetime
    duration_ms: int


@dataclass
class IngestionResult:
    fetched: int = 0
    saved: int = 0
    duplicates: int = 0
    failed: int = 0


def parse_played_at(value: str) -> datetime:
    """Spotify sends e.g. '2024-03-01T18:22:05.123Z'."""
    played_at = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if played_at.tzinfo is None:
        played_at = played_at.replace(tzinfo=timezone.utc)
    return played_at.astimezone(timezone.utc)


def to_play_record(item: dict) -> PlayRecord:
    track = item["track"]
    album = track["album"]

    artists = tuple(ArtistRef(name=a["name"], id=a["id"]) for a in track["artists"])
    if not artists:
        raise ValueError(f"Track '{track['name']}' has no artists.")

    try:
        artwork_url = pick_image(album.get("images"), ALBUM_ART_WIDTH)
    except MissingArtworkVariant as e:
        LOGGER.warning(f"Storing '{track['name']}' without artwork: {e}")
        artwork_url = None

    return PlayRecord(
        track_id=track["id"],
        name=track["name"],
        artists=artists,
        album=album["name"],
        album_id=album["id"],
        artwork_url=artwork_url,
        spotify_link=track["external_urls"]["spotify"],
        played_at=parse_played_at(item["played_at"]),
        duration_ms=int(track["duration_ms"]),
    )


@pass_session_capable
async def insert_play(record: PlayRecord, session=None) -> int:
    """
    Insert-if-absent on played_at.

    Raises DuplicatePlayError when the play is already stored, StoreError on
    any other database failure. Returns the new play_id.
    """
    stmt = (
        insert_for(session, Play)
        .values(track_id=record.track_id,
                name=record.name,
                album=record.album,
                album_id=record.album_id,
                artwork_url=record.artwork_url,
                spotify_link=record.spotify_link,
                played_at=record.played_at,
                duration_ms=record.duration_ms)
        .on_conflict_do_nothing(index_elements=['played_at'])
        .returning(Play.play_id)
    )

    try:
        result = await session.execute(stmt)
        play_id = result.scalar_one_or_none()
        if play_id is None:
            raise DuplicatePlayError(record.played_at)

        session.add_all([PlayArtist(play_id=play_id,
                                    position=position,
                                    artist_id=artist.id,
                                    artist_name=artist.name)
                         for position, artist in enumerate(record.artists)])
        await session.flush()
    except SQLAlchemyError as e:
        raise StoreError(f"Could not save play '{record.name}': {e}") from e

    return play_id


async def save_plays(items: list[dict]) -> IngestionResult:
    """Map and store each item on its own, one bad item never sinks the batch."""
    result = IngestionResult(fetched=len(items))

    for item in items:
        try:
            record = to_play_record(item)
        except Exception:
            LOGGER.error(f"Skipping malformed play event {item}: {traceback.format_exc()}")
            result.failed += 1
            continue

        try:
            await insert_play(record)
        except DuplicatePlayError:
            LOGGER.debug(f"Already saved listen: {record.name}")
            result.duplicates += 1
        except (StoreError, SQLAlchemyError) as e:
            LOGGER.error(f"Error saving listen: {record.name}, {e}")
            result.failed += 1
        else:
            LOGGER.info(f"Saved new listen: {record.name}")
            result.saved += 1

    return result


async def run_ingestion(tokens) -> IngestionResult | None:
    """One scheduled run. Never raises, a failed run just waits for the next one."""
    LOGGER.info("Making API call for recent tracks.")

    try:
        access_token = await tokens.get_valid_access_token()
        items = await fetch_recently_played(access_token, limit=RECENT_LIMIT)
    except Exception:
        LOGGER.error(f"Ingestion run aborted: {traceback.format_exc()}")
        return None

    try:
        result = await save_plays(items)
    except Exception:
        LOGGER.error(f"Ingestion run failed while saving: {traceback.format_exc()}")
        return None

    LOGGER.info(f"Finished processing recently played tracks: saved {result.saved} " \
                f"of {result.fetched} ({result.duplicates} already saved, {result.failed} failed).")
    return result
