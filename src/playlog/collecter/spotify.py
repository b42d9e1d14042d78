import asyncio
import os

import logging
LOGGER = logging.getLogger(__name__)

import spotipy
from spotipy.exceptions import SpotifyException
from requests.exceptions import RequestException

from playlog.errors import ProviderRequestError, MissingArtworkVariant

RECENT_LIMIT = 50          # Hard cap of the recently-played endpoint.
ALBUM_ART_WIDTH = 300
ARTIST_ART_WIDTH = 320     # Artist images come in 640/320/160, albums in 640/300/64.

REQUESTS_TIMEOUT = float(os.environ.get("SPOTIFY_REQUESTS_TIMEOUT", "10"))
RETRIES = int(os.environ.get("SPOTIFY_RETRIES", "3"))


def spotify_client(access_token: str) -> spotipy.Spotify:
    """Fresh client per call, the token is never kept around."""
    return spotipy.Spotify(auth=access_token,
                           requests_timeout=REQUESTS_TIMEOUT,
                           retries=RETRIES)


async def _call(description: str, func, *args, **kwargs):
    # spotipy is blocking, keep it off the event loop.
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except (SpotifyException, RequestException) as e:
        raise ProviderRequestError(f"{description} failed: {e}") from e


async def fetch_recently_played(access_token: str, limit: int = RECENT_LIMIT) -> list[dict]:
    LOGGER.debug(f"Requesting {limit} recently played tracks.")

    sp = spotify_client(access_token)
    chunk = await _call("Recently played request", sp.current_user_recently_played, limit=limit)

    items = chunk.get("items", []) if chunk else []
    LOGGER.debug(f"Got {len(items)} recently played items.")
    return items


async def fetch_artist(access_token: str, artist_id: str) -> dict:
    sp = spotify_client(access_token)
    return await _call(f"Artist lookup for '{artist_id}'", sp.artist, artist_id)


def pick_image(images: list[dict], width: int) -> str:
    for image in images or []:
        if image.get("width") == width:
            return image["url"]

    raise MissingArtworkVariant(width, [image.get("width") for image in images or []])
