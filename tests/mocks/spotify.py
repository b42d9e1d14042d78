from datetime import datetime, timedelta, timezone

from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyOauthError

AUTHORIZE_URL = "https://accounts.spotify.com/authorize?client_id=test&scope=user-read-recently-played+user-top-read"
VALID_CODE = "good-code"


class Clock_fake:
    def __init__(self, now: datetime = None):
        self.now = now or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


class SpotifyOAuth_fake:
    def __init__(self, expires_in=3600, rotate_refresh_token=False):
        self.expires_in = expires_in
        self.rotate_refresh_token = rotate_refresh_token
        self.fail_refresh = False
        self.refresh_calls = 0
        self.exchange_calls = 0

    def get_authorize_url(self) -> str:
        return AUTHORIZE_URL

    def get_access_token(self, code=None, as_dict=True, check_cache=True) -> dict:
        self.exchange_calls += 1
        if code != VALID_CODE:
            raise SpotifyOauthError("error: invalid_grant, error_description: Invalid authorization code",
                                    error="invalid_grant",
                                    error_description="Invalid authorization code")

        return {"access_token": "access-0",
                "refresh_token": "refresh-0",
                "expires_in": self.expires_in,
                "token_type": "Bearer",
                "scope": "user-read-recently-played user-top-read"}

    def refresh_access_token(self, refresh_token: str) -> dict:
        if self.fail_refresh:
            raise SpotifyOauthError("error: invalid_grant, error_description: Refresh token revoked",
                                    error="invalid_grant",
                                    error_description="Refresh token revoked")

        self.refresh_calls += 1
        token_info = {"access_token": f"access-{self.refresh_calls}",
                      "expires_in": self.expires_in,
                      "token_type": "Bearer"}
        if self.rotate_refresh_token:
            token_info["refresh_token"] = f"refresh-{self.refresh_calls}"
        return token_info


class Tokens_fake:
    """Stands in for TokenManager where only a token is needed."""

    def __init__(self, token="access-token", error: Exception = None):
        self.token = token
        self.error = error
        self.calls = 0

    async def get_valid_access_token(self) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.token


class Spotify_fake:
    def __init__(self, items: list[dict] = None, artists: dict = None, fail: bool = False):
        self.items = items or []
        self.artists = artists or {}
        self.fail = fail
        self.requested_limits = []

    def current_user_recently_played(self, limit=50, after=None, before=None) -> dict:
        if self.fail:
            raise SpotifyException(503, -1, "Service unavailable")

        self.requested_limits.append(limit)
        return {"items": self.items[:limit], "limit": limit, "next": None}

    def artist(self, artist_id: str) -> dict:
        if self.fail or artist_id not in self.artists:
            raise SpotifyException(404, -1, f"Artist {artist_id} not found")
        return self.artists[artist_id]


def image_list(url_prefix: str, widths=(640, 300, 64)) -> list[dict]:
    return [{"url": f"{url_prefix}-{w}.jpg", "width": w, "height": w} for w in widths]


def spotify_time(value: datetime) -> str:
    """Format like the recently-played feed: millisecond precision, Z suffix."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def play_event(track_id="track1", name="Song A", played_at: datetime = None,
               artists=(("Artist 1", "artist1"),), album="Album 1", album_id="album1",
               duration_ms=200_000, images=None) -> dict:
    played_at = played_at or datetime(2024, 6, 1, 11, 0, tzinfo=timezone.utc)
    return {
        "track": {
            "id": track_id,
            "name": name,
            "duration_ms": duration_ms,
            "artists": [{"name": n, "id": i} for n, i in artists],
            "album": {"id": album_id,
                      "name": album,
                      "images": image_list(f"https://i.scdn.co/{album_id}") if images is None else images},
            "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
        },
        "played_at": spotify_time(played_at),
        "context": None,
    }
