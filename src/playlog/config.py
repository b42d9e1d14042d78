import os
from dataclasses import dataclass, field

from dotenv import load_dotenv
load_dotenv()

SCOPES = ['user-read-recently-played',
          'user-top-read']

DEFAULT_CORS_ORIGINS = ["http://localhost:5173"]


def _split_origins(raw: str | None) -> list[str]:
    if not raw:
        return list(DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    client_id: str
    client_secret: str
    redirect_uri: str = "http://127.0.0.1:3000/redirect"
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    host: str = "0.0.0.0"
    port: int = 3000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            client_id=os.environ["SPOTIFY_CLIENT_ID"],
            client_secret=os.environ["SPOTIFY_CLIENT_SECRET"],
            redirect_uri=os.environ.get("SPOTIFY_REDIRECT_URI", "http://127.0.0.1:3000/redirect"),
            cors_origins=_split_origins(os.environ.get("PLAYLOG_CORS_ORIGINS")),
            host=os.environ.get("PLAYLOG_HOST", "0.0.0.0"),
            port=int(os.environ.get("PLAYLOG_PORT", "3000")),
        )
