from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, Text,
    Index, CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func


Base = declarative_base()

CREDENTIAL_ID = 1  # Single-user app, there is only ever one credential row.


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def as_utc(value: datetime) -> datetime:
    """SQLite hands DateTime columns back naive, Postgres hands them back aware."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Credential(Base):
    __tablename__ = 'credentials'

    credential_id = Column(Integer, primary_key=True, default=CREDENTIAL_ID)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=func.now())

    __table_args__ = (
        CheckConstraint(f'credential_id = {CREDENTIAL_ID}', name='chk_credentials_single_row'),
    )

    def __repr__(self):
        return f"<Credential expires_at={self.expires_at}>"


class Play(Base):
    __tablename__ = 'plays'

    play_id = Column(Integer, primary_key=True, autoincrement=True)
    track_id = Column(String(64), nullable=False)
    name = Column(String(512), nullable=False)
    album = Column(String(512), nullable=False)
    album_id = Column(String(64), nullable=False)
    artwork_url = Column(String(1024))  # Null when the 300px variant was missing.
    spotify_link = Column(String(1024), nullable=False)
    played_at = Column(DateTime(timezone=True), nullable=False)
    duration_ms = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=func.now())

    artists = relationship("PlayArtist",
                           back_populates="play",
                           order_by="PlayArtist.position",
                           cascade="all, delete-orphan")

    __table_args__ = (
        # Feed has no event id, played_at is the dedup key.
        UniqueConstraint('played_at', name='uq_plays_played_at'),
        Index('idx_plays_track_id', 'track_id'),
        Index('idx_plays_album_id', 'album_id'),
        CheckConstraint('duration_ms >= 0', name='chk_plays_duration_positive'),
    )

    def to_dict(self) -> dict:
        return {
            "trackId": self.track_id,
            "name": self.name,
            "artists": [{"name": a.artist_name, "id": a.artist_id} for a in self.artists],
            "album": self.album,
            "albumId": self.album_id,
            "artworkUrl": self.artwork_url,
            "spotifyLink": self.spotify_link,
            "playedAt": as_utc(self.played_at).isoformat(),
            "durationMs": self.duration_ms,
        }


class PlayArtist(Base):
    __tablename__ = 'play_artists'

    play_id = Column(Integer,
                     ForeignKey('plays.play_id',
                                onupdate='CASCADE',
                                ondelete='CASCADE'),
                     primary_key=True)
    position = Column(Integer, primary_key=True)
    artist_id = Column(String(64), nullable=False)
    artist_name = Column(String(512), nullable=False)

    play = relationship("Play", back_populates="artists")

    __table_args__ = (
        Index('idx_play_artists_artist_name', 'artist_name'),
        CheckConstraint('position >= 0', name='chk_play_artists_position_positive'),
    )
