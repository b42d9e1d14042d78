"""
Spotify credential lifecycle.

One credential row is kept in the database. Access tokens are refreshed lazily:
whoever asks for a token within REFRESH_MARGIN of expiry triggers the refresh,
there is no separate refresh timer.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Callable

import logging
LOGGER = logging.getLogger(__name__)

from requests.exceptions import RequestException
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from playlog.config import SCOPES, Settings
from playlog.db import pass_session_capable, insert_for
from playlog.errors import AuthExchangeError, NoCredentialError, RefreshError, StoreError
from playlog.models import Credential, CREDENTIAL_ID, as_utc, utcnow

REFRESH_MARGIN = timedelta(seconds=30)


def build_oauth(settings: Settings) -> SpotifyOAuth:
    return SpotifyOAuth(
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        redirect_uri=settings.redirect_uri,
        scope=SCOPES,
        cache_handler=MemoryCacheHandler(),  # The DB is the cache, never write .cache files.
        open_browser=False,
    )


class CredentialStore:
    @pass_session_capable
    async def load(self, session=None) -> Credential | None:
        try:
            result = await session.execute(
                select(Credential)
                .where(Credential.credential_id == CREDENTIAL_ID)
                .execution_options(populate_existing=True)
            )
        except SQLAlchemyError as e:
            raise StoreError(f"Could not load credential: {e}") from e

        return result.scalar_one_or_none()

    @pass_session_capable
    async def save(self, access_token: str, refresh_token: str,
                   expires_at: datetime, session=None) -> Credential:
        values = {"credential_id": CREDENTIAL_ID,
                  "access_token": access_token,
                  "refresh_token": refresh_token,
                  "expires_at": expires_at,
                  "updated_at": utcnow()}

        stmt = insert_for(session, Credential).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=['credential_id'],
            set_={key: stmt.excluded[key] for key in values if key != "credential_id"}
        )

        try:
            await session.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not save credential: {e}") from e

        LOGGER.debug(f"Saved credential, expires at {expires_at.isoformat()}.")
        return Credential(**values)


class TokenManager:
    def __init__(self, oauth: SpotifyOAuth, store: CredentialStore = None,
                 clock: Callable[[], datetime] = utcnow):
        self.oauth = oauth
        self.store = store or CredentialStore()
        self.clock = clock
        self._refresh_lock = asyncio.Lock()

    def begin_authorization(self) -> str:
        return self.oauth.get_authorize_url()

    async def complete_authorization(self, code: str | None) -> Credential:
        if not code:
            raise AuthExchangeError("Missing authorization code.")

        LOGGER.info("Exchanging authorization code for tokens.")
        try:
            token_info = await asyncio.to_thread(self.oauth.get_access_token, code, check_cache=False)
        except (SpotifyOauthError, RequestException) as e:
            LOGGER.warning(f"Authorization code exchange rejected: {e}")
            raise AuthExchangeError(f"Authorization code exchange failed: {e}") from e

        if not token_info or not token_info.get("access_token") or not token_info.get("refresh_token"):
            raise AuthExchangeError("No tokens returned from Spotify.")

        credential = await self._persist(token_info, token_info["refresh_token"])
        LOGGER.info("Authorization complete, credential saved.")
        return credential

    async def refresh(self) -> Credential:
        async with self._refresh_lock:
            credential = await self.store.load()
            if credential is None:
                raise NoCredentialError()
            return await self._refresh(credential)

    async def get_valid_access_token(self) -> str:
        credential = await self.store.load()
        if credential is None:
            raise NoCredentialError()

        if not self._needs_refresh(credential):
            return credential.access_token

        async with self._refresh_lock:
            # Someone else may have refreshed while we were waiting.
            credential = await self.store.load()
            if credential is None:
                raise NoCredentialError()
            if self._needs_refresh(credential):
                credential = await self._refresh(credential)

        return credential.access_token

    def _needs_refresh(self, credential: Credential) -> bool:
        return self.clock() >= as_utc(credential.expires_at) - REFRESH_MARGIN

    async def _refresh(self, credential: Credential) -> Credential:
        LOGGER.info("Refreshing Spotify access token.")
        try:
            token_info = await asyncio.to_thread(self.oauth.refresh_access_token, credential.refresh_token)
        except (SpotifyOauthError, RequestException) as e:
            LOGGER.error(f"Error refreshing token: {e}")
            raise RefreshError(f"Token refresh failed: {e}") from e

        if not token_info or not token_info.get("access_token"):
            raise RefreshError("No access token returned from Spotify.")

        credential = await self._persist(token_info, credential.refresh_token)
        LOGGER.info("Access token has been refreshed and saved.")
        return credential

    async def _persist(self, token_info: dict, fallback_refresh_token: str) -> Credential:
        expires_at = self.clock() + timedelta(seconds=int(token_info.get("expires_in", 3600)))
        return await self.store.save(
            access_token=token_info["access_token"],
            refresh_token=token_info.get("refresh_token") or fallback_refresh_token,
            expires_at=expires_at,
        )
