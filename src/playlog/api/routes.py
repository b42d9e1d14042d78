import traceback
import logging
LOGGER = logging.getLogger(__name__)

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from playlog import stats
from playlog.errors import AuthExchangeError

router = APIRouter()
api_router = APIRouter(prefix="/api")


@router.get("/")
async def authorize(request: Request) -> RedirectResponse:
    """Send the user to Spotify to grant access."""
    return RedirectResponse(request.app.state.tokens.begin_authorization())


@router.get("/redirect", response_class=PlainTextResponse)
async def authorization_redirect(request: Request, code: str | None = None,
                                 error: str | None = None) -> PlainTextResponse:
    try:
        if error:
            raise AuthExchangeError(f"Spotify denied authorization: {error}")

        await request.app.state.tokens.complete_authorization(code)
        request.app.state.scheduler.arm()
    except Exception as e:
        LOGGER.error(f"Authorization failed: {traceback.format_exc()}")
        return PlainTextResponse(f"error encountered: {e}", status_code=500)

    return PlainTextResponse("Authentication successful, api calls scheduled")


async def _respond(description: str, query):
    try:
        result = await query
    except Exception:
        LOGGER.error(f"Error getting {description}: {traceback.format_exc()}")
        return JSONResponse({"error": f"Error getting {description}"}, status_code=500)

    if result is None:
        return {"message": stats.NO_DATA_MESSAGE}
    return result


@api_router.get("/recent-tracks")
async def recent_tracks():
    return await _respond("recent tracks", stats.recent_plays())


@api_router.get("/top-artist")
async def top_artist(request: Request):
    return await _respond("top artist", stats.top_artist(request.app.state.tokens))


@api_router.get("/top-song")
async def top_song():
    return await _respond("top song", stats.top_song())


@api_router.get("/top-album")
async def top_album():
    return await _respond("top album", stats.top_album())


@api_router.get("/listening-stats")
async def listening_stats():
    return await _respond("listening stats", stats.listening_stats())
