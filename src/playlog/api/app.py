import contextlib

import logging
LOGGER = logging.getLogger(__name__)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from playlog.api.routes import router, api_router
from playlog.config import Settings
from playlog.db import get_db_manager
from playlog.collecter.scheduler import IngestionScheduler
from playlog.collecter.tokens import TokenManager, build_oauth


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    await get_db_manager().initialize()

    if await app.state.tokens.store.load() is not None:
        LOGGER.info("Found stored credential, resuming scheduled API calls.")
        app.state.scheduler.arm()
        if app.state.run_now:
            app.state.scheduler.run_soon()
    else:
        LOGGER.warning("No stored credential, visit / to authorize.")

    try:
        yield
    finally:
        await app.state.scheduler.shutdown()
        await get_db_manager().cleanup()


def cors_options(origins: list[str]) -> dict:
    allow_credentials = "*" not in origins
    if not allow_credentials:
        LOGGER.warning("CORS allows any origin, credentials are disabled.")

    return {"allow_origins": origins,
            "allow_credentials": allow_credentials,
            "allow_methods": ["GET"],
            "allow_headers": ["*"]}


def create_app(settings: Settings = None, tokens: TokenManager = None,
               scheduler: IngestionScheduler = None, run_now: bool = False) -> FastAPI:
    settings = settings or Settings.from_env()
    tokens = tokens or TokenManager(build_oauth(settings))

    app = FastAPI(title="playlog", description="Spotify listening history", lifespan=lifespan)
    app.state.settings = settings
    app.state.tokens = tokens
    app.state.scheduler = scheduler or IngestionScheduler(tokens)
    app.state.run_now = run_now

    app.add_middleware(CORSMiddleware, **cors_options(settings.cors_origins))

    app.include_router(router)
    app.include_router(api_router)
    return app
