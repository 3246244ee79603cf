from datetime import timedelta
from pathlib import Path
from typing import Optional

import redis.asyncio as redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from meetsession.config import Settings
from meetsession.core.logger import get_logger
from meetsession.core.logging_config import configure_logging
from meetsession.crud.session_store import SqlSessionStore
from meetsession.database import build_session_factory, create_db_engine
from meetsession.integrations.google_places import GooglePlacesProvider
from meetsession.realtime.change_feed import RedisChangeFeed
from meetsession.routers.sessions import router as sessions_router
from meetsession.services.invite_links import LoggingInviteDispatcher
from meetsession.services.session_lifecycle import SessionLifecycle

logger = get_logger(__name__)


def _run_alembic_upgrade(database_url: str) -> None:
    """Apply migrations up to head (meet_sessions table)."""
    from alembic import command
    from alembic.config import Config

    root = Path(__file__).resolve().parent.parent
    cfg = Config(str(root / "alembic.ini"))
    cfg.set_main_option("script_location", str(root / "alembic"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    # logging is already set up by configure_logging(); env.py must not add the ini handlers
    cfg.attributes["configure_logger"] = False
    command.upgrade(cfg, "head")


def build_lifecycle(settings: Settings) -> SessionLifecycle:
    """Wire engine, Redis, Places client and store. Nothing here is a module global."""
    engine = create_db_engine(settings.database_url)
    redis_client = redis.from_url(settings.redis_url, decode_responses=True)
    store = SqlSessionStore(build_session_factory(engine), change_feed=RedisChangeFeed(redis_client))
    places = GooglePlacesProvider(
        api_key=settings.google_places_api_key,
        base_url=settings.google_places_base_url,
        timeout_sec=settings.places_timeout_sec,
    )
    return SessionLifecycle(
        store,
        places,
        LoggingInviteDispatcher(),
        web_base_url=settings.web_base_url,
        default_radius_m=settings.default_search_radius_m,
        session_place_limit=settings.session_place_limit,
        invite_place_limit=settings.invite_place_limit,
        session_ttl=timedelta(days=settings.session_ttl_days),
    )


def create_app(settings: Optional[Settings] = None, lifecycle: Optional[SessionLifecycle] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="MeetSession API",
        description="Two-party meetup negotiation: fair midpoint, nearby places, propose and confirm.",
        version="0.1.0",
    )
    app.state.settings = settings
    app.state.lifecycle = lifecycle or build_lifecycle(settings)

    @app.on_event("startup")
    def _startup_migrate() -> None:
        if not settings.run_migrations_on_startup:
            return
        try:
            _run_alembic_upgrade(settings.database_url)
        except Exception:
            # the API still starts (e.g. local run without a database); requests will fail loudly
            logger.error("Alembic upgrade failed at startup", exc_info=True)

    app.include_router(sessions_router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # TODO: restrict to the web client origin once it has a fixed domain
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict:
        return {"status": "ok"}

    @app.get("/", tags=["Root"])
    async def root() -> dict:
        return {
            "message": "MeetSession API",
            "docs": "/docs",
            "redoc": "/redoc",
            "health": "/health",
        }

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("meetsession.main:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
