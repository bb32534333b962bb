from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine

from botgate import __version__
from botgate.api import api_router
from botgate.core.config import DEV_JWT_SECRET, get_settings
from botgate.core.errors import install_exception_handlers
from botgate.core.logging import configure_logging
from botgate.core.middleware import RequestIdMiddleware
from botgate.storage.db import create_engine, create_sessionmaker

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(level=settings.botgate_log_level)
    if settings.is_prod and settings.jwt_secret == DEV_JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set in prod")
    log.info("app.start", extra={"env": settings.botgate_env, "offline_stubs": settings.botgate_offline_stubs})

    # No default credentials: every request carries the caller's own provider key.
    openai_client = httpx.AsyncClient(
        base_url=settings.openai_base_url,
        timeout=httpx.Timeout(settings.openai_timeout_seconds, connect=10.0),
    )
    chat_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.chat_timeout_seconds, connect=10.0))
    app.state.openai_http_client = openai_client
    app.state.chat_http_client = chat_client

    db_engine: AsyncEngine | None = None
    if settings.database_url:
        db_engine = create_engine(database_url=settings.database_url)
        app.state.db_engine = db_engine
        app.state.db_sessionmaker = create_sessionmaker(db_engine)
    else:
        log.warning("app.no_database")
    yield
    await openai_client.aclose()
    await chat_client.aclose()
    if db_engine is not None:
        await db_engine.dispose()
    log.info("app.stop")


def create_app() -> FastAPI:
    app = FastAPI(title="Botgate", version=__version__, lifespan=lifespan)
    app.add_middleware(RequestIdMiddleware)
    install_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
