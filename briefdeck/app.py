"""HTTP entry point: source management, brief execution, reports and the inbound email webhook."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from briefdeck.config import get_settings
from briefdeck.db.session import engine
from briefdeck.http_client import close_http_client, init_http_client
from briefdeck.models import Base
from briefdeck.queue import create_job_queue
from briefdeck.routers import api, webhooks
from briefdeck.services.fetchers import build_registry
from briefdeck.services.scoring_service import get_scorer
from briefdeck.utils import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    # SQLite deployments skip migrations
    if settings.database_url.startswith("sqlite"):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    await init_http_client()
    app.state.job_queue = await create_job_queue()
    app.state.registry = build_registry(get_scorer(settings), settings)
    logger.info("%s ready (%d source types)", settings.app_name, len(app.state.registry))

    try:
        yield
    finally:
        await app.state.job_queue.redis.aclose()
        await close_http_client()
        await engine.dispose()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.debug)

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )
    app.state.settings = settings

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(api.router)
    app.include_router(webhooks.router)
    return app


app = create_app()
