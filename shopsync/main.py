"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from shopsync.config import get_settings
from shopsync.db.session import create_engine, create_session_maker
from shopsync.services.etsy import InMemoryCounterStore, RedisCounterStore, build_engine
from shopsync.services.etsy.rate_limiter import CounterStore

settings = get_settings()

logger = logging.getLogger(__name__)


def _counter_store(redis: Optional[Redis]) -> CounterStore:
    if redis is None:
        logger.warning("REDIS_URL not set, Etsy call counter is per-process")
        return InMemoryCounterStore()
    return RedisCounterStore(redis)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    db_engine = create_engine(settings)
    http = httpx.AsyncClient(timeout=httpx.Timeout(settings.ETSY_HTTP_TIMEOUT_SECONDS))
    redis = Redis.from_url(settings.REDIS_URL) if settings.REDIS_URL else None

    engine = build_engine(
        settings,
        http=http,
        session_maker=create_session_maker(db_engine),
        counter_store=_counter_store(redis),
    )
    app.state.engine = engine

    # Start background scheduler for Etsy sync
    if settings.SCHEDULER_ENABLED:
        engine.scheduler.start()

    yield

    # Shutdown
    engine.scheduler.stop()
    await http.aclose()
    if redis is not None:
        await redis.aclose()
    await db_engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        description="Etsy shop order and product synchronization",
        lifespan=lifespan,
        docs_url="/api/docs" if settings.DEBUG else None,
        redoc_url="/api/redoc" if settings.DEBUG else None,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.DEBUG else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register API routers
    from shopsync.api.v1.router import api_router

    app.include_router(api_router, prefix="/api/v1")

    return app


# Create the application instance
app = create_app()
