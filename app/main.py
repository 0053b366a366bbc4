import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.http import (
    health_router, auth_router, users_router, pastes_router, me_router, admin_router
)
from app.core.config import settings
from app.core.db import Base, engine, SessionLocal
from app.domains.pastes.cleanup import PasteCleanupScheduler
from app.domains.pastes.stats import StatsCache
from app.db import models  # noqa: F401  registers the tables on Base.metadata

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    app.state.cleanup_scheduler.start()
    logger.info("Pastebin started")

    yield

    await app.state.cleanup_scheduler.stop()
    await engine.dispose()
    logger.info("Pastebin stopped")


app = FastAPI(
    title="Pastebin",
    description="Text snippets with visibility controls, passwords, expiry, versioning and forking",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(pastes_router)
app.include_router(me_router)
app.include_router(admin_router)

app.state.cleanup_scheduler = PasteCleanupScheduler(
    SessionLocal,
    interval_seconds=settings.cleanup_interval_seconds,
    batch_size=settings.cleanup_batch_size,
    enabled=settings.cleanup_enabled,
)
app.state.stats_cache = StatsCache(ttl_seconds=settings.stats_cache_ttl_seconds)


@app.get("/")
async def root():
    return {
        "message": "Pastebin API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }
