import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from services.commits import router as commits_router
from services.health import router as health_router
from services.releases import router as releases_router
from services.webhook import router as webhook_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Try to init DB on startup; don't crash if DB not ready yet
    try:
        from core.database import init_db
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.warning(f"DB init deferred (will retry on first request): {e}")
    yield


app = FastAPI(title="Changelog API", version="0.1.0", lifespan=lifespan)

app.include_router(health_router, prefix="/health")
app.include_router(webhook_router)
app.include_router(commits_router)
app.include_router(releases_router)
