"""FastAPI application entry point."""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from foldly.config import settings
from foldly.database import engine, get_db
from foldly.models import Base

logger = logging.getLogger(__name__)


def setup_logging(level: str = settings.LOG_LEVEL) -> None:
    """Configure root logging once. Safe to call again."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        root.addHandler(handler)
    for noisy in ("aiohttp", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup, start background worker."""
    setup_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Recover any jobs stuck in "running" from a previous crash
    from foldly.services.job_worker import recover_stale_jobs, worker_loop
    await recover_stale_jobs()

    worker_task = asyncio.create_task(worker_loop())
    logger.info(f"Foldly API ready on port {settings.API_PORT}")

    yield

    worker_task.cancel()
    await engine.dispose()


app = FastAPI(
    title="Foldly API",
    version="1.0.0",
    description="Link file trees, workspace copy and cloud storage transfers.",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
async def health_check():
    """Verify API and database connectivity."""
    try:
        async for db in get_db():
            await db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
    except Exception as e:
        return {"status": "error", "database": str(e)}


# Register routers
from foldly.routes.links import router as links_router
from foldly.routes.workspaces import router as workspaces_router
from foldly.routes.cloud import router as cloud_router
from foldly.routes.jobs import router as jobs_router
app.include_router(links_router)
app.include_router(workspaces_router)
app.include_router(cloud_router)
app.include_router(jobs_router)
