"""FastAPI store service: the bookmark store contract over HTTP."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .. import __version__
from ..config import ConfigManager
from ..core.local_store import LocalBookmarkStore
from ..models.config import AppConfig, EnvSettings

logger = logging.getLogger(__name__)

# Global state (initialized in lifespan)
config_manager: ConfigManager = None
runtime_config: AppConfig = None
runtime_env_settings: EnvSettings = None
store: LocalBookmarkStore = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global config_manager, runtime_config, runtime_env_settings, store

    logger.info("Starting livemarks store service...")

    config_manager = ConfigManager()
    try:
        runtime_config = config_manager.load_app_config()
        runtime_env_settings = config_manager.load_env_settings()
    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        raise

    store = LocalBookmarkStore(config_manager.get_storage_path(runtime_config))
    await store.initialize()

    if not runtime_env_settings.store_api_token:
        logger.warning("STORE_API_TOKEN is not set; requests are not authenticated")

    logger.info(f"Serving bookmarks from {store.root}")

    yield

    logger.info("Shutting down livemarks store service...")


app = FastAPI(
    title="livemarks store",
    description="Bookmark store with a per-owner change feed",
    version=__version__,
    lifespan=lifespan,
)

from .bookmarks import router as bookmarks_router  # noqa: E402
from .changes import router as changes_router  # noqa: E402
from .health import router as health_router  # noqa: E402

app.include_router(bookmarks_router, prefix="/api/v1", tags=["bookmarks"])
app.include_router(changes_router, prefix="/api/v1", tags=["changes"])
app.include_router(health_router, prefix="/api/v1", tags=["health"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "livemarks store",
        "version": __version__,
        "docs": "/docs",
        "health": "/api/v1/health",
    }
