"""Health check endpoint."""

from fastapi import APIRouter

from .. import __version__

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    # Read live globals from api module at request time.
    from livemarks import api

    storage_accessible = api.store is not None and api.store.bookmarks_path.is_dir()

    return {
        "status": "healthy" if storage_accessible else "degraded",
        "version": __version__,
        "storage_accessible": storage_accessible,
        "storage_path": str(api.store.root) if api.store is not None else None,
        "auth_required": bool(
            api.runtime_env_settings and api.runtime_env_settings.store_api_token
        ),
        "load_errors": api.store.load_errors[-10:] if api.store is not None else [],
    }
