"""Integration tests for the store service endpoints."""

import asyncio
import os
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
import yaml
from fastapi import FastAPI
from fastapi.testclient import TestClient

from livemarks.config import ConfigManager
from livemarks.models.bookmark import NewBookmark
from livemarks.models.config import EnvSettings
from livemarks.models.events import DeleteEvent, InsertEvent, parse_change_event

TOKEN = "test-token"
OWNER = "owner-a"
OTHER = "owner-b"


def _headers(owner: str = OWNER, token: str = TOKEN) -> dict:
    return {"Authorization": f"Bearer {token}", "X-Owner-Id": owner}


@pytest.fixture
def test_config_dir():
    """Create temporary config directory."""
    with tempfile.TemporaryDirectory() as temp_dir:
        config_dir = Path(temp_dir) / ".livemarks"
        config_dir.mkdir(parents=True)

        (config_dir / ".env").write_text(f"STORE_API_TOKEN={TOKEN}\n")
        (config_dir / "config.yaml").write_text(yaml.safe_dump({
            "storage_path": str(config_dir / "storage"),
            "feed_heartbeat_seconds": 1.0,
        }))

        yield config_dir


@pytest.fixture
def configured_api(test_config_dir):
    """Initialize the api module globals without the lifespan handler."""
    from livemarks import api
    from livemarks.core.local_store import LocalBookmarkStore

    real_cm = ConfigManager(test_config_dir)
    app_config = real_cm.load_app_config()

    api.config_manager = real_cm
    api.runtime_config = app_config
    api.runtime_env_settings = EnvSettings(store_api_token=TOKEN)
    api.store = LocalBookmarkStore(real_cm.get_storage_path(app_config))
    asyncio.run(api.store.initialize())

    yield api

    api.config_manager = None
    api.runtime_config = None
    api.runtime_env_settings = None
    api.store = None


@pytest.fixture
def client(configured_api):
    """Create test client with the service routers."""
    from livemarks.api.bookmarks import router as bookmarks_router
    from livemarks.api.health import router as health_router

    test_app = FastAPI(title="livemarks store", version="0.1.0")
    test_app.include_router(bookmarks_router, prefix="/api/v1", tags=["bookmarks"])
    test_app.include_router(health_router, prefix="/api/v1", tags=["health"])

    with TestClient(test_app) as test_client:
        yield test_client


def _create(client, title: str = "Example", owner: str = OWNER) -> dict:
    response = client.post(
        "/api/v1/bookmarks",
        json={"title": title, "url": "https://example.com", "user_id": owner},
        headers=_headers(owner),
    )
    assert response.status_code == 201
    return response.json()


class TestAuth:
    """Test token and owner checks."""

    def test_missing_token_rejected(self, client):
        response = client.get("/api/v1/bookmarks", headers={"X-Owner-Id": OWNER})

        assert response.status_code == 401

    def test_wrong_token_rejected(self, client):
        response = client.get("/api/v1/bookmarks", headers=_headers(token="wrong"))

        assert response.status_code == 401

    def test_missing_owner_rejected(self, client):
        response = client.get("/api/v1/bookmarks", headers={"Authorization": f"Bearer {TOKEN}"})

        assert response.status_code == 401
        assert "X-Owner-Id" in response.json()["detail"]

    def test_malformed_owner_rejected(self, client):
        response = client.get("/api/v1/bookmarks", headers=_headers(owner="../etc"))

        assert response.status_code == 400

    def test_no_token_configured_allows_requests(self, client, configured_api):
        """Test the service runs open when no token is set."""
        configured_api.runtime_env_settings = EnvSettings(store_api_token=None)

        response = client.get("/api/v1/bookmarks", headers={"X-Owner-Id": OWNER})

        assert response.status_code == 200


class TestBookmarkEndpoints:
    """Test bookmark endpoints."""

    def test_create_and_list(self, client):
        """Test created bookmarks are listed newest first for their owner only."""
        first = _create(client, "First")
        second = _create(client, "Second")
        _create(client, "Other", owner=OTHER)

        response = client.get("/api/v1/bookmarks", headers=_headers())

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert [b["id"] for b in data["bookmarks"]] == [second["id"], first["id"]]

    def test_create_for_other_owner_forbidden(self, client):
        """Test a caller cannot insert rows owned by someone else."""
        response = client.post(
            "/api/v1/bookmarks",
            json={"title": "Sneaky", "url": "https://example.com", "user_id": OTHER},
            headers=_headers(),
        )

        assert response.status_code == 403

    def test_create_invalid_payload(self, client):
        """Test blank fields are rejected."""
        response = client.post(
            "/api/v1/bookmarks",
            json={"title": "  ", "url": "https://example.com", "user_id": OWNER},
            headers=_headers(),
        )

        assert response.status_code == 422

    def test_update_bookmark(self, client):
        """Test PATCH changes the title."""
        created = _create(client, "Old")

        response = client.patch(
            f"/api/v1/bookmarks/{created['id']}",
            json={"title": "New"},
            headers=_headers(),
        )

        assert response.status_code == 200
        assert response.json()["title"] == "New"

    def test_update_blank_title_rejected(self, client):
        """Test PATCH re-validates the record."""
        created = _create(client)

        response = client.patch(
            f"/api/v1/bookmarks/{created['id']}",
            json={"title": "   "},
            headers=_headers(),
        )

        assert response.status_code == 422

    def test_delete_bookmark(self, client):
        """Test DELETE removes the bookmark."""
        created = _create(client)

        response = client.delete(f"/api/v1/bookmarks/{created['id']}", headers=_headers())
        assert response.status_code == 204

        listing = client.get("/api/v1/bookmarks", headers=_headers()).json()
        assert listing["total"] == 0

    def test_delete_missing_returns_404(self, client):
        response = client.delete("/api/v1/bookmarks/nonexistent", headers=_headers())

        assert response.status_code == 404

    def test_delete_other_owners_bookmark_returns_404(self, client):
        """Test another owner's rows are invisible."""
        theirs = _create(client, owner=OTHER)

        response = client.delete(f"/api/v1/bookmarks/{theirs['id']}", headers=_headers())

        assert response.status_code == 404
        listing = client.get("/api/v1/bookmarks", headers=_headers(OTHER)).json()
        assert listing["total"] == 1


class TestHealth:
    """Test the health endpoint."""

    def test_health_check(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["storage_accessible"] is True
        assert data["auth_required"] is True
        assert data["load_errors"] == []


class TestChangeFeedEndpoint:
    """Test the streamed change feed."""

    @pytest.mark.asyncio
    async def test_feed_streams_owner_events(self, configured_api):
        """Test events for the owner arrive as JSON lines; others do not."""
        from livemarks.api.changes import stream_changes

        store = configured_api.store
        request = Mock()
        request.is_disconnected = AsyncMock(return_value=False)

        response = await stream_changes(request, owner_id=OWNER)
        lines = response.body_iterator
        try:
            assert await lines.__anext__() == "\n"
            assert store.subscriber_count(OWNER) == 1

            await store.insert(NewBookmark(title="Theirs", url="https://example.com", user_id=OTHER))
            bookmark = await store.insert(
                NewBookmark(title="Mine", url="https://example.com", user_id=OWNER)
            )
            await store.delete_by_id(bookmark.id)

            inserted = parse_change_event(await lines.__anext__())
            deleted = parse_change_event(await lines.__anext__())
        finally:
            await lines.aclose()

        assert response.media_type == "application/x-ndjson"
        assert isinstance(inserted, InsertEvent)
        assert inserted.record.id == bookmark.id
        assert isinstance(deleted, DeleteEvent)
        assert deleted.id == bookmark.id
        assert store.subscriber_count(OWNER) == 0

    @pytest.mark.asyncio
    async def test_feed_stops_when_client_disconnects(self, configured_api):
        """Test an idle feed ends after the client goes away."""
        from livemarks.api.changes import stream_changes

        request = Mock()
        request.is_disconnected = AsyncMock(return_value=True)

        response = await stream_changes(request, owner_id=OWNER)
        chunks = [chunk async for chunk in response.body_iterator]

        assert chunks == ["\n"]
        assert configured_api.store.subscriber_count(OWNER) == 0


class TestLifespan:
    """Test the real application startup."""

    def test_app_starts_from_config_dir(self, test_config_dir, monkeypatch):
        """Test lifespan loads config and serves the root endpoint."""
        from livemarks import api

        monkeypatch.setenv("LIVEMARKS_CONFIG_DIR", str(test_config_dir))
        monkeypatch.delenv("STORE_API_TOKEN", raising=False)

        try:
            with TestClient(api.app) as test_client:
                root = test_client.get("/").json()
                listing = test_client.get("/api/v1/bookmarks", headers=_headers())
        finally:
            # load_dotenv writes straight into os.environ
            os.environ.pop("STORE_API_TOKEN", None)

        assert root["name"] == "livemarks store"
        assert listing.status_code == 200
        assert api.store.root == test_config_dir / "storage"
