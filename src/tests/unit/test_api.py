"""Tests for the HTTP API surface."""

from collections.abc import AsyncIterator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from deploybox.app.config import get_settings
from deploybox.app.main import app
from deploybox.core.errors import BuildFailureError
from deploybox.services.lifecycle import LifecycleManager

OWNER = {"X-User-Id": "user-1"}
SERVER_JS = "require('http').createServer((q, s) => s.end('ok')).listen(process.env.PORT);\n"


@pytest.fixture
async def client(
    lifecycle: LifecycleManager,
    mock_engine: AsyncMock,
    uploads_dir: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> AsyncIterator[AsyncClient]:
    monkeypatch.setenv("STORAGE_UPLOADS_DIR", str(uploads_dir))
    get_settings.cache_clear()
    app.state.lifecycle = lifecycle
    app.state.engine = mock_engine

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    del app.state.lifecycle
    del app.state.engine
    get_settings.cache_clear()


async def _deploy(client: AsyncClient, filename: str = "server.js", body: str = SERVER_JS):
    return await client.post(
        "/api/v1/instances",
        headers=OWNER,
        data={"name": "my app"},
        files={"file": (filename, body.encode(), "application/octet-stream")},
    )


class TestAuth:
    async def test_missing_user_header(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/instances")

        assert response.status_code == 401
        assert response.json() == {
            "error": {"code": "UNAUTHORIZED", "message": "Authentication required"}
        }

    async def test_blank_user_header(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/instances", headers={"X-User-Id": "  "})
        assert response.status_code == 401


class TestDeploy:
    async def test_deploy_single_file(
        self, client: AsyncClient, mock_engine: AsyncMock, uploads_dir: Path
    ) -> None:
        response = await _deploy(client)

        assert response.status_code == 201
        body = response.json()
        assert body["url"] == "http://localhost:3001"
        assert body["instance"]["port"] == 3001
        assert body["instance"]["owner_id"] == "user-1"
        assert body["instance"]["archetype"] == "generic"
        assert body["structure"]["kind"] == "unknown"
        assert body["entry_point"] == "server.js"
        mock_engine.start.assert_awaited_once()
        assert list(uploads_dir.iterdir()) == []

    async def test_unsupported_file_type(self, client: AsyncClient, mock_engine: AsyncMock) -> None:
        response = await _deploy(client, filename="notes.txt", body="hello")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_BUNDLE"
        mock_engine.build_image.assert_not_called()

    async def test_build_failure_maps_to_422(
        self, client: AsyncClient, mock_engine: AsyncMock
    ) -> None:
        mock_engine.build_image.side_effect = BuildFailureError("npm install failed")

        response = await _deploy(client)

        assert response.status_code == 422
        assert response.json() == {
            "error": {"code": "BUILD_FAILURE", "message": "npm install failed"}
        }

    async def test_missing_name_is_validation_error(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/instances",
            headers=OWNER,
            files={"file": ("server.js", SERVER_JS.encode(), "application/octet-stream")},
        )
        assert response.status_code == 422


class TestListAndDelete:
    async def test_list_only_own_instances(self, client: AsyncClient) -> None:
        await _deploy(client)

        mine = await client.get("/api/v1/instances", headers=OWNER)
        theirs = await client.get("/api/v1/instances", headers={"X-User-Id": "user-2"})

        assert mine.json()["total"] == 1
        assert mine.json()["items"][0]["url"] == "http://localhost:3001"
        assert theirs.json() == {"items": [], "total": 0}

    async def test_delete_then_404(self, client: AsyncClient, mock_engine: AsyncMock) -> None:
        instance_id = (await _deploy(client)).json()["instance"]["id"]

        first = await client.delete(f"/api/v1/instances/{instance_id}", headers=OWNER)
        second = await client.delete(f"/api/v1/instances/{instance_id}", headers=OWNER)

        assert first.status_code == 204
        assert second.status_code == 404
        assert second.json()["error"]["code"] == "INSTANCE_NOT_FOUND"
        mock_engine.stop_and_remove.assert_awaited_once_with("c0ffee1234567890")

    async def test_delete_other_owner_is_404(self, client: AsyncClient) -> None:
        instance_id = (await _deploy(client)).json()["instance"]["id"]

        response = await client.delete(
            f"/api/v1/instances/{instance_id}", headers={"X-User-Id": "user-2"}
        )

        assert response.status_code == 404
        listed = await client.get("/api/v1/instances", headers=OWNER)
        assert listed.json()["total"] == 1


class TestHealth:
    async def test_health_reports_ports(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["services"]["docker"] == "connected"
        assert body["services"]["database"] == "not initialized"
        assert body["status"] == "degraded"
        assert body["ports_available"] == 5

    async def test_metrics_endpoint(self, client: AsyncClient) -> None:
        await _deploy(client)

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "deploybox_deploys_total" in response.text
        assert "deploybox_ports_leased" in response.text

    async def test_trace_id_header(self, client: AsyncClient) -> None:
        response = await client.get(
            "/api/v1/instances", headers={**OWNER, "X-Trace-ID": "trace-123"}
        )
        assert response.headers["X-Trace-ID"] == "trace-123"


class TestUnhandled:
    async def test_missing_lifecycle_is_internal_error(self, client: AsyncClient) -> None:
        lifecycle = app.state.lifecycle
        del app.state.lifecycle
        try:
            response = await client.get("/api/v1/instances", headers=OWNER)
        finally:
            app.state.lifecycle = lifecycle

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INTERNAL_ERROR"
