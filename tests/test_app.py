from fastapi.testclient import TestClient

from airtable_sync.server import routes
from airtable_sync.server.app import create_app
from shopify_api.config.settings import Settings


def _settings(tmp_path) -> Settings:
    return Settings(
        shopify_shop_name="test-shop.myshopify.com",
        shopify_access_token="shpat_test",
        airtable_base_id="appTEST",
        airtable_api_key="patTEST",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
        scheduler_autostart=False,
        glitchtip_dsn=None,
    )


def test_startup_wires_service(tmp_path) -> None:
    app = create_app(_settings(tmp_path))

    with TestClient(app) as client:
        health = client.get("/health").json()
        assert health["status"] == "healthy"
        assert health["storage"] == "ok"

        status = client.get("/api/sync/status").json()
        assert status["success"] is True
        assert status["data"]["scheduler_active"] is False
        assert status["data"]["is_running"] is False

        # Empty store: nothing to send, no Airtable request is made
        push = client.post("/api/airtable/sync").json()
        assert push["success"] is True
        assert push["data"]["created"] == 0
        assert push["data"]["failed_chunks"] == []

    assert routes.sync_job_service is None
    assert routes.airtable_client is None
