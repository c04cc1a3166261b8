from fastapi.testclient import TestClient

from gamehost.core.config import settings
from gamehost.main import create_app
import gamehost.routers.health as health_router_module


def test_health_ok():
    app = create_app()
    client = TestClient(app)

    r = client.get("/health")
    assert r.status_code == 200
    assert r.json().get("status") == "ok"
    assert r.headers.get("X-Request-ID")


def test_health_live():
    app = create_app()
    client = TestClient(app)

    r = client.get("/health/live")
    assert r.status_code == 200
    assert r.json().get("status") == "live"


def test_health_ready_local_storage(client, monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "storage_backend", "local")
    monkeypatch.setattr(settings, "media_root", tmp_path)

    r = client.get("/health/ready")
    assert r.status_code == 200
    assert r.json() == {"status": "ready"}


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "rid-123"})
    assert r.headers["X-Request-ID"] == "rid-123"


class _FakeJob:
    id = "job-1"


class _FakeQueue:
    def __init__(self):
        self.calls = []

    def enqueue(self, func, *args, **kwargs):
        self.calls.append((func, args, kwargs))
        return _FakeJob()


def test_cron_asset_retention_requires_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", None)
    r = client.post("/health/cron/asset-retention")
    assert r.status_code == 404

    monkeypatch.setattr(settings, "cron_secret", "s3cret")
    r = client.post("/health/cron/asset-retention", headers={"x-cron-secret": "wrong"})
    assert r.status_code == 403
    body = r.json()
    assert body["ok"] is False
    assert body["error_code"] == "forbidden"


def test_cron_asset_retention_enqueues_once_per_interval(client, monkeypatch):
    q = _FakeQueue()
    monkeypatch.setattr(settings, "cron_secret", "s3cret")
    monkeypatch.setattr(settings, "asset_retention_mode", "purge_superseded")
    monkeypatch.setattr(health_router_module, "get_queue", lambda name=None: q)

    r = client.post("/health/cron/asset-retention", headers={"x-cron-secret": "s3cret"})
    assert r.status_code == 200
    assert r.json() == {"ok": True, "enqueued": True, "job_id": "job-1", "mode": "purge_superseded"}
    assert len(q.calls) == 1
    func, _, kwargs = q.calls[0]
    assert func is health_router_module.purge_superseded_assets_job
    assert kwargs["mode"] == "purge_superseded"

    r = client.post("/health/cron/asset-retention", headers={"x-cron-secret": "s3cret"})
    assert r.status_code == 200
    assert r.json()["enqueued"] is False
    assert len(q.calls) == 1
