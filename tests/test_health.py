"""Health and readiness probes."""

import pytest
import redis

from qahub.blueprints import health_bp as health_module
from qahub.models import db


class _DeadRedis:
    def ping(self):
        raise redis.ConnectionError("connection refused")


class TestHealth:
    @pytest.mark.parametrize("path", ["/health", "/api/v1/health"])
    def test_healthy_without_auth(self, client, path):
        res = client.get(path)
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"

    def test_database_down(self, client, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("database is gone")

        monkeypatch.setattr(db.session, "execute", broken)
        res = client.get("/health")
        assert res.status_code == 503
        assert res.get_json()["database"] == "disconnected"


class TestReadiness:
    def test_redis_skipped_without_url(self, client, app, monkeypatch):
        monkeypatch.setitem(app.config, "REDIS_URL", "")
        res = client.get("/health/ready")
        assert res.status_code == 200
        checks = res.get_json()["checks"]
        assert checks["database"]["status"] == "ok"
        assert checks["redis"]["status"] == "skipped"

    def test_redis_outage_degrades_only(self, client, app, monkeypatch):
        monkeypatch.setitem(app.config, "REDIS_URL", "redis://localhost:6390/0")
        monkeypatch.setattr(health_module.redis, "from_url", lambda url, **kwargs: _DeadRedis())
        res = client.get("/health/ready")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["redis"]["status"] == "error"
