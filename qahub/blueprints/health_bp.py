"""
Liveness and readiness probes. No authentication, no tenant scope.

    GET /health, /api/v1/health   database round trip; 503 when it fails
    GET /health/ready             per-dependency report (database, redis)
"""

import logging
import time

import redis
from flask import Blueprint, current_app, jsonify

from qahub.models import db
from qahub.models.base import utcnow

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__)


def _elapsed_ms(started):
    return round((time.perf_counter() - started) * 1000, 1)


def _probe_database():
    """``{"status": "ok", "latency_ms": ...}`` or ``{"status": "error", "detail": ...}``."""
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except Exception as exc:  # any driver or pool failure means "not ready"
        db.session.rollback()
        logger.error("Database probe failed: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": _elapsed_ms(started)}


def _probe_redis(url):
    if not url or not url.startswith(("redis://", "rediss://")):
        return {"status": "skipped", "detail": "no REDIS_URL configured"}
    started = time.perf_counter()
    try:
        redis.from_url(url, socket_timeout=2).ping()
    except redis.RedisError as exc:
        logger.warning("Redis probe failed: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": _elapsed_ms(started)}


@health_bp.route("/health", methods=["GET"])
@health_bp.route("/api/v1/health", methods=["GET"])
def health():
    ok = _probe_database()["status"] == "ok"
    body = {
        "status": "healthy" if ok else "unhealthy",
        "database": "connected" if ok else "disconnected",
        "timestamp": utcnow().isoformat(),
    }
    return jsonify(body), 200 if ok else 503


@health_bp.route("/health/ready", methods=["GET"])
def readiness():
    # Redis only backs rate limiting, so its outage is reported but not fatal
    checks = {
        "database": _probe_database(),
        "redis": _probe_redis(current_app.config.get("REDIS_URL", "")),
    }
    ready = checks["database"]["status"] == "ok"
    return jsonify({
        "status": "healthy" if ready else "degraded",
        "checks": checks,
        "timestamp": utcnow().isoformat(),
    }), 200 if ready else 503
