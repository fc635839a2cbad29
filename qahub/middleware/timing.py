"""
Per-request access log.

Every response gets ``X-Request-ID`` (echoed from the client or generated)
and ``X-Response-Time-Ms``. API requests are logged once on the way out:
5xx at ERROR, anything slower than ``SLOW_REQUEST_MS`` at WARNING, the
rest at INFO. Health probes are not logged.
"""

import logging
import time
import uuid

from flask import current_app, g, request

logger = logging.getLogger(__name__)

QUIET_PATHS = ("/health", "/api/v1/health", "/health/ready")
REQUEST_ID_HEADER = "X-Request-ID"


def _level_for(status, duration_ms, slow_ms):
    if status >= 500:
        return logging.ERROR
    if duration_ms > slow_ms:
        return logging.WARNING
    return logging.INFO


def init_request_timing(app):
    @app.before_request
    def _begin_request():
        g.request_started = time.perf_counter()
        incoming = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
        g.request_id = incoming[:64] or uuid.uuid4().hex[:16]

    @app.after_request
    def _finish_request(response):
        started = g.pop("request_started", None)
        if started is None:
            return response
        duration_ms = round((time.perf_counter() - started) * 1000, 1)
        response.headers[REQUEST_ID_HEADER] = g.request_id
        response.headers["X-Response-Time-Ms"] = str(duration_ms)

        if request.path in QUIET_PATHS:
            return response
        level = _level_for(response.status_code, duration_ms, current_app.config.get("SLOW_REQUEST_MS", 1000))
        logger.log(
            level, "%s %s -> %d in %.1fms", request.method, request.path, response.status_code, duration_ms,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": duration_ms,
                "remote_addr": request.remote_addr,
            },
        )
        return response
