"""
Request timing middleware.

Assigns every request an id (honouring an inbound X-Request-ID), measures
its duration and writes one access-log line.  Responses carry
X-Request-ID and X-Request-Duration-Ms.

Mutating workflow calls log at INFO; reads log at DEBUG; slow requests
(SLOW_REQUEST_MS) and 5xx responses are raised to WARNING / ERROR.
"""

import logging
import time
import uuid

from flask import Flask, current_app, g, request

logger = logging.getLogger(__name__)

_PROBE_PATHS = frozenset({"/api/v1/health/ready", "/api/v1/health/live"})
_MUTATING = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _level_for(status_code, duration_ms):
    if status_code >= 500:
        return logging.ERROR
    if duration_ms > current_app.config.get("SLOW_REQUEST_MS", 1000):
        return logging.WARNING
    if request.method in _MUTATING:
        return logging.INFO
    return logging.DEBUG


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"

        if request.path in _PROBE_PATHS:
            return response

        logger.log(
            _level_for(response.status_code, duration_ms),
            "%s %s %d (%.0fms)", request.method, request.path, response.status_code, duration_ms,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 1),
            },
        )
        return response
