"""
Health probes.

    GET /api/v1/health/ready  process is up
    GET /api/v1/health/live   database reachable; reports the review queue depth
"""

import logging
import time

from flask import Blueprint, jsonify
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from cms.models import db
from cms.models.workflow import Workflow

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


def _database_check():
    started = time.perf_counter()
    db.session.execute(db.text("SELECT 1"))
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _queue_check():
    rows = db.session.execute(
        select(Workflow.current_status, func.count())
        .where(Workflow.current_status.in_(("pending_review", "in_review")))
        .group_by(Workflow.current_status)
    ).all()
    counts = {"pending_review": 0, "in_review": 0}
    counts.update({status: n for status, n in rows})
    return {"status": "ok", **counts}


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {}
    try:
        checks["database"] = _database_check()
        checks["review_queue"] = _queue_check()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check failed: %s", exc)
        checks.setdefault("database", {"status": "error", "detail": str(exc)})

    healthy = all(c["status"] == "ok" for c in checks.values()) and "review_queue" in checks
    return jsonify({"status": "ok" if healthy else "degraded", "checks": checks}), 200 if healthy else 503
