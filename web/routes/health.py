"""Health check blueprint."""

from __future__ import annotations

from flask import Blueprint, jsonify

from database.connection import get_db_pool
from utils.performance import performance_monitor


health_bp = Blueprint("health", __name__)


@health_bp.route("/health")
def health_check():
    try:
        db_pool = get_db_pool()
        pool_size = db_pool.pool_size
        status = "ok"
    except RuntimeError:
        pool_size = 0
        status = "degraded"
    performance_monitor.record_db_pool(pool_size)

    data = {
        "status": status,
        "db_pool_size": pool_size,
        "host": performance_monitor.gather_host_metrics(),
    }
    return jsonify(data), 200 if status == "ok" else 503
