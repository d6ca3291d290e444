# backend/stockledger/routes/system.py
"""
System health and version endpoints.

Reports on the database and the event broadcaster, the two shared
resources of the service.
"""

import sys
import time
from flask import Blueprint, current_app
from sqlalchemy import func, select

from ..extensions import db, broadcaster
from ..models import Product, Sale, Setting
from ..time_utils import epoch_millis, millis_to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.execute(select(func.count()).select_from(Product)).scalar_one()
        sale_count = db.session.execute(select(func.count()).select_from(Sale)).scalar_one()
        setting_count = db.session.execute(select(func.count()).select_from(Setting)).scalar_one()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "dialect": db.engine.dialect.name,
                "products": product_count,
                "sales": sale_count,
                "settings": setting_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_broadcaster_health() -> dict:
    # Events are best-effort, so a stopped broadcaster only degrades the service
    return {
        "status": "healthy" if broadcaster.running else "degraded",
        "details": {
            "subscribers": broadcaster.subscriber_count(),
            "dispatched": broadcaster.dispatched,
            "dropped": broadcaster.dropped,
        },
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    broadcaster_health = check_broadcaster_health()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif broadcaster_health["status"] == "degraded":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": millis_to_utc_z(epoch_millis()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "event_broadcaster": broadcaster_health,
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "snapshot_version": current_app.config.get("SNAPSHOT_VERSION"),
    }
