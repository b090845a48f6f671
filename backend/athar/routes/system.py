# backend/athar/routes/system.py
"""
System health endpoint.

Each check returns {"status": "healthy" | "degraded" | "unhealthy", ...}.
A missing bot configuration is "degraded": donations are still accepted and
their alerts are only logged. An unreachable database is "unhealthy" (503).
"""

import time

from flask import Blueprint, current_app

from ..extensions import db, channel
from ..models import Donation, InventoryItem, User
from ..services.live_feed import get_feed
from athar.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")

_SEVERITY = {"healthy": 0, "degraded": 1, "unhealthy": 2}


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def check_database_health() -> dict:
    """Row counts of the main tables, with query latency."""
    started = time.perf_counter()
    try:
        counts = {
            "donations": db.session.query(Donation).count(),
            "inventory_items": db.session.query(InventoryItem).count(),
            "users": db.session.query(User).count(),
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(started), "error": "Database error"}

    return {"status": "healthy", "latency_ms": _elapsed_ms(started), "details": counts}


def check_channel_health() -> dict:
    try:
        enabled = bool(channel.client.enabled)
    except Exception:
        current_app.logger.exception("Messaging channel health check failed")
        return {"status": "unhealthy", "error": "Messaging channel error"}

    if enabled:
        return {"status": "healthy", "details": {"enabled": True}}
    return {
        "status": "degraded",
        "warning": "Bot credentials not configured; donation alerts are disabled",
        "details": {"enabled": False},
    }


HEALTH_CHECKS = (
    ("database", check_database_health),
    ("messaging_channel", check_channel_health),
)


@system_bp.get("/health")
def health():
    """
    200 when healthy or degraded, 503 when any check is unhealthy.
    """
    started = time.perf_counter()
    checks = {name: check() for name, check in HEALTH_CHECKS}
    overall = max((c["status"] for c in checks.values()), key=_SEVERITY.__getitem__)

    return {
        "status": overall,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": _elapsed_ms(started),
        "live_subscribers": get_feed().subscriber_count,
        "checks": checks,
    }, 503 if overall == "unhealthy" else 200
