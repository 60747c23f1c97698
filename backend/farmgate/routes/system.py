# backend/farmgate/routes/system.py
"""
Health endpoint.

Reports the owned database and the hosted session provider separately so an
outage of either is visible to operators.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import StaffIdentity, LockoutRecord
from ..services.session_provider import ProviderError, get_session_provider, synthesize_address
from farmgate.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        staff_count = db.session.query(StaffIdentity).count()
        lockouts = db.session.query(LockoutRecord).filter(
            LockoutRecord.locked_until.isnot(None),
            LockoutRecord.locked_until > utcnow(),
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "staff_identities": staff_count,
                "active_lockouts": lockouts,
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


def check_session_provider_health() -> dict:
    """Look up a synthesized address; any answer (even "not found") means reachable."""
    start_time = time.time()
    try:
        get_session_provider().find_identity(synthesize_address("0000000000", "staff"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "backend": current_app.config.get("SESSION_PROVIDER"),
        }
    except ProviderError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Session provider health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Session provider unavailable"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database and session provider healthy
    - 503: one of them unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    provider_health = check_session_provider_health()

    all_checks = [database_health, provider_health]
    unhealthy = any(check["status"] == "unhealthy" for check in all_checks)

    response = {
        "status": "unhealthy" if unhealthy else "healthy",
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "session_provider": provider_health,
        }
    }

    return response, 503 if unhealthy else 200
