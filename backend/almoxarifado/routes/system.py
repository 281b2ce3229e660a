# backend/almoxarifado/routes/system.py
"""
System health endpoint.

Checks the database and the admin bootstrap so a deployment can tell
"database down" from "nobody can log in yet".
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Material, Movement, SessionToken, User
from almoxarifado.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        material_count = db.session.query(Material).count()
        pending_count = db.session.query(Movement).filter_by(status="pending").count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": {
                "materials": material_count,
                "pending_movements": pending_count,
                "active_sessions": active_sessions,
            }
        }
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": _elapsed_ms(start_time),
            "error": "Database error"
        }


def check_auth_health() -> dict:
    """Degraded when no active admin exists (run `flask system init`)."""
    start_time = time.time()
    try:
        admin_count = db.session.query(User).filter_by(role="admin", is_active=True).count()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Auth health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": _elapsed_ms(start_time),
            "error": "Auth service error"
        }

    if admin_count == 0:
        return {
            "status": "degraded",
            "latency_ms": _elapsed_ms(start_time),
            "warning": "No active admin user",
        }
    return {
        "status": "healthy",
        "latency_ms": _elapsed_ms(start_time),
        "details": {"active_admins": admin_count},
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
    auth_health = check_auth_health()

    all_checks = [database_health, auth_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": _elapsed_ms(start_time),
        "checks": {
            "database": database_health,
            "auth": auth_health,
        }
    }

    return response, http_status
