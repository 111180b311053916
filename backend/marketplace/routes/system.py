# backend/marketplace/routes/system.py
"""
System health and version endpoints.

Health checks cover the database and the two scheduled jobs' backlogs
(subscriptions past their period end that the renewal sweep has not
processed yet, disputes past their response deadline).
"""

import sys
import time
from datetime import timedelta
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Booking, BrandProfile, CreatorProfile, Dispute, Subscription
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"
_ONE_DAY = timedelta(days=1)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "brands": db.session.query(BrandProfile).count(),
            "creators": db.session.query(CreatorProfile).count(),
            "bookings": db.session.query(Booking).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_scheduled_jobs_health() -> dict:
    """
    Degraded when the renewal sweep or dispute reminders look behind.

    A paid subscription still 'active' more than a day past its period end
    means the daily sweep has not run.
    """
    start_time = time.time()
    try:
        now = utcnow()
        stale_subscriptions = db.session.query(Subscription).filter(
            Subscription.status == "active",
            Subscription.plan_type != "none",
            Subscription.current_period_end < now - _ONE_DAY,
        ).count()
        overdue_disputes = db.session.query(Dispute).filter(
            Dispute.status == "pending_response",
            Dispute.response_deadline < now,
        ).count()
        elapsed_ms = (time.time() - start_time) * 1000

        result = {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "subscriptions_past_period_end": stale_subscriptions,
                "disputes_past_response_deadline": overdue_disputes,
            },
        }
        if stale_subscriptions:
            result["status"] = "degraded"
            result["warning"] = "Renewal sweep appears to be behind"
        return result
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Scheduled job health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Scheduled job check error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    jobs_health = check_scheduled_jobs_health()

    all_checks = [database_health, jobs_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "scheduled_jobs": jobs_health,
        },
    }, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": API_VERSION,
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
