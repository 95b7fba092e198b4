# Overview: Health endpoint; reports whether the tables each engine depends on can be reached.

"""
System health endpoint.

One cheap query per table an engine reads or writes. A table that cannot be
queried (database down, migration not applied) marks its engine unhealthy
and the endpoint answers 503.
"""

from flask import Blueprint, current_app, jsonify
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Company, Invoice, Order, Payment, PaymentEvent, SessionToken, User, UserAuditLog
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)

# Engine -> tables it depends on
ENGINE_TABLES = {
    "principal_resolver": (SessionToken, User, Company),
    "reconciliation": (Payment, PaymentEvent, Order, Invoice),
    "governance": (User, UserAuditLog),
}


def _table_reachable(model) -> bool:
    try:
        db.session.execute(select(model.__table__.c.id).limit(1)).first()
    except SQLAlchemyError:
        current_app.logger.exception("Health check failed for table %s", model.__tablename__)
        db.session.rollback()
        return False
    return True


def check_engines() -> dict:
    checks = {}
    for engine, models in ENGINE_TABLES.items():
        unreachable = [m.__tablename__ for m in models if not _table_reachable(m)]
        checks[engine] = {
            "status": "unhealthy" if unreachable else "healthy",
            "unreachable_tables": unreachable,
        }
    return checks


@system_bp.get("/health")
def health():
    """200 when every engine's tables answer, else 503."""
    checks = check_engines()
    healthy = all(check["status"] == "healthy" for check in checks.values())

    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": checks,
    }), 200 if healthy else 503
