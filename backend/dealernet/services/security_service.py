# Overview: Service-layer operations for security events; append-only audit of authorization denials.

"""
Security Event Logging with Multi-Tenant Support

WHY: Every denied request at the HTTP boundary leaves a trail. Events carry
the acting principal's company so they can be reviewed per tenant.

Denials are logged; grants are not.
"""

from __future__ import annotations

from ..extensions import db
from ..models import SecurityEvent
from ..time_utils import utcnow


EVENT_ACCESS_DENIED = "ACCESS_DENIED"
EVENT_CROSS_TENANT_ACCESS_DENIED = "CROSS_TENANT_ACCESS_DENIED"
EVENT_LOGIN_FAILED = "LOGIN_FAILED"
EVENT_LOGOUT = "LOGOUT"


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    company_id: int | None = None,
    *,
    session=None,
) -> SecurityEvent:
    """
    Log security event to audit trail with tenant context.

    Commits its own transaction. Only called from the request boundary,
    never from inside an engine transaction.

    event_type examples:
    - ACCESS_DENIED
    - CROSS_TENANT_ACCESS_DENIED
    - LOGIN_FAILED
    - LOGOUT
    """
    session = db.session if session is None else session

    event = SecurityEvent(
        user_id=user_id,
        company_id=company_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        occurred_at=utcnow(),
    )

    session.add(event)
    session.commit()

    return event
