# Overview: Service-layer operations for session tokens; issues, verifies and revokes bearer credentials.

"""
Session Token Management Service

WHY: Secure bearer credentials with expiry and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

The session records WHO (user_id) and nothing else. Role, company and
company type are resolved fresh per request by the principal resolver.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (SESSION_TTL_HOURS, default 24h)
- Revocable on logout or security events
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app, has_app_context

from ..extensions import db
from ..models import SessionToken
from ..time_utils import as_utc_naive, utcnow


DEFAULT_SESSION_TTL = timedelta(hours=24)


@dataclass(frozen=True)
class TokenClaims:
    """What a verified credential proves: the subject and when it stops being valid."""
    subject_user_id: int
    expires_at: datetime


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Tokens are already high-entropy (unlike passwords), so a fast hash is sufficient.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _session_ttl() -> timedelta:
    if has_app_context():
        return timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))
    return DEFAULT_SESSION_TTL


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
    *,
    session=None,
) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    The caller owns the commit.
    """
    session = db.session if session is None else session

    plaintext_token = generate_token()
    now = utcnow()

    record = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        expires_at=now + _session_ttl(),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )

    session.add(record)
    session.flush()

    return record, plaintext_token


def verify_token(token: str, *, session=None) -> TokenClaims | None:
    """
    Credential verification primitive.

    Returns TokenClaims if the token is known, unexpired and not revoked,
    otherwise None. Read-only: never commits.
    """
    if not token:
        return None

    session = db.session if session is None else session

    record = session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if record is None:
        return None

    if as_utc_naive(record.expires_at) <= utcnow():
        return None

    return TokenClaims(subject_user_id=record.user_id, expires_at=record.expires_at)


def revoke_session(token: str, reason: str = "User logout", *, session=None) -> bool:
    """
    Revoke session token.

    Returns True if session was revoked, False if not found.
    """
    session = db.session if session is None else session

    record = session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not record:
        return False

    record.is_revoked = True
    record.revoked_at = utcnow()
    record.revoked_reason = reason

    session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions", *, session=None) -> int:
    """
    Revoke all active sessions for a user.

    Returns count of sessions revoked. Does not commit; used inside the
    governance transaction when a user is deactivated or removed.
    """
    session = db.session if session is None else session
    now = utcnow()

    records = session.query(SessionToken).filter_by(
        user_id=user_id,
        is_revoked=False,
    ).all()

    for record in records:
        record.is_revoked = True
        record.revoked_at = now
        record.revoked_reason = reason

    return len(records)


def cleanup_expired_sessions(retention_days: int = 30, *, session=None) -> int:
    """
    Delete expired and revoked sessions older than the retention window.

    Returns count of sessions deleted.
    """
    session = db.session if session is None else session
    now = utcnow()
    cutoff = now - timedelta(days=retention_days)

    deleted = session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < now,
            SessionToken.is_revoked.is_(True),
        ),
        SessionToken.created_at < cutoff,
    ).delete(synchronize_session=False)

    session.commit()
    return deleted
