# Overview: Resolves a bearer credential into the Principal used for every authorization decision.

"""
Principal Resolver

WHY: Every request must be attributable to one active user of one company.
The resolver verifies the credential, then reads the user and company fresh
from the database so that a role change, a company-type change or a
deactivation takes effect on the very next request.

The credential itself only identifies the subject (see session_service); it
never caches role or company.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from ..errors import ErrorKind, Result
from ..models import Company, User
from ..models.tenancy import USER_STATUS_ACTIVE
from . import session_service


@dataclass(frozen=True)
class Principal:
    """Authenticated identity for one request. Never persisted."""
    user_id: int
    email: str
    role: str
    company_id: int | None
    company_type: str | None
    status: str

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "role": self.role,
            "company_id": self.company_id,
            "company_type": self.company_type,
            "status": self.status,
        }


class PrincipalResolver:
    """
    resolve(credential) -> Result[Principal]

    session: SQLAlchemy session used for user/company lookups.
    verify: credential verification primitive returning TokenClaims or None.
    """

    def __init__(self, session, verify: Callable[[str], session_service.TokenClaims | None] | None = None):
        self.session = session
        self.verify = verify or (lambda token: session_service.verify_token(token, session=session))

    def resolve(self, credential: str | None) -> Result:
        if not credential:
            return Result.fail(ErrorKind.UNAUTHENTICATED, "Authorization token required")

        claims = self.verify(credential)
        if claims is None:
            return Result.fail(ErrorKind.UNAUTHENTICATED, "Invalid or expired token")

        user = self.session.get(User, claims.subject_user_id)
        if user is None:
            return Result.fail(ErrorKind.UNAUTHENTICATED, "User not found")

        if user.status != USER_STATUS_ACTIVE:
            return Result.fail(ErrorKind.ACCOUNT_INACTIVE, "Account is not active")

        company = self.session.get(Company, user.company_id) if user.company_id else None

        return Result.success(Principal(
            user_id=user.id,
            email=user.email,
            role=user.role,
            company_id=company.id if company else None,
            company_type=company.type if company else None,
            status=user.status,
        ))

    def resolve_bearer(self, authorization_header: str | None) -> Result:
        """Resolve from a raw 'Authorization: Bearer <token>' header value."""
        if not authorization_header or not authorization_header.startswith("Bearer "):
            return Result.fail(ErrorKind.UNAUTHENTICATED, "Authorization token required")
        return self.resolve(authorization_header.split(" ", 1)[1].strip())
