# Overview: Error taxonomy and result values shared by the authorization layer and the engines.

"""
Error kinds and Result values

Expected failures (access denied, missing records, hierarchy violations) are
returned as values, never raised across layer boundaries. ServiceError exists
only so that a failure discovered inside a transaction can unwind and roll it
back; `services.transactions.atomic` converts it into a failed Result before
it leaves the engine.

Truly unexpected faults (database unavailable, programming errors) are still
ordinary exceptions.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    UNAUTHENTICATED = "Unauthenticated"
    ACCOUNT_INACTIVE = "AccountInactive"
    INSUFFICIENT_ROLE = "InsufficientRole"
    COMPANY_TYPE_NOT_AUTHORIZED = "CompanyTypeNotAuthorized"
    CROSS_TENANT_ACCESS = "CrossTenantAccess"
    NO_COMPANY_ASSOCIATION = "NoCompanyAssociation"
    COMPANY_INACTIVE = "CompanyInactive"
    NOT_FOUND = "NotFound"
    SELF_MODIFICATION_NOT_ALLOWED = "SelfModificationNotAllowed"
    INSUFFICIENT_PERMISSION = "InsufficientPermission"
    CANNOT_ESCALATE = "CannotEscalate"
    RECONCILIATION_FAILED = "ReconciliationFailed"
    VALIDATION_FAILED = "ValidationFailed"


# Boundary mapping only; the core never looks at status codes.
HTTP_STATUS_BY_KIND = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.ACCOUNT_INACTIVE: 401,
    ErrorKind.INSUFFICIENT_ROLE: 403,
    ErrorKind.COMPANY_TYPE_NOT_AUTHORIZED: 403,
    ErrorKind.CROSS_TENANT_ACCESS: 403,
    ErrorKind.NO_COMPANY_ASSOCIATION: 403,
    ErrorKind.COMPANY_INACTIVE: 403,
    ErrorKind.INSUFFICIENT_PERMISSION: 403,
    ErrorKind.CANNOT_ESCALATE: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.SELF_MODIFICATION_NOT_ALLOWED: 400,
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.RECONCILIATION_FAILED: 409,
}


@dataclass(frozen=True)
class Failure:
    """A failure kind plus a human-readable reason."""
    kind: ErrorKind
    reason: str

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND.get(self.kind, 500)

    def to_dict(self) -> dict:
        return {"error": self.kind.value, "message": self.reason}


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or a Failure."""
    value: T | None = None
    failure: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def kind(self) -> ErrorKind | None:
        return self.failure.kind if self.failure else None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, reason: str) -> "Result":
        return cls(failure=Failure(kind, reason))


class ServiceError(Exception):
    """Raised inside a transaction to abort it with a specific failure kind."""

    def __init__(self, kind: ErrorKind, reason: str):
        super().__init__(reason)
        self.kind = kind
        self.reason = reason
