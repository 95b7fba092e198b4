# Overview: Declarative authorization policies and the evaluator every request passes through.

"""
Authorization Policy Evaluator

A Policy declares who may call an operation:
- roles: allowed roles (admins always pass this check)
- company_types: allowed company types (admins always pass this check)
- allow_self: a user may always act on their own user resource
- require_company_match: the resource's company must be the principal's company

COMPANY ISOLATION HAS NO ADMIN BYPASS. The company match check is the one
rule that stops any authenticated user, platform admins included, from
reaching another tenant's data through a policy. Crossing tenants needs a
separate, explicitly named operator policy, which this project does not have.

evaluate() returns a Decision value; denial is ordinary control flow.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import ErrorKind, Failure
from .models.tenancy import COMPANY_TYPE_DEALER, COMPANY_TYPE_SUPPLIER
from .roles import ROLE_ADMIN, ROLE_MANAGER


@dataclass(frozen=True)
class Policy:
    roles: tuple[str, ...] = ()
    company_types: tuple[str, ...] = ()
    allow_self: bool = False
    require_company_match: bool = False
    name: str = field(default="custom", compare=False)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    failure: Failure | None = None
    tenant_validated: bool = False

    @classmethod
    def allow(cls, tenant_validated: bool = False) -> "Decision":
        return cls(allowed=True, tenant_validated=tenant_validated)

    @classmethod
    def deny(cls, kind: ErrorKind, reason: str) -> "Decision":
        return cls(allowed=False, failure=Failure(kind, reason))


def evaluate(
    principal,
    policy: Policy,
    resource_company_id: int | None = None,
    resource_user_id: int | None = None,
) -> Decision:
    """Evaluate a policy for a principal against optional resource identifiers."""
    if principal is None:
        return Decision.deny(ErrorKind.UNAUTHENTICATED, "Authentication required")

    is_admin = principal.role == ROLE_ADMIN

    if policy.roles and not is_admin and principal.role not in policy.roles:
        return Decision.deny(ErrorKind.INSUFFICIENT_ROLE, "Insufficient role permissions")

    if policy.company_types and not is_admin and principal.company_type not in policy.company_types:
        return Decision.deny(
            ErrorKind.COMPANY_TYPE_NOT_AUTHORIZED,
            "Company type not authorized for this operation",
        )

    if policy.allow_self and resource_user_id is not None and resource_user_id == principal.user_id:
        return Decision.allow()

    if policy.require_company_match and resource_company_id is not None:
        if not principal.company_id:
            return Decision.deny(ErrorKind.NO_COMPANY_ASSOCIATION, "User not associated with any company")

        if principal.company_id != resource_company_id:
            return Decision.deny(
                ErrorKind.CROSS_TENANT_ACCESS,
                "Access denied: You can only access resources from your own company",
            )

        return Decision.allow(tenant_validated=True)

    return Decision.allow()


# Named policies

COMPANY_ADMIN = Policy(roles=(ROLE_ADMIN,), require_company_match=True, name="company_admin")
SUPPLIER_ONLY = Policy(company_types=(COMPANY_TYPE_SUPPLIER,), require_company_match=True, name="supplier_only")
DEALER_ONLY = Policy(company_types=(COMPANY_TYPE_DEALER,), require_company_match=True, name="dealer_only")
COMPANY_ACCESS = Policy(require_company_match=True, name="company_access")
PAYMENT_RECONCILER = Policy(roles=(ROLE_ADMIN, ROLE_MANAGER), require_company_match=True, name="payment_reconciler")
USER_GOVERNANCE = Policy(roles=(ROLE_ADMIN, ROLE_MANAGER), require_company_match=True, name="user_governance")
