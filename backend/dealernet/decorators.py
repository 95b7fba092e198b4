# Overview: Request decorators for API routes; principal resolution and policy checks.

from functools import wraps
from flask import current_app, jsonify, request

from .errors import ErrorKind
from .policy import Policy, evaluate
from .services import security_service


def _get_resolver():
    return current_app.extensions["dealernet"].resolver


def _failure_response(failure):
    return jsonify(failure.to_dict()), failure.http_status


def require_auth(f):
    """
    Require authentication and hand the view an explicit Principal.

    The view receives the resolved Principal as the `principal` keyword
    argument. Nothing is stored on flask.g.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User no longer exists
    - User account inactive or removed
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        result = _get_resolver().resolve_bearer(request.headers.get("Authorization"))

        if not result.ok:
            return _failure_response(result.failure)

        kwargs["principal"] = result.value
        return f(*args, **kwargs)

    return decorated_function


def authorize(policy: Policy):
    """
    Evaluate a policy against the principal and the company_id / user_id path
    parameters. Must be applied below @require_auth.

    MULTI-TENANT: Denials are written to security_events with the principal's
    company; cross-tenant attempts are also logged at WARNING.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = kwargs.get("principal")

            decision = evaluate(
                principal,
                policy,
                resource_company_id=kwargs.get("company_id"),
                resource_user_id=kwargs.get("user_id"),
            )

            if decision.allowed:
                return f(*args, **kwargs)

            failure = decision.failure
            if principal is not None:
                cross_tenant = failure.kind == ErrorKind.CROSS_TENANT_ACCESS
                if cross_tenant:
                    current_app.logger.warning(
                        "Cross-tenant access denied: user %s (company %s) -> company %s on %s %s",
                        principal.user_id,
                        principal.company_id,
                        kwargs.get("company_id"),
                        request.method,
                        request.path,
                    )

                security_service.log_security_event(
                    user_id=principal.user_id,
                    event_type=(
                        security_service.EVENT_CROSS_TENANT_ACCESS_DENIED
                        if cross_tenant
                        else security_service.EVENT_ACCESS_DENIED
                    ),
                    success=False,
                    resource=request.path,
                    action=request.method,
                    reason=f"{policy.name}: {failure.kind.value}",
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                    company_id=principal.company_id,
                )

            return _failure_response(failure)

        return decorated_function
    return decorator
