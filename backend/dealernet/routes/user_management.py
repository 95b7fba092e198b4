# Overview: Flask API routes for company user management; parses input and returns JSON responses.

# backend/dealernet/routes/user_management.py
"""
Company user management routes.

Provides endpoints for:
- Listing the users of a company
- Changing a user's role and status
- Removing a user (soft delete)
- Reading the company's user audit trail
- Listing the roles the caller may assign

All endpoints require an admin or manager of the company named in the path.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, authorize
from ..errors import ErrorKind, Failure
from ..policy import USER_GOVERNANCE
from ..validation import ValidationError, json_object
from .. import get_services

user_management_bp = Blueprint("user_management", __name__, url_prefix="/api/companies/<int:company_id>/users")


def _failure(failure):
    return jsonify(failure.to_dict()), failure.http_status


@user_management_bp.get("")
@require_auth
@authorize(USER_GOVERNANCE)
def list_users_route(company_id: int, principal):
    """
    List the users of a company.

    Query params:
    - include_removed: bool (default false)
    """
    try:
        include_removed = request.args.get("include_removed", "false").lower() == "true"
        result = get_services().governance.list_company_users(principal, include_removed=include_removed)
        if not result.ok:
            return _failure(result.failure)

        return jsonify({"users": [u.to_dict() for u in result.value]}), 200

    except Exception:
        current_app.logger.exception("Failed to list company users")
        return jsonify({"error": "Internal server error"}), 500


@user_management_bp.get("/audit-logs")
@require_auth
@authorize(USER_GOVERNANCE)
def list_audit_logs_route(company_id: int, principal):
    """Most recent 100 governance actions on users of this company."""
    try:
        result = get_services().governance.list_audit_logs(principal)
        if not result.ok:
            return _failure(result.failure)

        return jsonify({"audit_logs": [log.to_dict() for log in result.value]}), 200

    except Exception:
        current_app.logger.exception("Failed to list user audit logs")
        return jsonify({"error": "Internal server error"}), 500


@user_management_bp.get("/roles")
@require_auth
@authorize(USER_GOVERNANCE)
def assignable_roles_route(company_id: int, principal):
    return jsonify({"roles": get_services().governance.assignable_roles(principal)}), 200


@user_management_bp.put("/<int:user_id>")
@require_auth
@authorize(USER_GOVERNANCE)
def update_user_route(company_id: int, user_id: int, principal):
    """
    Change a user's role and status.

    Request body:
    {
        "role": "staff" | "manager" | "admin",
        "status": "active" | "inactive",
        "reason": "Promoted after review"  (3-500 characters)
    }

    Returns:
        200: Updated user
        400: Invalid input or self-modification
        403: Target outranks caller, or role above caller's own
        404: User not in this company
    """
    try:
        try:
            data = json_object(request.get_json(silent=True))
        except ValidationError as e:
            return _failure(Failure(ErrorKind.VALIDATION_FAILED, str(e)))

        result = get_services().governance.update_user_role_and_status(
            principal,
            user_id,
            data.get("role"),
            data.get("status"),
            data.get("reason"),
        )

        if not result.ok:
            return _failure(result.failure)

        return jsonify({"user": result.value.to_dict(), "message": "User updated"}), 200

    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@user_management_bp.delete("/<int:user_id>")
@require_auth
@authorize(USER_GOVERNANCE)
def remove_user_route(company_id: int, user_id: int, principal):
    """
    Remove a user from the company. The account is kept with status 'removed'.

    Request body:
    {
        "reason": "Left the company"
    }
    """
    try:
        try:
            data = json_object(request.get_json(silent=True))
        except ValidationError as e:
            return _failure(Failure(ErrorKind.VALIDATION_FAILED, str(e)))

        result = get_services().governance.remove_user(principal, user_id, data.get("reason"))

        if not result.ok:
            return _failure(result.failure)

        return jsonify({"user": result.value.to_dict(), "message": "User removed"}), 200

    except Exception:
        current_app.logger.exception("Failed to remove user")
        return jsonify({"error": "Internal server error"}), 500
