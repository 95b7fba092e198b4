# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/dealernet/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- bcrypt password verification
- Session management with revocable bearer tokens
- Failed logins recorded to security_events
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import auth_service
from ..services import session_service
from ..services import security_service
from ..decorators import require_auth
from ..validation import ValidationError, json_object


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Self-registration is disabled for security.

    Users are created by company administrators or via:
    - CLI: flask users create
    """
    return jsonify({
        "error": "Self-registration is disabled. Contact your company administrator."
    }), 403


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info and session token on success.
    Token must be included in Authorization header for protected routes.
    """
    try:
        try:
            data = json_object(request.get_json(silent=True))
        except ValidationError as e:
            return jsonify({"error": "ValidationFailed", "message": str(e)}), 400

        email = data.get("email")
        password = data.get("password")

        if not all([email, password]) or not isinstance(email, str) or not isinstance(password, str):
            return jsonify({"error": "ValidationFailed", "message": "email and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        result = auth_service.authenticate(email, password, user_agent=user_agent, ip_address=ip_address)

        if not result.ok:
            security_service.log_security_event(
                user_id=None,
                event_type=security_service.EVENT_LOGIN_FAILED,
                success=False,
                resource=request.path,
                action=request.method,
                reason=result.failure.kind.value,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify(result.failure.to_dict()), result.failure.http_status

        user, token = result.value

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route(principal):
    """Revoke the bearer token used for this request."""
    try:
        token = request.headers.get("Authorization", "").split(" ", 1)[1].strip()
        session_service.revoke_session(token, reason="User logout")

        security_service.log_security_event(
            user_id=principal.user_id,
            event_type=security_service.EVENT_LOGOUT,
            success=True,
            resource=request.path,
            action=request.method,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
            company_id=principal.company_id,
        )

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route(principal):
    """Current principal, as resolved for this request."""
    return jsonify({"principal": principal.to_dict()}), 200
