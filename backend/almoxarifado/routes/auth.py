# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/almoxarifado/routes/auth.py
"""
Authentication API routes

- Login issues a bearer token (stored hashed, see session_service)
- Failed and successful logins are recorded in security_events
- Self-registration does not exist; admins create users
- Users change their own password, which signs out every session
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services import permission_service
from ..decorators import require_auth
from .responses import DOMAIN_ERRORS, error_response, internal_error, json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body:
    {
        "email": "admin@example.com",
        "password": "..."
    }

    Returns user info, permissions and the session token on success.
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "email and password required"}), 400
        email = data.get("email")
        password = data.get("password")

        if not email or not password:
            return jsonify({"error": "email and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        user = auth_service.authenticate(email, password)

        if not user:
            permission_service.log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource=request.path,
                action="LOGIN",
                reason=f"Invalid credentials for {str(email)[:200]}",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address
        )
        permission_service.log_security_event(
            user_id=user.id,
            event_type="LOGIN_SUCCEEDED",
            success=True,
            resource=request.path,
            action="LOGIN",
            ip_address=ip_address,
            user_agent=user_agent,
        )

        return jsonify({
            "user": user.to_dict(),
            "permissions": sorted(permission_service.get_user_permissions(user)),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session token."""
    try:
        session_service.revoke_session(g.auth_token, reason="User logout")
        permission_service.log_security_event(
            user_id=g.current_user.id,
            event_type="LOGOUT",
            success=True,
            resource=request.path,
            action="LOGOUT",
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/password")
@require_auth
def change_password_route():
    """
    Change the caller's own password.

    Request body:
    {
        "current_password": "...",
        "new_password": "..."       // must meet strength rules
    }

    Every session of the user is revoked, this one included; the client
    must log in again with the new password.
    """
    try:
        data = json_body()
        auth_service.change_own_password(
            g.current_user, data.get("current_password"), data.get("new_password")
        )
        permission_service.log_security_event(
            user_id=g.current_user.id,
            event_type="PASSWORD_CHANGED",
            success=True,
            resource=request.path,
            action="CHANGE_PASSWORD",
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({"message": "Password changed; please log in again"}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to change password")


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user and permission codes, for UI filtering."""
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permission_service.get_user_permissions(user)),
    }), 200
