# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/almoxarifado/routes/admin.py
"""
Admin routes for user management.

All routes require MANAGE_USERS (admin role).
- Permissions and the role map are static and listed read-only
- Users with movement history cannot be deleted; deactivate them instead
- An admin cannot delete, deactivate or demote their own account
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    get_all_permission_codes,
    get_permission_definition,
    get_permissions_by_category,
)
from ..services import auth_service, permission_service
from .responses import DOMAIN_ERRORS, error_response, internal_error, json_body


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _user_dict(user) -> dict:
    data = user.to_dict()
    data["permissions"] = sorted(permission_service.get_user_permissions(user))
    return data


@admin_bp.get("/users")
@require_auth
@require_permission("MANAGE_USERS")
def list_users():
    users = auth_service.list_users()
    return jsonify({"users": [_user_dict(u) for u in users], "count": len(users)}), 200


@admin_bp.post("/users")
@require_auth
@require_permission("MANAGE_USERS")
def create_user():
    """
    Request body:
    - email: str (required)
    - name: str (required)
    - password: str (required, must meet strength rules)
    - role: admin | viewer | withdrawer (default viewer)
    """
    try:
        data = json_body()
        user = auth_service.create_user(
            email=data.get("email"),
            name=data.get("name"),
            password=data.get("password"),
            role=data.get("role", "viewer"),
        )
        return jsonify({"user": _user_dict(user)}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create user")


@admin_bp.patch("/users/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def update_user(user_id: int):
    """Request body may contain name, role and is_active."""
    try:
        data = json_body()
        user = auth_service.update_user(user_id, data, actor=g.current_user)
        return jsonify({"user": _user_dict(user)}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update user")


@admin_bp.post("/users/<int:user_id>/password")
@require_auth
@require_permission("MANAGE_USERS")
def reset_password(user_id: int):
    """Request body: {"password": "..."}; revokes the user's sessions."""
    try:
        data = json_body()
        auth_service.set_password(user_id, data.get("password"))
        return jsonify({"message": "Password updated"}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to reset password")


@admin_bp.delete("/users/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def delete_user(user_id: int):
    try:
        auth_service.delete_user(user_id, actor=g.current_user)
        return jsonify({"message": f"User {user_id} deleted"}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete user")


# =============================================================================
# PERMISSIONS (static, read-only)
# =============================================================================

@admin_bp.get("/permissions")
@require_auth
@require_permission("MANAGE_USERS")
def list_permissions():
    """
    List all permission definitions.

    Query params:
    - category: MATERIALS | MOVEMENTS | REPORTS | USERS
    """
    category = request.args.get("category")
    if category:
        permissions = get_permissions_by_category(category)
    else:
        permissions = [get_permission_definition(code) for code in get_all_permission_codes()]

    return jsonify({"permissions": permissions}), 200


@admin_bp.get("/roles")
@require_auth
@require_permission("MANAGE_USERS")
def list_roles():
    """Role -> permission codes map."""
    return jsonify({
        "roles": {role: sorted(codes) for role, codes in DEFAULT_ROLE_PERMISSIONS.items()}
    }), 200
