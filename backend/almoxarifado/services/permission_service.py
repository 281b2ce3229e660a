# Overview: Service-layer operations for permission checks and security audit logging.

"""
Permission Checking and Security Event Logging

WHY: Every public operation asks one question before touching data:
may this actor do this, to this record? The answer comes from the static
role map in permissions/roles.py plus two ownership rules (only the
requester may sign, the requester may never approve their own request).

DESIGN PRINCIPLES:
- Fail closed: inactive or missing actors have no permissions
- Log denials only: granted checks are not logged
"""

from flask import has_request_context, request

from ..extensions import db
from ..models import SecurityEvent, User
from ..permissions import DEFAULT_ROLE_PERMISSIONS, validate_permission_code
from almoxarifado.time_utils import utcnow


class AuthorizationError(Exception):
    """Raised when the acting user may not perform an operation."""

    def __init__(self, message: str, *, permission_code: str | None = None):
        super().__init__(message)
        self.permission_code = permission_code


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    event_type examples:
    - PERMISSION_DENIED
    - OWNERSHIP_DENIED
    - SELF_APPROVAL_DENIED
    - LOGIN_FAILED
    - LOGIN_SUCCEEDED
    - LOGOUT
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_role_permissions(role: str) -> frozenset[str]:
    return DEFAULT_ROLE_PERMISSIONS.get(role, frozenset())


def get_user_permissions(user: User | None) -> frozenset[str]:
    """
    Get all permission codes for a user.

    Inactive users resolve to the empty set.
    """
    if user is None or not user.is_active:
        return frozenset()
    return get_role_permissions(user.role)


def user_has_permission(user: User | None, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user)


def _deny(actor: User | None, event_type: str, action: str | None, reason: str) -> None:
    resource = ip_address = user_agent = None
    if has_request_context():
        resource = request.path
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")

    log_security_event(
        user_id=actor.id if actor is not None else None,
        event_type=event_type,
        success=False,
        resource=resource,
        action=action,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )


def authorize(
    actor: User | None,
    permission_code: str | None,
    *,
    owner_user_id: int | None = None,
    not_owner_user_id: int | None = None,
) -> None:
    """
    Single authorization check used by every public operation.

    - permission_code: role permission the actor must hold (None skips)
    - owner_user_id: the actor must BE this user (signature attachment)
    - not_owner_user_id: the actor must NOT be this user (approvals)

    Raises AuthorizationError and records a SecurityEvent on denial.
    """
    if permission_code is not None and not validate_permission_code(permission_code):
        raise ValueError(f"Unknown permission code: {permission_code}")

    if actor is None or not actor.is_active:
        _deny(actor, "PERMISSION_DENIED", permission_code, "Inactive or unknown user")
        raise AuthorizationError("Authentication required", permission_code=permission_code)

    if permission_code is not None and not user_has_permission(actor, permission_code):
        _deny(actor, "PERMISSION_DENIED", permission_code, f"Role {actor.role} lacks {permission_code}")
        raise AuthorizationError(
            f"Missing permission: {permission_code}", permission_code=permission_code
        )

    if owner_user_id is not None and actor.id != owner_user_id:
        _deny(actor, "OWNERSHIP_DENIED", permission_code, f"Record belongs to user {owner_user_id}")
        raise AuthorizationError(
            "Only the original requester may perform this action", permission_code=permission_code
        )

    if not_owner_user_id is not None and actor.id == not_owner_user_id:
        _deny(actor, "SELF_APPROVAL_DENIED", permission_code, "Requester cannot decide own request")
        raise AuthorizationError(
            "You cannot approve or reject your own request", permission_code=permission_code
        )
