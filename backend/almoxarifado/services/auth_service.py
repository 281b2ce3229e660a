# Overview: Service-layer operations for auth and user accounts; encapsulates business logic and database work.

"""
Authentication and User Account Service

WHY: Every movement must be attributable to a requester and an approver.
Uses bcrypt for secure password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
- Deactivating a user or resetting a password revokes their sessions
"""

import re

import bcrypt

from ..extensions import db
from ..models import Movement, User, USER_ROLES
from ..validation import ConflictError, NotFoundError, ValidationError
from . import session_service
from almoxarifado.time_utils import utcnow


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str):
        raise PasswordValidationError("Password is required")

    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. Malformed hashes verify as False.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except (TypeError, ValueError):
        return False


def _normalize_email(email) -> str:
    if not isinstance(email, str) or not EMAIL_RE.match(email.strip()):
        raise ValidationError("A valid email is required")
    return email.strip().lower()


def _validate_role(role) -> str:
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    return role


def _validate_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")
    name = name.strip()
    if len(name) > 255:
        raise ValidationError("name exceeds max length 255")
    return name


def get_user(user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.name.asc(), User.id.asc()).all()


def create_user(
    email: str,
    name: str,
    password: str,
    role: str = "viewer",
    is_active: bool = True,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: bad email, name or role
        PasswordValidationError: password doesn't meet requirements
        ConflictError: email already registered
    """
    email = _normalize_email(email)
    name = _validate_name(name)
    role = _validate_role(role)

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise ConflictError("Email already registered")

    user = User(
        email=email,
        name=name,
        role=role,
        password_hash=hash_password(password),
        is_active=bool(is_active),
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns User if credentials valid and the account is active, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    if not isinstance(email, str) or not isinstance(password, str):
        return None

    user = db.session.query(User).filter(
        User.email == email.strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def update_user(user_id: int, patch: dict, *, actor: User) -> User:
    """
    Change name, role or active flag.

    An admin cannot demote or deactivate themselves, so the system always
    keeps at least the acting administrator.
    """
    if not isinstance(patch, dict):
        raise ValidationError("Invalid JSON payload")

    allowed = {"name", "role", "is_active"}
    for key in patch:
        if key not in allowed:
            raise ValidationError(f"Field not allowed: {key}")

    user = get_user(user_id)

    if "name" in patch:
        user.name = _validate_name(patch["name"])

    if "role" in patch:
        role = _validate_role(patch["role"])
        if user.id == actor.id and role != "admin":
            raise ConflictError("You cannot remove your own admin role")
        user.role = role

    if "is_active" in patch:
        if not isinstance(patch["is_active"], bool):
            raise ValidationError("is_active must be a boolean")
        if user.id == actor.id and not patch["is_active"]:
            raise ConflictError("You cannot deactivate your own account")
        user.is_active = patch["is_active"]

    db.session.commit()

    if not user.is_active:
        session_service.revoke_all_user_sessions(user.id, reason="User account deactivated")

    return user


def set_password(user_id: int, new_password: str, *, reason: str = "Password reset") -> User:
    user = get_user(user_id)
    user.password_hash = hash_password(new_password)
    db.session.commit()
    session_service.revoke_all_user_sessions(user.id, reason=reason)
    return user


def change_own_password(user: User, current_password, new_password) -> User:
    """
    Self-service password change.

    The current password must match. Every session of the user, the one
    making this call included, is revoked, so the user signs in again.
    """
    if not isinstance(current_password, str) or not current_password:
        raise ValidationError("current_password is required")
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    if current_password == new_password:
        raise ValidationError("New password must differ from the current one")

    return set_password(user.id, new_password, reason="Password changed by user")


def delete_user(user_id: int, *, actor: User) -> None:
    """
    Delete a user with no ledger history.

    Users referenced by any movement (as requester or approver) must be
    deactivated instead, so attribution is never lost.
    """
    user = get_user(user_id)

    if user.id == actor.id:
        raise ConflictError("You cannot delete your own account")

    referenced = db.session.query(Movement.id).filter(
        db.or_(Movement.requesting_user_id == user.id, Movement.approver_user_id == user.id)
    ).first()
    if referenced is not None:
        raise ConflictError("User has movement history; deactivate the account instead")

    session_service.revoke_all_user_sessions(user.id, reason="User deleted")
    for token in list(user.session_tokens):
        db.session.delete(token)
    for event in list(user.security_events):
        event.user_id = None
    db.session.delete(user)
    db.session.commit()
