# Overview: Service-layer operations for the movement approval lifecycle.

"""
Movement Approval Lifecycle

STATE MACHINE:
    PENDING -> APPROVED
    PENDING -> REJECTED

    PENDING:  requested withdrawal, does NOT affect stock
    APPROVED: stock changed exactly once, before/after frozen (terminal)
    REJECTED: decided without touching stock (terminal)

RULES:
1. Only pending movements can be decided
2. Approval runs through transition_service.apply_movement()
3. Rejection changes status, approver and approved_at only
4. An approved outbound movement may be signed once, by its requester

Who may decide or sign is checked by permission_service.authorize()
before these functions are called.
"""

from __future__ import annotations
from typing import Literal

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Movement
from ..validation import ConflictError, ValidationError
from .concurrency import StorageError, material_lock, run_with_retry
from .ledger_service import get_movement
from .transition_service import apply_movement
from almoxarifado.time_utils import utcnow


VALID_STATUSES = {"pending", "approved", "rejected"}
TERMINAL_STATUSES = {"approved", "rejected"}
MovementStatus = Literal["pending", "approved", "rejected"]

VALID_TRANSITIONS = {
    ("pending", "approved"),
    ("pending", "rejected"),
}


class LifecycleError(ConflictError):
    """
    Raised when an invalid lifecycle transition is attempted.

    This is a domain error, not a technical error.
    """
    pass


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in VALID_TRANSITIONS


def _require_transition(movement: Movement, to_status: str) -> None:
    if not can_transition(movement.status, to_status):
        raise LifecycleError(
            f"Cannot move movement {movement.id} from {movement.status} to {to_status}"
        )


def can_attach_signature(movement: Movement) -> bool:
    return (
        movement.status == "approved"
        and movement.kind == "outbound"
        and movement.withdrawal_signature is None
    )


def approve_movement(movement_id: int, *, approver_user_id: int) -> Movement:
    """
    Approve a pending movement and apply it to stock.

    Raises InsufficientStockError when the material no longer has enough;
    the movement then stays pending and may be approved later or rejected.
    """
    movement = get_movement(movement_id)
    _require_transition(movement, "approved")

    return apply_movement(
        material_id=movement.material_id,
        acting_user_id=movement.requesting_user_id,
        kind=movement.kind,
        quantity=movement.requested_quantity,
        note=movement.note,
        status="approved",
        approver_user_id=approver_user_id,
        movement_id=movement.id,
    )


def reject_movement(movement_id: int, *, approver_user_id: int) -> Movement:
    """Reject a pending movement. Stock is never touched."""
    movement = get_movement(movement_id)

    def _op():
        try:
            movement = get_movement(movement_id, lock=True)
            _require_transition(movement, "rejected")

            movement.status = "rejected"
            movement.approver_user_id = approver_user_id
            movement.approved_at = utcnow()
            db.session.commit()
            return movement
        except ValueError:
            db.session.rollback()
            raise

    # Same lock as approval so a racing approve/reject pair decides once
    with material_lock(movement.material_id):
        try:
            movement = run_with_retry(_op)
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Failed to update movement %s", movement_id)
            raise StorageError("Failed to update movement") from exc

    current_app.logger.info("Movement %s rejected by user %s", movement.id, approver_user_id)
    return movement


def attach_signature(movement_id: int, *, signature_image: str) -> Movement:
    """Store the withdrawal signature on an approved outbound movement, once."""
    movement = get_movement(movement_id)

    def _op():
        try:
            movement = get_movement(movement_id, lock=True)
            if movement.status != "approved" or movement.kind != "outbound":
                raise LifecycleError("Only approved withdrawals can be signed")
            if movement.withdrawal_signature is not None:
                raise LifecycleError("Withdrawal has already been signed")

            movement.withdrawal_signature = signature_image
            movement.signed_at = utcnow()
            db.session.commit()
            return movement
        except ValueError:
            db.session.rollback()
            raise

    with material_lock(movement.material_id):
        try:
            movement = run_with_retry(_op)
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Failed to update movement %s", movement_id)
            raise StorageError("Failed to update movement") from exc

    current_app.logger.info("Movement %s signed by requester %s", movement.id, movement.requesting_user_id)
    return movement
