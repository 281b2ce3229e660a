# Overview: Public stock-movement operations; authorization first, then lifecycle and transition.

"""
Stock Movement Operations

Every function takes the acting User, authorizes it, then delegates:
- request_withdrawal       -> pending outbound movement (no stock change)
- submit_direct_movement   -> transition_service.apply_movement (approved)
- decide_movement          -> lifecycle_service approve/reject
- attach_withdrawal_signature -> lifecycle_service.attach_signature
- bulk_import              -> import_service.reconcile
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Movement, User
from ..validation import (
    ValidationError,
    validate_movement_quantity,
    validate_note,
    validate_signature_image,
)
from . import import_service, lifecycle_service
from .concurrency import StorageError, run_with_retry
from .inventory_service import get_material
from .ledger_service import append_movement, get_movement
from .permission_service import authorize
from .transition_service import apply_movement


DIRECT_KINDS = ("inbound", "adjustment")
DECISIONS = ("approve", "reject")


def _coerce_id(key: str, value) -> int:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{key} is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer")


def request_withdrawal(actor: User, material_id, quantity, note=None) -> Movement:
    """
    Create a pending outbound movement for later approval.

    Stock is not checked here; the check happens when an approver decides.
    """
    authorize(actor, "REQUEST_WITHDRAWAL")

    material_id = _coerce_id("material_id", material_id)
    quantity = validate_movement_quantity(quantity)
    note = validate_note(note)
    get_material(material_id)

    def _op():
        movement = append_movement(Movement(
            material_id=material_id,
            requesting_user_id=actor.id,
            kind="outbound",
            requested_quantity=quantity,
            note=note,
            status="pending",
        ))
        db.session.commit()
        return movement

    try:
        movement = run_with_retry(_op)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to record withdrawal request for material %s", material_id)
        raise StorageError("Failed to record withdrawal request") from exc

    current_app.logger.info(
        "Withdrawal %s requested: material=%s qty=%s by user %s",
        movement.id, material_id, quantity, actor.id,
    )
    return movement


def submit_direct_movement(
    actor: User,
    material_id,
    kind: str,
    quantity,
    note=None,
    decrease: bool = False,
) -> Movement:
    """Admin entry or adjustment, applied immediately as approved."""
    authorize(actor, "MANAGE_STOCK")

    if kind not in DIRECT_KINDS:
        raise ValidationError(f"kind must be one of: {', '.join(DIRECT_KINDS)}")
    if not isinstance(decrease, bool):
        raise ValidationError("decrease must be a boolean")

    return apply_movement(
        material_id=_coerce_id("material_id", material_id),
        acting_user_id=actor.id,
        kind=kind,
        quantity=validate_movement_quantity(quantity),
        note=validate_note(note),
        status="approved",
        approver_user_id=actor.id,
        decrease=decrease,
    )


def decide_movement(actor: User, movement_id: int, decision: str) -> Movement:
    """Approve or reject a pending movement requested by someone else."""
    if decision not in DECISIONS:
        raise ValidationError(f"decision must be one of: {', '.join(DECISIONS)}")

    movement = get_movement(movement_id)
    authorize(actor, "APPROVE_MOVEMENTS", not_owner_user_id=movement.requesting_user_id)

    if decision == "approve":
        return lifecycle_service.approve_movement(movement_id, approver_user_id=actor.id)
    return lifecycle_service.reject_movement(movement_id, approver_user_id=actor.id)


def attach_withdrawal_signature(actor: User, movement_id: int, signature_image) -> Movement:
    """The requester confirms receipt of an approved withdrawal, once."""
    movement = get_movement(movement_id)
    authorize(actor, "REQUEST_WITHDRAWAL", owner_user_id=movement.requesting_user_id)

    signature_image = validate_signature_image(
        signature_image, max_bytes=current_app.config["MAX_SIGNATURE_BYTES"]
    )
    return lifecycle_service.attach_signature(movement_id, signature_image=signature_image)


def bulk_import(actor: User, lines) -> import_service.ImportResult:
    authorize(actor, "BULK_IMPORT")

    if not isinstance(lines, list):
        raise ValidationError("items must be a list")
    if not lines:
        raise ValidationError("items must not be empty")
    max_lines = current_app.config["BULK_IMPORT_MAX_LINES"]
    if len(lines) > max_lines:
        raise ValidationError(f"Too many lines: {len(lines)} (max {max_lines})")

    return import_service.reconcile(lines, acting_user_id=actor.id)
