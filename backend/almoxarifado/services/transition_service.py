# Overview: The atomic stock transition; the only code path that changes a material's quantity.

"""
Atomic Transition Procedure

WHY: Stock level and ledger must never disagree. Reading the current
quantity, validating the result and writing both the new quantity and the
movement's before/after snapshot happen in ONE transaction, under a lock
held for the whole read-modify-write.

LOCKING:
- material_lock(material_id): in-process mutex per material
- SELECT ... FOR UPDATE on the material row (honored by PostgreSQL/MySQL)
Movements on different materials never wait for each other.

FAILURE:
- after < 0 -> InsufficientStockError, nothing written
- any database error -> rollback of quantity AND movement, StorageError
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Material, Movement, MOVEMENT_KINDS
from ..validation import ConflictError, ValidationError
from .concurrency import StorageError, material_lock, run_with_retry
from .inventory_service import InsufficientStockError, _set_quantity, get_material
from .ledger_service import append_movement, get_movement
from almoxarifado.time_utils import utcnow


SIGN_BY_KIND = {
    "inbound": 1,
    "outbound": -1,
    "adjustment": 1,
}


def signed_delta(kind: str, quantity: int, *, decrease: bool = False) -> int:
    """
    Stock delta for a movement.

    Adjustments increase stock unless decrease=True; the frozen
    quantity_before/quantity_after on the record show which way it went.
    """
    if kind not in MOVEMENT_KINDS:
        raise ValidationError(f"kind must be one of: {', '.join(MOVEMENT_KINDS)}")
    if decrease:
        if kind != "adjustment":
            raise ValidationError("Only adjustments can decrease stock")
        return -quantity
    return SIGN_BY_KIND[kind] * quantity


def apply_movement(
    *,
    material_id: int,
    acting_user_id: int,
    kind: str,
    quantity: int,
    note: str | None = None,
    status: str = "approved",
    approver_user_id: int | None = None,
    decrease: bool = False,
    movement_id: int | None = None,
) -> Movement:
    """
    Apply one approved movement to a material's stock.

    movement_id=None appends a new approved movement (admin direct entry,
    bulk load). With movement_id the existing pending movement is finalized
    instead; it is re-read under the lock, so two approvals racing on the
    same request cannot both succeed.

    Returns the committed Movement.
    """
    if status != "approved":
        raise ValidationError("Only approved movements change stock")
    if quantity <= 0:
        raise ValidationError("quantity must be >= 1")

    delta = signed_delta(kind, quantity, decrease=decrease)
    approver_user_id = approver_user_id or acting_user_id

    def _op() -> Movement:
        try:
            material = get_material(material_id, lock=True)

            pending = None
            if movement_id is not None:
                pending = get_movement(movement_id, lock=True)
                if pending.status != "pending":
                    raise ConflictError(f"Movement {movement_id} is already {pending.status}")
                if (
                    pending.material_id != material_id
                    or pending.kind != kind
                    or pending.requested_quantity != quantity
                ):
                    raise ConflictError(f"Movement {movement_id} does not match the requested transition")

            before = material.current_quantity
            after = before + delta
            if after < 0:
                raise InsufficientStockError(
                    available=before, requested=quantity, material_id=material_id
                )

            _set_quantity(material, after)
            now = utcnow()

            if pending is None:
                movement = append_movement(Movement(
                    material_id=material_id,
                    requesting_user_id=acting_user_id,
                    kind=kind,
                    requested_quantity=quantity,
                    quantity_before=before,
                    quantity_after=after,
                    note=note,
                    status="approved",
                    approver_user_id=approver_user_id,
                    approved_at=now,
                ))
            else:
                movement = pending
                movement.quantity_before = before
                movement.quantity_after = after
                movement.status = "approved"
                movement.approver_user_id = approver_user_id
                movement.approved_at = now

            db.session.commit()
            return movement
        except ValueError:
            # NotFound, Conflict, InsufficientStock: nothing may stay half-written
            db.session.rollback()
            raise

    with material_lock(material_id):
        try:
            movement = run_with_retry(_op)
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception(
                "Stock transition failed for material %s (movement %s)", material_id, movement_id
            )
            raise StorageError("Failed to record stock movement") from exc

    current_app.logger.info(
        "Movement %s approved: material=%s kind=%s qty=%s %s->%s by user %s",
        movement.id, material_id, kind, quantity,
        movement.quantity_before, movement.quantity_after, approver_user_id,
    )
    return movement


def register_material_with_stock(
    fields: dict,
    *,
    acting_user_id: int,
    quantity: int,
    note: str | None = None,
) -> Movement:
    """
    Insert a new material together with its opening inbound movement.

    The material row, its stock level and the movement (0 -> quantity) are
    committed in one transaction, so the material is never visible at zero
    stock and a failure leaves nothing behind. A code that already exists
    raises ConflictError.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be >= 1")

    def _op() -> Movement:
        material = Material(**fields, current_quantity=0)
        try:
            db.session.add(material)
            db.session.flush()

            _set_quantity(material, quantity)
            movement = append_movement(Movement(
                material_id=material.id,
                requesting_user_id=acting_user_id,
                kind="inbound",
                requested_quantity=quantity,
                quantity_before=0,
                quantity_after=quantity,
                note=note,
                status="approved",
                approver_user_id=acting_user_id,
                approved_at=utcnow(),
            ))
            db.session.commit()
            return movement
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Material code {fields['code']} already exists")
        except ValueError:
            db.session.rollback()
            raise

    try:
        movement = run_with_retry(_op)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to register material %s", fields.get("code"))
        raise StorageError("Failed to record stock movement") from exc

    current_app.logger.info(
        "Material %s registered with opening stock %s by user %s",
        movement.material_id, quantity, acting_user_id,
    )
    return movement
