# Overview: Movement ledger; append-only writes, history queries and the flush-time immutability guard.

"""
Movement Ledger Service

WHY: The ledger is the audit trail behind every stock level. Records are
appended, never edited, and every query returns them in a stable
(created_at, id) order so replaying approved movements reproduces the
current quantity.

ALLOWED CHANGES to an existing movement (enforced by _guard_ledger at flush):
- pending -> approved, freezing quantity_before/quantity_after once
- pending -> rejected, quantity fields untouched
- a single withdrawal signature on an approved outbound movement
Deleting a movement is never allowed.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from ..extensions import db
from ..models import Movement
from ..validation import ConflictError, NotFoundError
from .concurrency import lock_for_update


DEFAULT_LIMIT = 200

# Set at creation, never changed
ALWAYS_FROZEN = ("material_id", "requesting_user_id", "kind", "requested_quantity", "created_at")
SNAPSHOT_FIELDS = ("quantity_before", "quantity_after")


def append_movement(movement: Movement) -> Movement:
    """
    Append a new record and flush so it gets its id and created_at.

    Refuses objects that already exist in the database.
    """
    state = inspect(movement)
    if state.persistent or state.detached:
        raise ConflictError("Ledger records are append-only")
    db.session.add(movement)
    db.session.flush()
    return movement


def get_movement(movement_id: int, *, lock: bool = False) -> Movement:
    query = db.session.query(Movement).filter(Movement.id == movement_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    movement = query.first()
    if movement is None:
        raise NotFoundError(f"Movement {movement_id} not found")
    return movement


def _ordered(query, ascending: bool):
    if ascending:
        return query.order_by(Movement.created_at.asc(), Movement.id.asc())
    return query.order_by(Movement.created_at.desc(), Movement.id.desc())


def list_movements(
    *,
    material_id: int | None = None,
    status: str | None = None,
    user_id: int | None = None,
    kind: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    ascending: bool = False,
    limit: int | None = DEFAULT_LIMIT,
) -> list[Movement]:
    """Combined filters for the history views. Newest first by default."""
    query = db.session.query(Movement)
    if material_id is not None:
        query = query.filter(Movement.material_id == material_id)
    if status is not None:
        query = query.filter(Movement.status == status)
    if user_id is not None:
        query = query.filter(Movement.requesting_user_id == user_id)
    if kind is not None:
        query = query.filter(Movement.kind == kind)
    if start is not None:
        query = query.filter(Movement.created_at >= start)
    if end is not None:
        query = query.filter(Movement.created_at <= end)

    query = _ordered(query, ascending)
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def list_movements_by_material(material_id: int, *, ascending: bool = False, limit: int | None = DEFAULT_LIMIT):
    return list_movements(material_id=material_id, ascending=ascending, limit=limit)


def list_movements_by_status(status: str, *, ascending: bool = True, limit: int | None = DEFAULT_LIMIT):
    """Pending queue reads oldest first."""
    return list_movements(status=status, ascending=ascending, limit=limit)


def list_movements_by_user(
    user_id: int,
    *,
    status: str | None = None,
    ascending: bool = False,
    limit: int | None = DEFAULT_LIMIT,
):
    return list_movements(user_id=user_id, status=status, ascending=ascending, limit=limit)


def material_has_movements(material_id: int) -> bool:
    return db.session.query(Movement.id).filter(Movement.material_id == material_id).first() is not None


def _previous(state, key):
    history = state.attrs[key].history
    if history.deleted:
        return history.deleted[0]
    return getattr(state.object, key)


def _changed(state, key) -> bool:
    return state.attrs[key].history.has_changes()


def _check_movement_update(movement: Movement) -> None:
    state = inspect(movement)

    for key in ALWAYS_FROZEN:
        if _changed(state, key):
            raise ConflictError(f"Movement {movement.id}: {key} is immutable")

    previous_status = _previous(state, "status")
    snapshot_changed = any(_changed(state, key) for key in SNAPSHOT_FIELDS)

    if previous_status == "pending":
        if snapshot_changed and movement.status != "approved":
            raise ConflictError(
                f"Movement {movement.id}: quantities are frozen only on approval"
            )
        if _changed(state, "withdrawal_signature"):
            raise ConflictError(f"Movement {movement.id}: only approved withdrawals can be signed")
        return

    # Decided movements
    if _changed(state, "status"):
        raise ConflictError(f"Movement {movement.id} is already {previous_status}")
    if snapshot_changed:
        raise ConflictError(f"Movement {movement.id}: quantities are frozen")
    if _changed(state, "withdrawal_signature"):
        if _previous(state, "withdrawal_signature") is not None:
            raise ConflictError(f"Movement {movement.id} is already signed")
        if movement.status != "approved" or movement.kind != "outbound":
            raise ConflictError(f"Movement {movement.id}: only approved withdrawals can be signed")


@event.listens_for(Session, "before_flush")
def _guard_ledger(session, flush_context, instances):
    for obj in session.deleted:
        if isinstance(obj, Movement):
            raise ConflictError("Ledger records cannot be deleted")

    for obj in session.dirty:
        if isinstance(obj, Movement) and session.is_modified(obj, include_collections=False):
            _check_movement_update(obj)
