# Overview: Quantity store; reads material stock and performs the guarded quantity write.

from __future__ import annotations

from ..extensions import db
from ..models import Material
from ..validation import ConflictError, NotFoundError
from .concurrency import lock_for_update


class InsufficientStockError(ConflictError):
    """Raised when a movement would take a material below zero."""

    def __init__(self, *, available: int, requested: int, material_id: int | None = None):
        super().__init__(
            f"Insufficient stock: available {available}, requested {requested}"
        )
        self.available = available
        self.requested = requested
        self.material_id = material_id


def get_material(material_id: int, *, lock: bool = False) -> Material:
    """
    Load a material or raise NotFoundError.

    lock=True issues SELECT ... FOR UPDATE and overwrites any stale copy in
    the identity map, so the caller sees the committed quantity.
    """
    query = db.session.query(Material).filter(Material.id == material_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    material = query.first()
    if material is None:
        raise NotFoundError(f"Material {material_id} not found")
    return material


def get_material_by_code(code: str) -> Material | None:
    return db.session.query(Material).filter(Material.code == code.strip().upper()).first()


def get_current_quantity(material_id: int) -> int:
    row = db.session.query(Material.current_quantity).filter(Material.id == material_id).first()
    if row is None:
        raise NotFoundError(f"Material {material_id} not found")
    return row[0]


def _set_quantity(material: Material, new_quantity: int) -> None:
    """
    Write a material's stock level.

    Only transition_service.apply_movement() calls this, inside the locked
    transaction that also freezes the movement's before/after.
    """
    if new_quantity < 0:
        raise InsufficientStockError(
            available=material.current_quantity,
            requested=material.current_quantity - new_quantity,
            material_id=material.id,
        )
    material.current_quantity = new_quantity
