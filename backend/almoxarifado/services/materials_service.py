# backend/almoxarifado/services/materials_service.py
"""
Materials Service

Master-data CRUD for materials. Stock levels are NOT edited here:
- create may seed current_quantity as initial stock
- update never accepts current_quantity (movements own it)
- code is frozen once the material has ledger history
- delete is refused once the material has ledger history
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Material
from ..validation import ConflictError, ValidationError
from .inventory_service import get_material
from .ledger_service import material_has_movements

MATERIAL_MUTABLE_FIELDS = {"code", "name", "unit", "description", "category", "location", "min_quantity"}


def apply_material_patch(m: Material, patch: dict) -> None:
    for k, v in patch.items():
        if k not in MATERIAL_MUTABLE_FIELDS:
            continue
        setattr(m, k, v)


def list_materials(
    *,
    search: str | None = None,
    category: str | None = None,
    below_minimum: bool = False,
) -> list[Material]:
    """Materials ordered by name; search matches code or name (case-insensitive)."""
    query = db.session.query(Material)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(Material.name.ilike(pattern), Material.code.ilike(pattern)))
    if category:
        query = query.filter(Material.category == category)
    if below_minimum:
        query = query.filter(Material.current_quantity <= Material.min_quantity)

    return query.order_by(Material.name.asc(), Material.id.asc()).all()


def _code_taken(code: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(Material.id).filter(Material.code == code)
    if exclude_id is not None:
        query = query.filter(Material.id != exclude_id)
    return query.first() is not None


def create_material(patch: dict) -> Material:
    if _code_taken(patch["code"]):
        raise ConflictError(f"Material code {patch['code']} already exists")

    material = Material(**patch)
    db.session.add(material)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Material code {patch['code']} already exists")
    return material


def update_material(material_id: int, patch: dict) -> Material:
    if "current_quantity" in patch:
        raise ValidationError("current_quantity changes only through stock movements")

    material = get_material(material_id)

    if "code" in patch and patch["code"] != material.code:
        # Bulk loads match on code; it is frozen once stock has moved
        if material_has_movements(material.id):
            raise ConflictError("Material has movement history; its code cannot change")
        if _code_taken(patch["code"], exclude_id=material.id):
            raise ConflictError(f"Material code {patch['code']} already exists")

    apply_material_patch(material, patch)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Material update conflicts with an existing record")
    return material


def delete_material(material_id: int) -> None:
    material = get_material(material_id)
    if material_has_movements(material.id):
        raise ConflictError("Material has movement history and cannot be deleted")
    db.session.delete(material)
    db.session.commit()
