# Overview: Flask API routes for material master data; parses input and returns JSON responses.

# backend/almoxarifado/routes/materials.py
"""
Material management routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_MATERIALS permission
- Write operations require MANAGE_MATERIALS permission
- Per-material history requires VIEW_MOVEMENTS permission

current_quantity is accepted on create only (initial stock). After that
it changes exclusively through /api/movements.
"""
from flask import Blueprint, request, jsonify

from ..models import Material
from ..services import ledger_service, materials_service
from ..services.inventory_service import get_material
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_material,
)
from ..decorators import require_auth, require_permission
from .responses import DOMAIN_ERRORS, error_response, internal_error

MATERIAL_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "code", "name", "unit", "description", "category", "location",
        "min_quantity", "current_quantity",
    },
    required_on_create={"code", "name", "unit"},
)

MATERIAL_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "unit", "description", "category", "location", "min_quantity"},
)

materials_bp = Blueprint("materials", __name__, url_prefix="/api/materials")


@materials_bp.get("")
@require_auth
@require_permission("VIEW_MATERIALS")
def list_materials_route():
    """
    Query params:
    - search: substring of code or name
    - category: exact category
    - below_minimum: "true" to list only critical materials
    """
    below_minimum = request.args.get("below_minimum", "false").lower() == "true"
    materials = materials_service.list_materials(
        search=request.args.get("search"),
        category=request.args.get("category"),
        below_minimum=below_minimum,
    )
    return jsonify({"items": [m.to_dict() for m in materials], "count": len(materials)}), 200


@materials_bp.get("/<int:material_id>")
@require_auth
@require_permission("VIEW_MATERIALS")
def get_material_route(material_id: int):
    try:
        return jsonify({"material": get_material(material_id).to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)


@materials_bp.post("")
@require_auth
@require_permission("MANAGE_MATERIALS")
def create_material_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Material, payload=payload, policy=MATERIAL_CREATE_POLICY, partial=False)
        enforce_rules_material(patch)
        material = materials_service.create_material(patch)
        return jsonify({"material": material.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create material")


@materials_bp.patch("/<int:material_id>")
@require_auth
@require_permission("MANAGE_MATERIALS")
def update_material_route(material_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        if isinstance(payload, dict) and "current_quantity" in payload:
            return jsonify({
                "error": "current_quantity changes only through stock movements",
                "code": "validation_error",
            }), 400
        patch = validate_payload(model=Material, payload=payload, policy=MATERIAL_UPDATE_POLICY, partial=True)
        enforce_rules_material(patch)
        material = materials_service.update_material(material_id, patch)
        return jsonify({"material": material.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update material")


@materials_bp.delete("/<int:material_id>")
@require_auth
@require_permission("MANAGE_MATERIALS")
def delete_material_route(material_id: int):
    try:
        materials_service.delete_material(material_id)
        return jsonify({"message": f"Material {material_id} deleted"}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete material")


@materials_bp.get("/<int:material_id>/movements")
@require_auth
@require_permission("VIEW_MOVEMENTS")
def material_movements_route(material_id: int):
    """Ledger for one material, newest first (ascending=true for replay order)."""
    ascending = request.args.get("ascending", "false").lower() == "true"
    limit = request.args.get("limit", default=200, type=int)

    try:
        material = get_material(material_id)
        movements = ledger_service.list_movements_by_material(
            material_id, ascending=ascending, limit=max(1, min(limit, 1000))
        )
        return jsonify({
            "material": material.to_dict(),
            "movements": [m.to_dict() for m in movements],
        }), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
