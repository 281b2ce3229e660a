# backend/almoxarifado/routes/movements.py
"""
Stock Movement API Routes

- POST /api/movements/withdrawals          request a withdrawal (pending outbound)
- POST /api/movements/direct               admin inbound/adjustment, applied immediately
- POST /api/movements/:id/decision         approve or reject a pending movement
- POST /api/movements/:id/signature        requester signs an approved withdrawal
- GET  /api/movements                      history, newest first
- GET  /api/movements/pending              approval queue, oldest first
- GET  /api/movements/mine                 the caller's own requests
- GET  /api/movements/:id                  one movement, with signature

SECURITY:
- User IDs are taken from the authenticated session (g.current_user), NOT
  from the request body
- The service layer re-checks every permission and ownership rule
"""

from flask import Blueprint, request, jsonify, g

from ..services import ledger_service, movement_service, permission_service
from ..services.lifecycle_service import validate_status
from ..models import MOVEMENT_KINDS
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError
from ..decorators import require_auth, require_permission, require_any_permission
from .responses import DOMAIN_ERRORS, error_response, internal_error, json_body


movements_bp = Blueprint("movements", __name__, url_prefix="/api/movements")

MAX_LIMIT = 1000


def _limit_arg(default: int = 200) -> int:
    limit = request.args.get("limit", default=default, type=int)
    return max(1, min(limit, MAX_LIMIT))


def _date_arg(key: str):
    value = request.args.get(key)
    if not value:
        return None
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 date")


@movements_bp.post("/withdrawals")
@require_auth
@require_permission("REQUEST_WITHDRAWAL")
def request_withdrawal_route():
    """
    Request body:
    {
        "material_id": 1,
        "quantity": 5,
        "note": "Maintenance team"   // optional
    }
    """
    try:
        data = json_body()
        movement = movement_service.request_withdrawal(
            g.current_user,
            data.get("material_id"),
            data.get("quantity"),
            data.get("note"),
        )
        return jsonify({
            "movement": movement.to_dict(),
            "message": "Withdrawal requested; awaiting approval",
        }), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to request withdrawal")


@movements_bp.post("/direct")
@require_auth
@require_permission("MANAGE_STOCK")
def direct_movement_route():
    """
    Request body:
    {
        "material_id": 1,
        "kind": "inbound" | "adjustment",
        "quantity": 10,
        "decrease": false,          // adjustments only
        "note": "Invoice 123"       // optional
    }
    """
    try:
        data = json_body()
        movement = movement_service.submit_direct_movement(
            g.current_user,
            data.get("material_id"),
            data.get("kind"),
            data.get("quantity"),
            note=data.get("note"),
            decrease=data.get("decrease", False),
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record direct movement")


@movements_bp.post("/<int:movement_id>/decision")
@require_auth
@require_permission("APPROVE_MOVEMENTS")
def decide_movement_route(movement_id: int):
    """
    Request body: {"decision": "approve" | "reject"}

    Error responses:
        403: caller lacks APPROVE_MOVEMENTS or requested the movement
        404: movement not found
        409: already decided, or insufficient stock (body has available/requested)
    """
    try:
        data = json_body()
        movement = movement_service.decide_movement(g.current_user, movement_id, data.get("decision"))
        return jsonify({
            "movement": movement.to_dict(),
            "message": f"Movement {movement_id} {movement.status}",
        }), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to decide movement")


@movements_bp.post("/<int:movement_id>/signature")
@require_auth
def attach_signature_route(movement_id: int):
    """Request body: {"signature_image": "data:image/png;base64,..."}"""
    try:
        data = json_body()
        movement = movement_service.attach_withdrawal_signature(
            g.current_user, movement_id, data.get("signature_image")
        )
        return jsonify({
            "movement": movement.to_dict(),
            "message": "Withdrawal signed",
        }), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to attach signature")


@movements_bp.get("")
@require_auth
@require_permission("VIEW_MOVEMENTS")
def list_movements_route():
    """
    Query params (all optional):
    - status, kind, material_id, user_id
    - start, end: ISO-8601 bounds on created_at
    - limit: default 200, max 1000
    """
    try:
        status = request.args.get("status") or None
        if status:
            validate_status(status)
        kind = request.args.get("kind") or None
        if kind and kind not in MOVEMENT_KINDS:
            raise ValidationError(f"kind must be one of: {', '.join(MOVEMENT_KINDS)}")

        movements = ledger_service.list_movements(
            material_id=request.args.get("material_id", type=int),
            status=status,
            user_id=request.args.get("user_id", type=int),
            kind=kind,
            start=_date_arg("start"),
            end=_date_arg("end"),
            limit=_limit_arg(),
        )
        return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)


@movements_bp.get("/pending")
@require_auth
@require_any_permission("APPROVE_MOVEMENTS", "VIEW_MOVEMENTS")
def pending_movements_route():
    movements = ledger_service.list_movements_by_status("pending", ascending=True, limit=_limit_arg())
    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200


@movements_bp.get("/mine")
@require_auth
@require_any_permission("VIEW_OWN_MOVEMENTS", "VIEW_MOVEMENTS")
def my_movements_route():
    try:
        status = request.args.get("status") or None
        if status:
            validate_status(status)
        movements = ledger_service.list_movements_by_user(
            g.current_user.id, status=status, limit=_limit_arg()
        )
        return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)


@movements_bp.get("/<int:movement_id>")
@require_auth
@require_any_permission("VIEW_OWN_MOVEMENTS", "VIEW_MOVEMENTS")
def get_movement_route(movement_id: int):
    """Withdrawers may only read their own movements."""
    try:
        movement = ledger_service.get_movement(movement_id)
        if not permission_service.user_has_permission(g.current_user, "VIEW_MOVEMENTS"):
            permission_service.authorize(
                g.current_user, "VIEW_OWN_MOVEMENTS", owner_user_id=movement.requesting_user_id
            )
        return jsonify({"movement": movement.to_dict(include_signature=True)}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
