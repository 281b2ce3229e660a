# backend/almoxarifado/routes/imports.py
"""
Bulk stock import route.

Accepts either a JSON body {"items": [...]} or a multipart upload with a
"file" field (.csv, .json or .xlsx). Per-line failures come back in
"errors"; the rest of the batch is still applied.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..services import import_service, movement_service
from .responses import DOMAIN_ERRORS, error_response, internal_error, json_body


imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")


@imports_bp.post("/materials")
@require_auth
@require_permission("BULK_IMPORT")
def import_materials_route():
    try:
        if "file" in request.files:
            file = request.files["file"]
            lines = import_service.rows_from_upload(file.filename or "", file.stream)
        else:
            data = json_body()
            lines = data.get("items")

        result = movement_service.bulk_import(g.current_user, lines)
        return jsonify(result.to_dict()), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to import materials")
