from flask import Blueprint, Response, jsonify, request

from almoxarifado.decorators import require_auth, require_permission
from almoxarifado.services import reporting_service
from almoxarifado.time_utils import utcnow
from almoxarifado.validation import ValidationError


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _csv_response(body: str, name: str) -> Response:
    filename = f"{name}_{utcnow().strftime('%Y%m%d')}.csv"
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@reports_bp.get("/dashboard")
@require_auth
@require_permission("VIEW_REPORTS")
def dashboard_report():
    return jsonify(reporting_service.dashboard()), 200


@reports_bp.get("/critical")
@require_auth
@require_permission("VIEW_REPORTS")
def critical_report():
    items = reporting_service.critical_materials()
    return jsonify({"items": items, "count": len(items)}), 200


@reports_bp.get("/inventory.csv")
@require_auth
@require_permission("VIEW_REPORTS")
def inventory_csv_report():
    return _csv_response(reporting_service.inventory_csv(), "inventory")


@reports_bp.get("/critical.csv")
@require_auth
@require_permission("VIEW_REPORTS")
def critical_csv_report():
    return _csv_response(reporting_service.critical_csv(), "critical_stock")


@reports_bp.get("/movements.csv")
@require_auth
@require_permission("VIEW_REPORTS")
def movements_csv_report():
    try:
        body = reporting_service.movements_csv(
            start=request.args.get("start"),
            end=request.args.get("end"),
            status=request.args.get("status"),
        )
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    return _csv_response(body, "movements")
