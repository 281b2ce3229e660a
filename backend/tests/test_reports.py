"""
Reporting tests: dashboard aggregates and semicolon-delimited CSV exports.
"""

import csv
import io

from almoxarifado.services import movement_service, reporting_service


def _rows(body: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(body), delimiter=";"))


class TestDashboard:

    def test_aggregates(self, client, admin, withdrawer, viewer_headers, material_factory):
        low = material_factory(code="LOW", name="Low", current_quantity=1, min_quantity=5)
        empty = material_factory(code="ZERO", name="Zero", current_quantity=0, min_quantity=0)
        ok = material_factory(code="OK", name="Ok", current_quantity=50, min_quantity=5)

        movement_service.submit_direct_movement(admin, ok.id, "inbound", 10)
        pending = movement_service.request_withdrawal(withdrawer, ok.id, 30)
        movement_service.decide_movement(admin, pending.id, "approve")
        movement_service.request_withdrawal(withdrawer, low.id, 1)

        resp = client.get("/api/reports/dashboard", headers=viewer_headers)
        assert resp.status_code == 200
        data = resp.json

        assert set(data) == {
            "generated_at", "material_count", "critical_count", "zero_stock_count",
            "pending_count", "approved_movements_last_30_days", "critical_materials",
            "top_moving_materials", "trend",
        }
        assert data["material_count"] == 3
        assert data["critical_count"] == 2
        assert data["zero_stock_count"] == 1
        assert data["pending_count"] == 1
        assert data["approved_movements_last_30_days"] == 2

        assert [r["code"] for r in data["critical_materials"]] == ["LOW", "ZERO"]
        assert data["critical_materials"][0]["deficit"] == 4
        assert empty.id in {r["id"] for r in data["critical_materials"]}

        assert data["top_moving_materials"][0]["code"] == "OK"
        assert data["top_moving_materials"][0]["total_quantity"] == 40

        assert len(data["trend"]) == 30
        today = data["trend"][-1]
        assert today["inbound"] == 10
        assert today["outbound"] == 30

    def test_decreasing_adjustment_counts_as_outbound(self, admin, material_factory):
        material = material_factory(current_quantity=10)
        movement_service.submit_direct_movement(admin, material.id, "adjustment", 4, decrease=True)

        trend = reporting_service.dashboard()["trend"]
        assert trend[-1] == {"date": trend[-1]["date"], "inbound": 0, "outbound": 4}


class TestCsvExports:

    def test_inventory_csv(self, client, viewer_headers, material_factory):
        material_factory(code="B", name="Bota", unit="par", category="EPI", current_quantity=1, min_quantity=3)
        material_factory(code="A", name="Avental", unit="un", current_quantity=9, min_quantity=3)

        resp = client.get("/api/reports/inventory.csv", headers=viewer_headers)

        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        disposition = resp.headers["Content-Disposition"]
        assert disposition.startswith("attachment; filename=inventory_")
        assert disposition.endswith(".csv")

        rows = _rows(resp.get_data(as_text=True))
        assert rows[0] == [
            "code", "name", "unit", "category", "location", "current_quantity", "min_quantity", "status",
        ]
        assert rows[1] == ["A", "Avental", "un", "", "", "9", "3", "ok"]
        assert rows[2] == ["B", "Bota", "par", "EPI", "", "1", "3", "critical"]

    def test_critical_csv(self, client, viewer_headers, material_factory):
        material_factory(code="C1", name="Cola", current_quantity=0, min_quantity=2)
        material_factory(code="C2", name="Cimento", current_quantity=1, min_quantity=10)
        material_factory(code="C3", name="Cal", current_quantity=30, min_quantity=10)

        resp = client.get("/api/reports/critical.csv", headers=viewer_headers)
        rows = _rows(resp.get_data(as_text=True))

        assert rows[0] == ["code", "name", "unit", "current_quantity", "min_quantity", "deficit"]
        assert [r[0] for r in rows[1:]] == ["C2", "C1"]
        assert rows[1][5] == "9"

    def test_movements_csv(self, client, admin, withdrawer, viewer_headers, material_factory, signature_image):
        material = material_factory(code="M1", name="Máscara", current_quantity=5)
        pending = movement_service.request_withdrawal(withdrawer, material.id, 2, note="Turno; noite")
        movement_service.decide_movement(admin, pending.id, "approve")
        movement_service.attach_withdrawal_signature(withdrawer, pending.id, signature_image)
        movement_service.request_withdrawal(withdrawer, material.id, 1)

        resp = client.get("/api/reports/movements.csv", headers=viewer_headers)
        rows = _rows(resp.get_data(as_text=True))

        header = rows[0]
        assert header[:6] == ["id", "created_at", "material_code", "material_name", "kind", "quantity"]
        assert len(rows) == 3

        by_status = {r[header.index("status")]: dict(zip(header, r)) for r in rows[1:]}
        approved = by_status["approved"]
        assert approved["quantity_before"] == "5"
        assert approved["quantity_after"] == "3"
        assert approved["signed"] == "yes"
        assert approved["requested_by"] == withdrawer.email
        assert approved["approved_by"] == admin.email
        assert approved["note"] == "Turno; noite"

        assert by_status["pending"]["quantity_before"] == ""

        resp = client.get("/api/reports/movements.csv?status=pending", headers=viewer_headers)
        assert len(_rows(resp.get_data(as_text=True))) == 2

    def test_movements_csv_bad_range(self, client, viewer_headers):
        resp = client.get(
            "/api/reports/movements.csv?start=2026-02-01&end=2026-01-01", headers=viewer_headers
        )
        assert resp.status_code == 400

        resp = client.get("/api/reports/movements.csv?status=lost", headers=viewer_headers)
        assert resp.status_code == 400
