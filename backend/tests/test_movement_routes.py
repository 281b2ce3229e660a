"""
Stock movement API tests.

Verifies:
- The full withdrawal flow over HTTP: request, approve, sign
- Error bodies carry a machine-readable code (insufficient_stock, conflict, ...)
- History and queue endpoints filter and order correctly
"""

import pytest

from almoxarifado.services import movement_service
from almoxarifado.services.inventory_service import get_current_quantity


def _direct(client, headers, material_id, quantity, kind="inbound", **extra):
    body = {"material_id": material_id, "kind": kind, "quantity": quantity}
    body.update(extra)
    return client.post("/api/movements/direct", json=body, headers=headers)


def _request(client, headers, material_id, quantity, note=None):
    return client.post(
        "/api/movements/withdrawals",
        json={"material_id": material_id, "quantity": quantity, "note": note},
        headers=headers,
    )


def _decide(client, headers, movement_id, decision):
    return client.post(
        f"/api/movements/{movement_id}/decision", json={"decision": decision}, headers=headers
    )


class TestWithdrawalScenario:

    def test_full_flow(self, client, admin_headers, withdrawer_headers, material_factory, signature_image):
        material = material_factory(code="LUV-01", name="Luva nitrílica", current_quantity=10)

        # Inbound 5: 10 -> 15
        resp = _direct(client, admin_headers, material.id, 5, note="NF 4411")
        assert resp.status_code == 201
        assert (resp.json["movement"]["quantity_before"], resp.json["movement"]["quantity_after"]) == (10, 15)

        # Request 20, approval fails with the available amount
        resp = _request(client, withdrawer_headers, material.id, 20)
        assert resp.status_code == 201
        too_many = resp.json["movement"]["id"]
        assert resp.json["movement"]["status"] == "pending"

        resp = _decide(client, admin_headers, too_many, "approve")
        assert resp.status_code == 409
        assert resp.json["code"] == "insufficient_stock"
        assert resp.json["available"] == 15
        assert resp.json["requested"] == 20
        assert get_current_quantity(material.id) == 15

        # Request 10, approve: 15 -> 5
        resp = _request(client, withdrawer_headers, material.id, 10, note="Equipe de manutenção")
        withdrawal = resp.json["movement"]["id"]
        resp = _decide(client, admin_headers, withdrawal, "approve")
        assert resp.status_code == 200
        movement = resp.json["movement"]
        assert movement["status"] == "approved"
        assert (movement["quantity_before"], movement["quantity_after"]) == (15, 5)
        assert movement["material"]["current_quantity"] == 5
        assert get_current_quantity(material.id) == 5

        # Requester signs once
        sign_url = f"/api/movements/{withdrawal}/signature"
        resp = client.post(sign_url, json={"signature_image": signature_image}, headers=withdrawer_headers)
        assert resp.status_code == 200
        assert resp.json["movement"]["is_signed"] is True

        resp = client.post(sign_url, json={"signature_image": signature_image}, headers=withdrawer_headers)
        assert resp.status_code == 409
        assert resp.json["code"] == "conflict"

        # Signature is returned on the single-movement view only
        resp = client.get(f"/api/movements/{withdrawal}", headers=withdrawer_headers)
        assert resp.json["movement"]["withdrawal_signature"] == signature_image
        resp = client.get("/api/movements/mine", headers=withdrawer_headers)
        assert all("withdrawal_signature" not in m for m in resp.json["items"])

        # The rejected-for-stock request is still pending and can be rejected
        resp = _decide(client, admin_headers, too_many, "reject")
        assert resp.status_code == 200
        assert resp.json["movement"]["status"] == "rejected"
        assert get_current_quantity(material.id) == 5


class TestMovementErrors:

    def test_self_approval_forbidden(self, client, admin_headers, admin2_headers, material_factory):
        material = material_factory(current_quantity=10)
        movement_id = _request(client, admin_headers, material.id, 1).json["movement"]["id"]

        resp = _decide(client, admin_headers, movement_id, "approve")
        assert resp.status_code == 403
        assert resp.json["code"] == "forbidden"
        assert resp.json["required_permission"] == "APPROVE_MOVEMENTS"

        assert _decide(client, admin2_headers, movement_id, "approve").status_code == 200

    def test_second_decision_conflicts(self, client, admin_headers, withdrawer_headers, material_factory):
        material = material_factory(current_quantity=10)
        movement_id = _request(client, withdrawer_headers, material.id, 1).json["movement"]["id"]

        assert _decide(client, admin_headers, movement_id, "approve").status_code == 200
        resp = _decide(client, admin_headers, movement_id, "reject")
        assert resp.status_code == 409
        assert resp.json["code"] == "conflict"

    def test_unknown_movement(self, client, admin_headers):
        resp = _decide(client, admin_headers, 4040, "approve")
        assert resp.status_code == 404
        assert resp.json["code"] == "not_found"

    def test_bad_decision(self, client, admin_headers, withdrawer_headers, material_factory):
        material = material_factory(current_quantity=10)
        movement_id = _request(client, withdrawer_headers, material.id, 1).json["movement"]["id"]
        resp = _decide(client, admin_headers, movement_id, "maybe")
        assert resp.status_code == 400
        assert resp.json["code"] == "validation_error"

    @pytest.mark.parametrize("body", [
        {},
        {"material_id": 1},
        {"material_id": 1, "quantity": 0},
        {"material_id": 1, "quantity": "ten"},
        {"material_id": "abc", "quantity": 1},
    ])
    def test_bad_withdrawal_payloads(self, client, withdrawer_headers, material_factory, body):
        material_factory(current_quantity=10)
        resp = client.post("/api/movements/withdrawals", json=body, headers=withdrawer_headers)
        assert resp.status_code == 400

    @pytest.mark.parametrize("path", [
        "/api/movements/withdrawals",
        "/api/movements/direct",
        "/api/movements/1/decision",
        "/api/movements/1/signature",
        "/api/imports/materials",
        "/api/admin/users",
        "/api/admin/users/1/password",
    ])
    @pytest.mark.parametrize("body", [[1], ["material_id", 1], "text", 7])
    def test_non_object_body(self, client, admin_headers, path, body):
        resp = client.post(path, json=body, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "validation_error"

    def test_non_object_login_body(self, client):
        assert client.post("/api/auth/login", json=[1]).status_code == 400

    def test_withdrawal_for_unknown_material(self, client, withdrawer_headers):
        resp = _request(client, withdrawer_headers, 999, 1)
        assert resp.status_code == 404

    def test_decreasing_adjustment_below_zero(self, client, admin_headers, material_factory):
        material = material_factory(current_quantity=2)
        resp = _direct(client, admin_headers, material.id, 3, kind="adjustment", decrease=True)
        assert resp.status_code == 409
        assert resp.json["code"] == "insufficient_stock"
        assert get_current_quantity(material.id) == 2

    def test_direct_outbound_not_allowed(self, client, admin_headers, material_factory):
        material = material_factory(current_quantity=2)
        resp = _direct(client, admin_headers, material.id, 1, kind="outbound")
        assert resp.status_code == 400

    def test_other_user_cannot_sign(self, client, admin, withdrawer, admin2_headers, material_factory, signature_image):
        material = material_factory(current_quantity=10)
        pending = movement_service.request_withdrawal(withdrawer, material.id, 1)
        movement_service.decide_movement(admin, pending.id, "approve")

        resp = client.post(
            f"/api/movements/{pending.id}/signature",
            json={"signature_image": signature_image},
            headers=admin2_headers,
        )
        assert resp.status_code == 403

    def test_invalid_signature_payload(self, client, admin, withdrawer, withdrawer_headers, material_factory):
        material = material_factory(current_quantity=10)
        pending = movement_service.request_withdrawal(withdrawer, material.id, 1)
        movement_service.decide_movement(admin, pending.id, "approve")

        resp = client.post(
            f"/api/movements/{pending.id}/signature",
            json={"signature_image": "hello"},
            headers=withdrawer_headers,
        )
        assert resp.status_code == 400


class TestMovementQueries:

    def test_pending_queue_oldest_first(self, client, viewer_headers, withdrawer, material_factory):
        material = material_factory(current_quantity=10)
        ids = [movement_service.request_withdrawal(withdrawer, material.id, 1).id for _ in range(3)]

        resp = client.get("/api/movements/pending", headers=viewer_headers)
        assert resp.status_code == 200
        assert [m["id"] for m in resp.json["items"]] == ids
        assert resp.json["items"][0]["user"]["email"] == withdrawer.email

    def test_history_filters(self, client, admin, withdrawer, viewer_headers, material_factory):
        first = material_factory(current_quantity=10)
        second = material_factory(current_quantity=10)
        movement_service.submit_direct_movement(admin, first.id, "inbound", 1)
        movement_service.submit_direct_movement(admin, second.id, "inbound", 1)
        movement_service.request_withdrawal(withdrawer, first.id, 1)

        resp = client.get(f"/api/movements?material_id={first.id}", headers=viewer_headers)
        assert resp.json["count"] == 2

        resp = client.get("/api/movements?status=pending", headers=viewer_headers)
        assert [m["material_id"] for m in resp.json["items"]] == [first.id]

        resp = client.get("/api/movements?kind=inbound", headers=viewer_headers)
        assert resp.json["count"] == 2

        resp = client.get(f"/api/movements?user_id={withdrawer.id}", headers=viewer_headers)
        assert resp.json["count"] == 1

        resp = client.get("/api/movements?limit=1", headers=viewer_headers)
        assert resp.json["count"] == 1

    @pytest.mark.parametrize("query", ["status=done", "kind=transfer", "start=yesterday"])
    def test_bad_filters(self, client, viewer_headers, query):
        resp = client.get(f"/api/movements?{query}", headers=viewer_headers)
        assert resp.status_code == 400

    def test_material_history_replay_order(self, client, admin, viewer_headers, material_factory):
        material = material_factory(current_quantity=0)
        for quantity in (1, 2, 3):
            movement_service.submit_direct_movement(admin, material.id, "inbound", quantity)

        resp = client.get(f"/api/materials/{material.id}/movements?ascending=true", headers=viewer_headers)
        assert resp.status_code == 200
        afters = [m["quantity_after"] for m in resp.json["movements"]]
        assert afters == [1, 3, 6]
        assert resp.json["material"]["current_quantity"] == 6
