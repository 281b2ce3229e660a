"""
Authorization tests for the Almoxarifado API.

Verifies:
- Unauthenticated requests return 401
- Viewer role is read-only (403 on writes)
- Withdrawer role can request and sign, but not decide or manage
- Admin role can perform privileged operations
- Denials are recorded in security_events
"""

import pytest

from almoxarifado.extensions import db
from almoxarifado.models import SecurityEvent
from almoxarifado.permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    PERMISSION_DEFINITIONS,
    get_all_permission_codes,
    get_permission_definition,
    get_permissions_by_category,
    validate_permission_code,
)
from almoxarifado.services import movement_service, permission_service


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("GET", "/api/materials"),
            ("POST", "/api/materials"),
            ("GET", "/api/materials/1"),
            ("PATCH", "/api/materials/1"),
            ("DELETE", "/api/materials/1"),
            ("GET", "/api/materials/1/movements"),
            ("GET", "/api/movements"),
            ("GET", "/api/movements/pending"),
            ("GET", "/api/movements/mine"),
            ("GET", "/api/movements/1"),
            ("POST", "/api/movements/withdrawals"),
            ("POST", "/api/movements/direct"),
            ("POST", "/api/movements/1/decision"),
            ("POST", "/api/movements/1/signature"),
            ("POST", "/api/imports/materials"),
            ("GET", "/api/reports/dashboard"),
            ("GET", "/api/reports/inventory.csv"),
            ("GET", "/api/admin/users"),
            ("POST", "/api/admin/users"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client):
        resp = client.get("/api/materials", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401

    def test_wrong_scheme(self, client):
        resp = client.get("/api/materials", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 401


# =============================================================================
# VIEWER IS READ-ONLY: 403 on writes
# =============================================================================


class TestViewerReadOnly:

    def test_can_read(self, client, viewer_headers, material_factory):
        material = material_factory()
        for path in (
            "/api/materials",
            f"/api/materials/{material.id}",
            f"/api/materials/{material.id}/movements",
            "/api/movements",
            "/api/movements/pending",
            "/api/reports/dashboard",
            "/api/reports/inventory.csv",
        ):
            resp = client.get(path, headers=viewer_headers)
            assert resp.status_code == 200, f"GET {path} returned {resp.status_code}"

    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("POST", "/api/materials", {"code": "X", "name": "X", "unit": "un"}),
            ("POST", "/api/movements/withdrawals", {"material_id": 1, "quantity": 1}),
            ("POST", "/api/movements/direct", {"material_id": 1, "kind": "inbound", "quantity": 1}),
            ("POST", "/api/movements/1/decision", {"decision": "approve"}),
            ("POST", "/api/imports/materials", {"items": []}),
            ("GET", "/api/admin/users", None),
        ],
    )
    def test_cannot_write(self, client, viewer_headers, method, path, body):
        resp = getattr(client, method.lower())(path, json=body, headers=viewer_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"
        assert resp.json["error"] == "Permission denied"

    def test_denial_is_audited(self, client, viewer, viewer_headers):
        client.post("/api/movements/direct", json={}, headers=viewer_headers)

        event = (
            db.session.query(SecurityEvent)
            .filter_by(event_type="PERMISSION_DENIED", user_id=viewer.id)
            .one()
        )
        assert event.action == "MANAGE_STOCK"
        assert event.resource == "/api/movements/direct"
        assert event.success is False


# =============================================================================
# WITHDRAWER
# =============================================================================


class TestWithdrawer:

    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("GET", "/api/movements", None),
            ("POST", "/api/movements/direct", {"material_id": 1, "kind": "inbound", "quantity": 1}),
            ("POST", "/api/movements/1/decision", {"decision": "approve"}),
            ("POST", "/api/materials", {"code": "X", "name": "X", "unit": "un"}),
            ("GET", "/api/reports/dashboard", None),
            ("POST", "/api/imports/materials", {"items": []}),
        ],
    )
    def test_denied(self, client, withdrawer_headers, method, path, body):
        resp = getattr(client, method.lower())(path, json=body, headers=withdrawer_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"

    def test_sees_only_own_movements(self, client, admin, withdrawer, withdrawer_headers, material_factory):
        material = material_factory(current_quantity=10)
        own = movement_service.request_withdrawal(withdrawer, material.id, 1)
        other = movement_service.request_withdrawal(admin, material.id, 1)

        resp = client.get("/api/movements/mine", headers=withdrawer_headers)
        assert resp.status_code == 200
        assert [m["id"] for m in resp.json["items"]] == [own.id]

        assert client.get(f"/api/movements/{own.id}", headers=withdrawer_headers).status_code == 200
        resp = client.get(f"/api/movements/{other.id}", headers=withdrawer_headers)
        assert resp.status_code == 403
        assert resp.json["code"] == "forbidden"

    def test_cannot_view_pending_queue(self, client, withdrawer_headers):
        resp = client.get("/api/movements/pending", headers=withdrawer_headers)
        assert resp.status_code == 403
        assert "required_permissions" in resp.json


# =============================================================================
# ADMIN
# =============================================================================


class TestAdminAllowed:

    def test_can_manage_users(self, client, admin_headers):
        resp = client.get("/api/admin/users", headers=admin_headers)
        assert resp.status_code == 200

    def test_can_record_inbound(self, client, admin_headers, material_factory):
        material = material_factory(current_quantity=0)
        resp = client.post(
            "/api/movements/direct",
            json={"material_id": material.id, "kind": "inbound", "quantity": 3},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json["movement"]["quantity_after"] == 3

    def test_deactivated_admin_loses_access(self, client, admin, admin_headers):
        admin.is_active = False
        db.session.commit()

        resp = client.get("/api/admin/users", headers=admin_headers)
        assert resp.status_code == 401

    def test_permission_catalog(self, client, admin_headers):
        resp = client.get("/api/admin/permissions", headers=admin_headers)
        assert resp.status_code == 200
        codes = {p["code"] for p in resp.json["permissions"]}
        assert {"APPROVE_MOVEMENTS", "REQUEST_WITHDRAWAL", "MANAGE_USERS"} <= codes

        resp = client.get("/api/admin/permissions?category=REPORTS", headers=admin_headers)
        assert resp.json["permissions"] == [{
            "code": "VIEW_REPORTS",
            "name": "View Reports",
            "description": "View dashboards and export CSV reports",
            "category": "REPORTS",
        }]

    def test_role_map(self, client, admin_headers):
        resp = client.get("/api/admin/roles", headers=admin_headers)
        roles = resp.json["roles"]
        assert roles["viewer"] == ["VIEW_MATERIALS", "VIEW_MOVEMENTS", "VIEW_REPORTS"]
        assert "APPROVE_MOVEMENTS" not in roles["withdrawer"]
        assert "APPROVE_MOVEMENTS" in roles["admin"]


# =============================================================================
# AUTHORIZE()
# =============================================================================


class TestPermissionCatalog:

    def test_every_role_uses_known_codes(self):
        for role, codes in DEFAULT_ROLE_PERMISSIONS.items():
            assert all(validate_permission_code(code) for code in codes), role
        assert DEFAULT_ROLE_PERMISSIONS["admin"] == frozenset(get_all_permission_codes())

    def test_codes_are_unique_and_ordered(self):
        codes = get_all_permission_codes()
        assert len(codes) == len(PERMISSION_DEFINITIONS)
        assert codes == [definition[0] for definition in PERMISSION_DEFINITIONS]

    def test_lookups(self):
        assert get_permission_definition("BULK_IMPORT")["category"] == "MATERIALS"
        assert get_permission_definition("LAUNCH_ROCKETS") is None
        assert validate_permission_code("LAUNCH_ROCKETS") is False
        assert get_permissions_by_category("NOWHERE") == []

    def test_returned_definitions_are_copies(self):
        get_permission_definition("VIEW_REPORTS")["name"] = "changed"
        get_permissions_by_category("REPORTS")[0]["name"] = "changed"
        assert get_permission_definition("VIEW_REPORTS")["name"] == "View Reports"


class TestAuthorizeService:

    def test_unknown_permission_code_is_a_programming_error(self, admin):
        with pytest.raises(ValueError):
            permission_service.authorize(admin, "LAUNCH_ROCKETS")

    def test_inactive_user_denied_everything(self, admin):
        admin.is_active = False
        db.session.commit()

        with pytest.raises(permission_service.AuthorizationError):
            permission_service.authorize(admin, "VIEW_MATERIALS")
        assert permission_service.get_user_permissions(admin) == frozenset()
