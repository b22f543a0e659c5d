"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Staff denied administrative operations (403)
- Auditor is read-only
- Permission denials are written to the audit log
- Admin role can perform privileged operations
- Health and version stay public
"""

import pytest

from stockmaster.models import AuditLog


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/v1/auth/me"),
            ("GET", "/api/v1/users"),
            ("POST", "/api/v1/users"),
            ("PATCH", "/api/v1/users/profile"),
            ("GET", "/api/v1/items"),
            ("POST", "/api/v1/items"),
            ("POST", "/api/v1/items/1/restock"),
            ("GET", "/api/v1/categories"),
            ("GET", "/api/v1/sales"),
            ("POST", "/api/v1/sales"),
            ("GET", "/api/v1/alerts"),
            ("GET", "/api/v1/dashboard/overview"),
            ("GET", "/api/v1/dashboard/audit-logs"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["status"] == "error"


# =============================================================================
# STAFF DENIED ADMINISTRATIVE OPERATIONS - 403
# =============================================================================


class TestStaffDenied:
    """Staff can run the shop floor but not administer it."""

    def test_cannot_list_users(self, client, staff_headers):
        assert client.get("/api/v1/users", headers=staff_headers).status_code == 403

    def test_cannot_create_user(self, client, staff_headers):
        resp = client.post(
            "/api/v1/users",
            json={"first_name": "X", "last_name": "Y", "email": "x@example.com", "password": "Passw0rd!"},
            headers=staff_headers,
        )
        assert resp.status_code == 403

    def test_cannot_delete_item(self, client, staff_headers, make_item):
        item = make_item()
        assert client.delete(f"/api/v1/items/{item.id}", headers=staff_headers).status_code == 403

    def test_cannot_cancel_sale(self, client, staff_headers, make_item):
        item = make_item()
        sale_id = client.post(
            "/api/v1/sales",
            json={"items": [{"item_id": item.id, "quantity": 1}], "payment_method": "cash"},
            headers=staff_headers,
        ).get_json()["data"]["sale"]["id"]

        assert client.post(f"/api/v1/sales/{sale_id}/cancel", headers=staff_headers).status_code == 403

    def test_cannot_read_audit_logs(self, client, staff_headers):
        assert client.get("/api/v1/dashboard/audit-logs", headers=staff_headers).status_code == 403

    def test_cannot_delete_category(self, client, staff_headers, category):
        assert client.delete(f"/api/v1/categories/{category.id}", headers=staff_headers).status_code == 403

    def test_cannot_see_executive_summary(self, client, staff_headers):
        assert client.get("/api/v1/dashboard/executive-summary", headers=staff_headers).status_code == 403


# =============================================================================
# AUDITOR IS READ-ONLY
# =============================================================================


class TestAuditorReadOnly:

    def test_can_read(self, client, auditor_headers, make_item):
        make_item()
        for path in ("/api/v1/items", "/api/v1/categories", "/api/v1/sales", "/api/v1/alerts"):
            assert client.get(path, headers=auditor_headers).status_code == 200, path

    def test_can_read_audit_logs(self, client, auditor_headers):
        assert client.get("/api/v1/dashboard/audit-logs", headers=auditor_headers).status_code == 200

    def test_cannot_create_item(self, client, auditor_headers, category):
        resp = client.post(
            "/api/v1/items",
            json={"name": "X", "category_id": category.id, "cost_price_cents": 1, "selling_price_cents": 2},
            headers=auditor_headers,
        )
        assert resp.status_code == 403

    def test_cannot_restock(self, client, auditor_headers, make_item):
        item = make_item()
        resp = client.post(f"/api/v1/items/{item.id}/restock", json={"quantity": 5}, headers=auditor_headers)
        assert resp.status_code == 403

    def test_cannot_create_category(self, client, auditor_headers):
        assert client.post("/api/v1/categories", json={"name": "Snacks"}, headers=auditor_headers).status_code == 403

    def test_cannot_sell(self, client, auditor_headers, make_item):
        item = make_item()
        resp = client.post(
            "/api/v1/sales",
            json={"items": [{"item_id": item.id, "quantity": 1}], "payment_method": "cash"},
            headers=auditor_headers,
        )
        assert resp.status_code == 403


# =============================================================================
# DENIALS ARE AUDITED
# =============================================================================


class TestDenialAudit:

    def test_permission_denial_is_logged(self, client, staff, staff_headers):
        resp = client.get("/api/v1/dashboard/activity", headers=staff_headers)

        assert resp.status_code == 403
        entry = AuditLog.query.filter_by(action="security.permission.denied").one()
        assert entry.actor_user_id == staff.id
        assert entry.status == "failed"
        assert entry.details == {"resource": "audit", "action": "read"}


# =============================================================================
# ADMIN AND PUBLIC ACCESS
# =============================================================================


class TestAdminAccess:

    def test_admin_reaches_admin_routes(self, client, admin_headers):
        assert client.get("/api/v1/users", headers=admin_headers).status_code == 200
        assert client.get("/api/v1/dashboard/executive-summary", headers=admin_headers).status_code == 200
        assert client.get("/api/v1/dashboard/activity", headers=admin_headers).status_code == 200


class TestPublicEndpoints:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"

    def test_version(self, client):
        body = client.get("/version").get_json()
        assert body["api_version"]
        assert "SECRET_KEY" not in str(body)
