"""
Dashboard API.
"""

from stockmaster.models import AuditLog


def _sell(client, headers, item, quantity):
    return client.post(
        "/api/v1/sales",
        json={"items": [{"item_id": item.id, "quantity": quantity}], "payment_method": "cash"},
        headers=headers,
    )


class TestDashboard:

    def test_overview(self, client, staff_headers, make_item):
        item = make_item(stock_quantity=10, selling_price_cents=1000, cost_price_cents=400)
        make_item(stock_quantity=0)
        _sell(client, staff_headers, item, 2)

        data = client.get("/api/v1/dashboard/overview", headers=staff_headers).get_json()["data"]

        assert data["inventory"]["total_items"] == 2
        assert data["inventory"]["out_of_stock_count"] == 1
        assert data["sales"]["today"]["total_sales"] == 1
        assert data["sales"]["today"]["total_revenue_cents"] == 2000
        assert data["alerts"]["critical"] == 1
        assert len(data["recent_sales"]) == 1
        assert data["top_selling_items"][0]["item_id"] == item.id

    def test_sales_analytics(self, client, staff_headers, make_item):
        item = make_item(stock_quantity=10, selling_price_cents=500)
        _sell(client, staff_headers, item, 3)

        data = client.get("/api/v1/dashboard/analytics/sales?period=week", headers=staff_headers).get_json()["data"]

        assert data["period"] == "week"
        assert data["statistics"]["total_revenue_cents"] == 1500
        assert data["payment_methods"][0]["payment_method"] == "cash"

    def test_sales_analytics_rejects_unknown_period(self, client, staff_headers):
        resp = client.get("/api/v1/dashboard/analytics/sales?period=decade", headers=staff_headers)
        assert resp.status_code == 400

    def test_inventory_analytics(self, client, auditor_headers, make_item):
        make_item(stock_quantity=50, cost_price_cents=100)
        low = make_item(stock_quantity=2, cost_price_cents=100)

        data = client.get("/api/v1/dashboard/analytics/inventory", headers=auditor_headers).get_json()["data"]

        assert data["status_distribution"] == {"available": 1, "low_stock": 1, "out_of_stock": 0}
        assert [i["id"] for i in data["low_stock_items"]] == [low.id]
        assert data["top_value_items"][0]["inventory_value_cents"] == 5000

    def test_activity_and_audit_logs(self, client, admin_headers, staff_headers, make_item):
        item = make_item()
        client.post(f"/api/v1/items/{item.id}/restock", json={"quantity": 5}, headers=staff_headers)
        client.patch("/api/v1/users/profile", json={"phone": "555-0100"}, headers=staff_headers)

        body = client.get("/api/v1/dashboard/activity?limit=5", headers=admin_headers).get_json()
        assert body["results"] == AuditLog.query.count() == 2
        assert body["data"]["activities"][0]["action"] == "user.update"

        body = client.get("/api/v1/dashboard/audit-logs?resource=item", headers=admin_headers).get_json()
        assert [e["action"] for e in body["data"]["audit_logs"]] == ["item.restock"]

    def test_executive_summary(self, client, admin_headers, staff_headers, make_item):
        item = make_item(stock_quantity=10, selling_price_cents=1000)
        _sell(client, staff_headers, item, 1)

        data = client.get("/api/v1/dashboard/executive-summary", headers=admin_headers).get_json()["data"]

        assert data["today"]["total_sales"] == 1
        assert data["yesterday"]["total_sales"] == 0
        assert data["growth"]["revenue"] == 0.0
        assert data["top_products"][0]["item_id"] == item.id
