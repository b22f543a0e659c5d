"""
Sales API.

Verifies:
- Recording a sale over HTTP returns the computed totals
- Insufficient stock is a 400 with nothing written
- Cancellation is admin-only and restores stock
- Reporting endpoints only count completed sales
"""

from stockmaster.models import Item, Sale
from stockmaster.time_utils import utcnow


def _sell(client, headers, item, quantity, **extra):
    payload = {"items": [{"item_id": item.id, "quantity": quantity}], "payment_method": "cash"}
    payload.update(extra)
    return client.post("/api/v1/sales", json=payload, headers=headers)


class TestRecordSale:

    def test_record_sale(self, client, db_session, staff_headers, make_item):
        item = make_item(stock_quantity=10, selling_price_cents=10000, cost_price_cents=7000)

        resp = _sell(
            client,
            staff_headers,
            item,
            2,
            discount={"type": "percentage", "value": 10},
            tax={"type": "percentage", "value": 5},
            amount_paid=18900,
            customer={"name": "Jane Doe", "phone": "555-0100"},
        )

        assert resp.status_code == 201
        sale = resp.get_json()["data"]["sale"]
        assert sale["subtotal_cents"] == 20000
        assert sale["discount_cents"] == 2000
        assert sale["tax_cents"] == 900
        assert sale["total_amount_cents"] == 18900
        assert sale["payment_status"] == "paid"
        assert sale["customer"]["name"] == "Jane Doe"
        assert sale["discount_value"] == 1000
        assert sale["lines"][0]["profit_cents"] == 6000

        db_session.expire_all()
        assert db_session.get(Item, item.id).stock_quantity == 8

    def test_insufficient_stock(self, client, db_session, staff_headers, make_item):
        item = make_item(stock_quantity=2)

        resp = _sell(client, staff_headers, item, 5)

        assert resp.status_code == 400
        body = resp.get_json()
        assert body["details"] == {"item_id": item.id, "available": 2, "requested": 5}
        db_session.rollback()
        assert Sale.query.count() == 0
        assert db_session.get(Item, item.id).stock_quantity == 2

    def test_bad_payment_method(self, client, staff_headers, make_item):
        item = make_item()
        resp = _sell(client, staff_headers, item, 1, payment_method="barter")
        assert resp.status_code == 400

    def test_auditor_cannot_sell(self, client, auditor_headers, make_item):
        item = make_item()
        assert _sell(client, auditor_headers, item, 1).status_code == 403


class TestCancelSale:

    def test_admin_cancel_restores_stock(self, client, db_session, staff_headers, admin_headers, make_item):
        item = make_item(stock_quantity=10)
        sale_id = _sell(client, staff_headers, item, 3).get_json()["data"]["sale"]["id"]

        resp = client.post(f"/api/v1/sales/{sale_id}/cancel", json={"reason": "Wrong item"}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json()["data"]["sale"]["status"] == "cancelled"
        db_session.expire_all()
        assert db_session.get(Item, item.id).stock_quantity == 10

    def test_staff_cannot_cancel(self, client, staff_headers, make_item):
        item = make_item()
        sale_id = _sell(client, staff_headers, item, 1).get_json()["data"]["sale"]["id"]

        assert client.post(f"/api/v1/sales/{sale_id}/cancel", headers=staff_headers).status_code == 403

    def test_unknown_sale(self, client, admin_headers):
        assert client.post("/api/v1/sales/9999/cancel", headers=admin_headers).status_code == 404


class TestSalesReporting:

    def test_list_and_filters(self, client, staff_headers, admin_headers, make_item):
        item = make_item(stock_quantity=50)
        _sell(client, staff_headers, item, 1, customer={"name": "Alice"})
        cancelled = _sell(client, staff_headers, item, 1).get_json()["data"]["sale"]["id"]
        client.post(f"/api/v1/sales/{cancelled}/cancel", headers=admin_headers)

        body = client.get("/api/v1/sales", headers=admin_headers).get_json()
        assert body["pagination"]["total"] == 2

        body = client.get("/api/v1/sales?status=completed", headers=admin_headers).get_json()
        assert body["results"] == 1

        body = client.get("/api/v1/sales?search=alice", headers=admin_headers).get_json()
        assert body["results"] == 1

        assert client.get("/api/v1/sales?status=lost", headers=admin_headers).status_code == 400

    def test_date_only_end_covers_the_day(self, client, staff_headers, make_item):
        item = make_item()
        _sell(client, staff_headers, item, 1)
        today = utcnow().date().isoformat()

        body = client.get(f"/api/v1/sales?start_date={today}&end_date={today}", headers=staff_headers).get_json()
        assert body["results"] == 1

        assert client.get("/api/v1/sales?end_date=yesterday", headers=staff_headers).status_code == 400

    def test_statistics_today(self, client, staff_headers, make_item):
        item = make_item(stock_quantity=50, selling_price_cents=1000, cost_price_cents=400)
        _sell(client, staff_headers, item, 2)
        _sell(client, staff_headers, item, 1)

        stats = client.get("/api/v1/sales/statistics?period=today", headers=staff_headers).get_json()["data"]["statistics"]

        assert stats["total_sales"] == 2
        assert stats["total_revenue_cents"] == 3000
        assert stats["total_profit_cents"] == 1800
        assert stats["average_sale_value_cents"] == 1500
        assert stats["profit_margin"] == 60.0

    def test_payment_methods(self, client, staff_headers, make_item):
        item = make_item(stock_quantity=50, selling_price_cents=1000)
        _sell(client, staff_headers, item, 1, payment_method="card")
        _sell(client, staff_headers, item, 2, payment_method="card")
        _sell(client, staff_headers, item, 1, payment_method="cash")

        methods = client.get("/api/v1/sales/payment-methods", headers=staff_headers).get_json()["data"]["payment_methods"]

        assert methods[0] == {
            "payment_method": "card", "count": 2, "total_amount_cents": 3000, "average_amount_cents": 1500,
        }

    def test_staff_cannot_update_payment(self, client, staff_headers, make_item):
        item = make_item(selling_price_cents=1000)
        sale_id = _sell(client, staff_headers, item, 1).get_json()["data"]["sale"]["id"]

        resp = client.patch(f"/api/v1/sales/{sale_id}/payment", json={"amount_paid": 400}, headers=staff_headers)

        assert resp.status_code == 403

    def test_admin_update_payment(self, client, staff_headers, admin_headers, make_item):
        item = make_item(selling_price_cents=1000)
        sale_id = _sell(client, staff_headers, item, 1).get_json()["data"]["sale"]["id"]

        resp = client.patch(f"/api/v1/sales/{sale_id}/payment", json={"amount_paid": 400}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json()["data"]["sale"]["payment_status"] == "partial"
