"""
Item API.

Verifies:
- Create validates input, generates a SKU and derives stock_status
- stock_status can never be written by a client
- Restock appends to the ledger and resolves stock alerts
- Listing filters and pagination envelope
"""

import pytest

from stockmaster.models import Alert, AuditLog, Item, RestockEntry


def _create(client, headers, **overrides):
    payload = {
        "name": "Sparkling Water",
        "category_id": overrides.pop("category_id"),
        "cost_price_cents": 300,
        "selling_price_cents": 500,
        "stock_quantity": 40,
        "low_stock_threshold": 10,
    }
    payload.update(overrides)
    return client.post("/api/v1/items", json=payload, headers=headers)


class TestCreateItem:

    def test_create_derives_status_and_sku(self, client, staff_headers, category):
        resp = _create(client, staff_headers, category_id=category.id)

        assert resp.status_code == 201
        item = resp.get_json()["data"]["item"]
        assert item["stock_status"] == "available"
        assert item["sku"].startswith("BEVERAGES-")
        assert item["profit_per_unit_cents"] == 200
        assert item["inventory_value_cents"] == 12000
        assert AuditLog.query.filter_by(action="item.create", resource_id=item["id"]).count() == 1

    def test_client_cannot_set_stock_status(self, client, staff_headers, category):
        resp = _create(client, staff_headers, category_id=category.id, stock_quantity=0, stock_status="available")

        assert resp.status_code == 201
        assert resp.get_json()["data"]["item"]["stock_status"] == "out_of_stock"

    def test_create_low_stock_raises_alert(self, client, staff_headers, category):
        resp = _create(client, staff_headers, category_id=category.id, stock_quantity=3)

        item_id = resp.get_json()["data"]["item"]["id"]
        assert [a.type for a in Alert.query.filter_by(item_id=item_id).all()] == ["low_stock"]

    def test_explicit_sku_uppercased_and_unique(self, client, staff_headers, category):
        first = _create(client, staff_headers, category_id=category.id, sku="bev-001")
        assert first.get_json()["data"]["item"]["sku"] == "BEV-001"

        second = _create(client, staff_headers, category_id=category.id, sku="BEV-001")
        assert second.status_code == 400

    def test_missing_required_fields(self, client, staff_headers):
        resp = client.post("/api/v1/items", json={"name": "Nameless"}, headers=staff_headers)
        assert resp.status_code == 400
        assert "category_id" in resp.get_json()["message"]

    @pytest.mark.parametrize(
        "field,value",
        [("selling_price_cents", -1), ("cost_price_cents", "12.50"), ("stock_quantity", -5), ("low_stock_threshold", True)],
    )
    def test_invalid_numbers(self, client, staff_headers, category, field, value):
        resp = _create(client, staff_headers, category_id=category.id, **{field: value})
        assert resp.status_code == 400

    def test_unknown_category(self, client, staff_headers):
        resp = _create(client, staff_headers, category_id=9999)
        assert resp.status_code == 404


class TestUpdateItem:

    def test_threshold_change_rederives_status(self, client, staff_headers, make_item):
        item = make_item(stock_quantity=8, low_stock_threshold=5)

        resp = client.patch(f"/api/v1/items/{item.id}", json={"low_stock_threshold": 10}, headers=staff_headers)

        assert resp.status_code == 200
        assert resp.get_json()["data"]["item"]["stock_status"] == "low_stock"
        assert Alert.query.filter_by(item_id=item.id, type="low_stock").count() == 1

    def test_stock_quantity_not_writable_on_update(self, client, staff_headers, make_item):
        item = make_item(stock_quantity=8)

        resp = client.patch(
            f"/api/v1/items/{item.id}",
            json={"stock_quantity": 500, "stock_status": "out_of_stock", "name": "Renamed"},
            headers=staff_headers,
        )

        data = resp.get_json()["data"]["item"]
        assert data["name"] == "Renamed"
        assert data["stock_quantity"] == 8
        assert data["stock_status"] == "available"

    def test_delete_is_soft_and_admin_only(self, client, db_session, staff_headers, admin_headers, make_item):
        item = make_item()

        assert client.delete(f"/api/v1/items/{item.id}", headers=staff_headers).status_code == 403
        assert client.delete(f"/api/v1/items/{item.id}", headers=admin_headers).status_code == 200
        assert db_session.get(Item, item.id).is_active is False

        listed = client.get("/api/v1/items", headers=admin_headers).get_json()
        assert listed["results"] == 0


class TestRestock:

    def test_restock_adds_stock_and_ledger_entry(self, client, staff_headers, make_item):
        item = make_item(stock_quantity=2, low_stock_threshold=5, cost_price_cents=100)

        resp = client.post(
            f"/api/v1/items/{item.id}/restock",
            json={"quantity": 20, "cost_price_cents": 120, "supplier": "Acme Drinks"},
            headers=staff_headers,
        )

        assert resp.status_code == 200
        data = resp.get_json()["data"]["item"]
        assert data["stock_quantity"] == 22
        assert data["stock_status"] == "available"
        assert data["total_restocked"] == 20
        assert data["cost_price_cents"] == 120
        assert data["restock_history"][0]["supplier"] == "Acme Drinks"
        assert RestockEntry.query.count() == 1
        assert Alert.query.filter_by(item_id=item.id, is_resolved=False).count() == 0

    @pytest.mark.parametrize("quantity", [0, -3, "ten", None])
    def test_invalid_quantity(self, client, staff_headers, make_item, quantity):
        item = make_item()
        resp = client.post(f"/api/v1/items/{item.id}/restock", json={"quantity": quantity}, headers=staff_headers)
        assert resp.status_code == 400

    def test_unknown_item(self, client, staff_headers):
        resp = client.post("/api/v1/items/9999/restock", json={"quantity": 1}, headers=staff_headers)
        assert resp.status_code == 404


class TestListItems:

    def test_filters_and_pagination(self, client, auditor_headers, make_item):
        make_item(name="Apple Juice", stock_quantity=50, selling_price_cents=300)
        make_item(name="Grape Juice", stock_quantity=2, selling_price_cents=800)
        make_item(name="Cola", stock_quantity=0, selling_price_cents=200)

        body = client.get("/api/v1/items?search=juice", headers=auditor_headers).get_json()
        assert body["results"] == 2
        assert body["pagination"]["total"] == 2

        body = client.get("/api/v1/items?stock_status=out_of_stock", headers=auditor_headers).get_json()
        assert [i["name"] for i in body["data"]["items"]] == ["Cola"]

        body = client.get("/api/v1/items?min_price=250&max_price=500", headers=auditor_headers).get_json()
        assert [i["name"] for i in body["data"]["items"]] == ["Apple Juice"]

        body = client.get("/api/v1/items?per_page=2&page=2&sort=name&order=asc", headers=auditor_headers).get_json()
        assert body["pagination"] == {
            "page": 2, "per_page": 2, "total": 3, "total_pages": 2, "has_next": False, "has_prev": True,
        }
        assert [i["name"] for i in body["data"]["items"]] == ["Grape Juice"]

    def test_low_stock_view(self, client, auditor_headers, make_item):
        make_item(stock_quantity=50)
        low = make_item(stock_quantity=2)
        out = make_item(stock_quantity=0)

        body = client.get("/api/v1/items/low-stock", headers=auditor_headers).get_json()
        assert [i["id"] for i in body["data"]["items"]] == [out.id, low.id]

    def test_get_counts_views(self, client, auditor_headers, make_item):
        item = make_item()
        client.get(f"/api/v1/items/{item.id}", headers=auditor_headers)
        body = client.get(f"/api/v1/items/{item.id}", headers=auditor_headers).get_json()
        assert body["data"]["item"]["view_count"] == 2

    def test_statistics(self, client, auditor_headers, make_item):
        make_item(stock_quantity=10, cost_price_cents=100)
        make_item(stock_quantity=1, cost_price_cents=100)

        stats = client.get("/api/v1/items/statistics", headers=auditor_headers).get_json()["data"]["statistics"]
        assert stats["active_items"] == 2
        assert stats["total_value_cents"] == 1100
        assert stats["low_stock_count"] == 1

    def test_search_requires_query(self, client, auditor_headers):
        assert client.get("/api/v1/items/search", headers=auditor_headers).status_code == 400
