"""
Category API.
"""

from stockmaster.models import Category


class TestCategories:

    def test_create_generates_slug(self, client, staff_headers):
        resp = client.post("/api/v1/categories", json={"name": "Frozen Foods & Ice"}, headers=staff_headers)

        assert resp.status_code == 201
        category = resp.get_json()["data"]["category"]
        assert category["slug"] == "frozen-foods-ice"
        assert category["is_active"] is True

    def test_duplicate_name_case_insensitive(self, client, staff_headers, category):
        resp = client.post("/api/v1/categories", json={"name": "BEVERAGES"}, headers=staff_headers)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Category name already exists"

    def test_name_required(self, client, staff_headers):
        assert client.post("/api/v1/categories", json={"description": "x"}, headers=staff_headers).status_code == 400

    def test_name_length(self, client, staff_headers):
        resp = client.post("/api/v1/categories", json={"name": "x" * 51}, headers=staff_headers)
        assert resp.status_code == 400

    def test_list_includes_live_metrics(self, client, auditor_headers, category, make_item):
        make_item(stock_quantity=10, cost_price_cents=250)
        make_item(stock_quantity=4, cost_price_cents=100)
        make_item(stock_quantity=99, cost_price_cents=100, is_active=False)

        body = client.get("/api/v1/categories", headers=auditor_headers).get_json()

        assert body["results"] == 1
        listed = body["data"]["categories"][0]
        assert listed["item_count"] == 2
        assert listed["total_value_cents"] == 2900

    def test_subcategories(self, client, admin_headers, category):
        client.post("/api/v1/categories", json={"name": "Juices", "parent_id": category.id}, headers=admin_headers)

        body = client.get(f"/api/v1/categories/{category.id}", headers=admin_headers).get_json()
        assert [s["name"] for s in body["data"]["category"]["subcategories"]] == ["Juices"]

    def test_cannot_be_own_parent(self, client, admin_headers, category):
        resp = client.patch(f"/api/v1/categories/{category.id}", json={"parent_id": category.id}, headers=admin_headers)
        assert resp.status_code == 400

    def test_rename_updates_slug(self, client, admin_headers, category):
        resp = client.patch(f"/api/v1/categories/{category.id}", json={"name": "Soft Drinks"}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json()["data"]["category"]["slug"] == "soft-drinks"

    def test_delete_blocked_by_items(self, client, admin_headers, category, make_item):
        make_item()
        resp = client.delete(f"/api/v1/categories/{category.id}", headers=admin_headers)
        assert resp.status_code == 400

    def test_delete_empty(self, client, db_session, admin_headers, category):
        assert client.delete(f"/api/v1/categories/{category.id}", headers=admin_headers).status_code == 200
        assert db_session.get(Category, category.id) is None

    def test_staff_cannot_update_or_delete(self, client, staff_headers, category):
        assert client.patch(f"/api/v1/categories/{category.id}", json={"name": "X"}, headers=staff_headers).status_code == 403
        assert client.delete(f"/api/v1/categories/{category.id}", headers=staff_headers).status_code == 403

    def test_reorder(self, client, db_session, admin_headers, category):
        second = Category(name="Snacks", slug="snacks")
        db_session.add(second)
        db_session.commit()

        resp = client.post(
            "/api/v1/categories/reorder",
            json={"categories": [second.id, category.id]},
            headers=admin_headers,
        )

        assert resp.get_json()["data"]["updated"] == 2
        body = client.get("/api/v1/categories", headers=admin_headers).get_json()
        assert [c["name"] for c in body["data"]["categories"]] == ["Snacks", "Beverages"]

    def test_category_items(self, client, auditor_headers, category, make_item):
        make_item(name="Lemonade")
        body = client.get(f"/api/v1/categories/{category.id}/items", headers=auditor_headers).get_json()

        assert body["data"]["category"]["id"] == category.id
        assert [i["name"] for i in body["data"]["items"]] == ["Lemonade"]
        assert body["pagination"]["total"] == 1
