import pytest
from sqlalchemy import select

from hamromart.core.errors import Conflict, ValidationError
from hamromart.db.models import Product, AuditLog
from hamromart.services import catalog, orders

from conftest import make_category, make_product, put_in_cart, identity_for, auth_headers, checkout_request


class TestBrowse:
    def test_filters_and_pagination(self, db, category):
        fruit = make_category(db, "Fruit")
        make_product(db, category, name="Potato", brand="Local Farm")
        make_product(db, category, name="Onion", stock=0)
        make_product(db, fruit, name="Mango", description="Sweet local mango")
        make_product(db, fruit, name="Hidden", active=False)

        items, total = catalog.list_products(db, page_size=2)
        assert total == 3
        assert len(items) == 2

        items, total = catalog.list_products(db, q="local")
        assert {p.name for p in items} == {"Potato", "Mango"}

        items, _ = catalog.list_products(db, category_id=category.id, in_stock=True)
        assert [p.name for p in items] == ["Potato"]

        items, total = catalog.list_products(db, active_only=False)
        assert total == 4

    def test_detail_with_related(self, client, db, category):
        main = make_product(db, category, name="Cabbage")
        for n in range(5):
            make_product(db, category, name=f"Greens {n}")

        r = client.get(f"/api/v1/catalog/products/{main.id}")
        assert r.status_code == 200
        body = r.json()
        assert body["product"]["category_name"] == "Vegetables"
        assert len(body["related"]) == 4
        assert main.id not in [p["id"] for p in body["related"]]

    def test_inactive_product_is_hidden(self, client, db, category):
        p = make_product(db, category, active=False)
        assert client.get(f"/api/v1/catalog/products/{p.id}").status_code == 404

    def test_listing_endpoint(self, client, db, category):
        make_product(db, category, name="Carrot", price_cents=8000, discount_cents=7000)
        page = client.get("/api/v1/catalog/products", params={"q": "carrot"}).json()
        assert page["total"] == 1
        assert page["total_pages"] == 1
        assert page["items"][0]["effective_price_cents"] == 7000
        assert [c["name"] for c in client.get("/api/v1/catalog/categories").json()] == ["Vegetables"]


class TestAdminCatalog:
    def test_discount_must_be_below_price(self, client, admin, category):
        body = {"name": "Paneer", "price_cents": 50000, "discount_price_cents": 50000,
                "stock_quantity": 3, "category_id": category.id}
        r = client.post("/api/v1/admin/products", json=body, headers=auth_headers(admin))
        assert r.status_code == 422

    def test_update_checks_discount_against_stored_price(self, db, admin, category):
        p = make_product(db, category, price_cents=10000)
        from hamromart.api.v1.schemas import ProductUpdate
        with pytest.raises(ValidationError):
            catalog.update_product(db, identity_for(admin), p.id, ProductUpdate(discount_price_cents=12000))

    def test_update_rejects_null_for_required_fields(self, db, admin, category):
        p = make_product(db, category, name="Paneer")
        from hamromart.api.v1.schemas import ProductUpdate
        with pytest.raises(ValidationError) as exc:
            catalog.update_product(db, identity_for(admin), p.id, ProductUpdate(price_cents=None))
        assert exc.value.field == "price_cents"
        db.expire_all()
        assert db.get(Product, p.id).name == "Paneer"

    def test_patch_null_name_is_a_validation_error(self, client, db, admin, category):
        p = make_product(db, category, name="Paneer")
        r = client.patch(f"/api/v1/admin/products/{p.id}", json={"name": None}, headers=auth_headers(admin))
        assert r.status_code == 422
        assert r.json()["detail"][0]["loc"] == ["body", "name"]

    def test_patch_null_clears_discount_and_text(self, client, db, admin, category):
        p = make_product(db, category, price_cents=10000, discount_cents=8000, brand="Amul")
        r = client.patch(f"/api/v1/admin/products/{p.id}", json={"discount_price_cents": None, "brand": None},
                         headers=auth_headers(admin))
        assert r.status_code == 200, r.text
        assert r.json()["discount_price_cents"] is None
        assert r.json()["brand"] == ""
        assert r.json()["effective_price_cents"] == 10000

    def test_create_is_audited(self, client, db, admin, category):
        body = {"name": "Paneer", "price_cents": 50000, "stock_quantity": 3, "category_id": category.id}
        r = client.post("/api/v1/admin/products", json=body, headers=auth_headers(admin))
        assert r.status_code == 201, r.text
        entry = db.execute(select(AuditLog)).scalar_one()
        assert (entry.action, entry.entity, entry.entity_id) == ("Created", "Product", r.json()["id"])
        assert entry.user_id == admin.id

    def test_create_with_null_text_fields(self, client, admin, category):
        body = {"name": "Paneer", "price_cents": 50000, "stock_quantity": 3, "category_id": category.id,
                "description": None, "unit": None}
        r = client.post("/api/v1/admin/products", json=body, headers=auth_headers(admin))
        assert r.status_code == 201, r.text
        assert r.json()["description"] == ""

    def test_unknown_category(self, client, admin):
        body = {"name": "Paneer", "price_cents": 50000, "stock_quantity": 3, "category_id": 404}
        r = client.post("/api/v1/admin/products", json=body, headers=auth_headers(admin))
        assert r.status_code == 422
        assert r.json()["detail"][0]["loc"] == ["body", "category_id"]

    def test_customers_are_forbidden(self, client, customer, category):
        body = {"name": "Paneer", "price_cents": 50000, "stock_quantity": 3, "category_id": category.id}
        assert client.post("/api/v1/admin/products", json=body, headers=auth_headers(customer)).status_code == 403

    def test_delete_ordered_product_deactivates(self, db, customer, admin, category):
        p = make_product(db, category)
        put_in_cart(db, customer, p, 1)
        orders.place_order(db, identity_for(customer), checkout_request())

        assert catalog.delete_product(db, identity_for(admin), p.id) == (False, True)
        db.expire_all()
        assert db.get(Product, p.id).active is False

    def test_delete_unordered_product(self, client, db, admin, customer, category):
        p = make_product(db, category)
        put_in_cart(db, customer, p, 1)
        r = client.delete(f"/api/v1/admin/products/{p.id}", headers=auth_headers(admin))
        assert r.json() == {"id": p.id, "deleted": True, "deactivated": False}

    def test_image_upload(self, client, db, admin, category, uploader):
        p = make_product(db, category)
        r = client.post(f"/api/v1/admin/products/{p.id}/image", headers=auth_headers(admin),
                        files={"file": ("tomato.PNG", b"\x89PNG...", "image/png")})
        assert r.status_code == 200, r.text
        assert r.json()["image_url"].endswith(".png")
        assert uploader.uploads[0]["content_type"] == "image/png"

    def test_image_upload_rejects_other_types(self, client, db, admin, category, uploader):
        p = make_product(db, category)
        r = client.post(f"/api/v1/admin/products/{p.id}/image", headers=auth_headers(admin),
                        files={"file": ("notes.txt", b"hello", "text/plain")})
        assert r.status_code == 422
        assert uploader.uploads == []


class TestAdminCategories:
    def test_duplicate_name(self, db, admin, category):
        from hamromart.api.v1.schemas import CategoryCreate
        with pytest.raises(Conflict):
            catalog.create_category(db, identity_for(admin), CategoryCreate(name="Vegetables"))

    def test_delete_with_products_is_refused(self, client, db, admin, category):
        make_product(db, category)
        r = client.delete(f"/api/v1/admin/categories/{category.id}", headers=auth_headers(admin))
        assert r.status_code == 409

    def test_delete_empty_category(self, client, db, admin):
        cat = make_category(db, "Bakery")
        r = client.delete(f"/api/v1/admin/categories/{cat.id}", headers=auth_headers(admin))
        assert r.status_code == 204
        names = [c["name"] for c in client.get("/api/v1/admin/categories", headers=auth_headers(admin)).json()]
        assert "Bakery" not in names
