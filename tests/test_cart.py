import pytest
from sqlalchemy.exc import IntegrityError

from hamromart.core.errors import ProductUnavailable, InsufficientStock, NotFound, ConcurrencyConflict
from hamromart.db.models import CartItem
from hamromart.services import cart

from conftest import make_user, make_product, put_in_cart, identity_for, auth_headers


class TestAddItem:
    def test_new_line(self, db, customer, category):
        p = make_product(db, category, stock=5)
        item = cart.add_item(db, identity_for(customer), p.id, 2)
        assert item.quantity == 2

    def test_existing_line_is_merged_and_clamped(self, db, customer, category):
        p = make_product(db, category, stock=5)
        cart.add_item(db, identity_for(customer), p.id, 3)
        item = cart.add_item(db, identity_for(customer), p.id, 4)
        assert item.quantity == 5
        assert len(cart.lines(db, identity_for(customer))) == 1

    @pytest.mark.parametrize("active,stock,quantity", [(False, 5, 1), (True, 0, 1), (True, 2, 3)])
    def test_unavailable(self, db, customer, category, active, stock, quantity):
        p = make_product(db, category, stock=stock, active=active)
        with pytest.raises(ProductUnavailable):
            cart.add_item(db, identity_for(customer), p.id, quantity)

    def test_unknown_product(self, db, customer):
        with pytest.raises(ProductUnavailable):
            cart.add_item(db, identity_for(customer), 999, 1)

    def test_line_created_in_parallel_is_merged(self, db, session_factory, customer, category, monkeypatch):
        p = make_product(db, category, stock=5)
        user_id, product_id = customer.id, p.id
        real_now = cart.now_utc

        def parallel_add():
            # another request inserts the same line before this one commits
            other = session_factory()
            try:
                other.add(CartItem(user_id=user_id, product_id=product_id, quantity=2, added_at=real_now()))
                other.commit()
            finally:
                other.close()
            return real_now()

        monkeypatch.setattr(cart, "now_utc", parallel_add)
        item = cart.add_item(db, identity_for(customer), p.id, 1)

        assert item.quantity == 3
        assert len(cart.lines(db, identity_for(customer))) == 1

    def test_repeated_conflict_is_reported(self, db, customer, category, monkeypatch):
        p = make_product(db, category, stock=5)
        put_in_cart(db, customer, p, 1)

        def conflicting_commit():
            raise IntegrityError("INSERT INTO cart_items", {}, Exception("UNIQUE constraint failed"))

        monkeypatch.setattr(db, "commit", conflicting_commit)
        with pytest.raises(ConcurrencyConflict):
            cart.add_item(db, identity_for(customer), p.id, 1)


class TestUpdateAndRemove:
    def test_quantity_over_stock(self, db, customer, category):
        p = make_product(db, category, name="Milk", stock=3)
        line = put_in_cart(db, customer, p, 1)
        with pytest.raises(InsufficientStock) as exc:
            cart.update_quantity(db, identity_for(customer), line.id, 4)
        assert str(exc.value) == "Only 3 units of Milk are available in stock."

    def test_zero_removes_line(self, db, customer, category):
        p = make_product(db, category)
        line = put_in_cart(db, customer, p, 1)
        assert cart.update_quantity(db, identity_for(customer), line.id, 0) is None
        assert cart.lines(db, identity_for(customer)) == []

    def test_other_users_line_is_invisible(self, db, customer, category):
        p = make_product(db, category)
        other = make_user(db, email="other@example.com")
        line = put_in_cart(db, other, p, 1)
        with pytest.raises(NotFound):
            cart.update_quantity(db, identity_for(customer), line.id, 2)
        assert cart.remove_item(db, identity_for(customer), line.id) is False
        assert cart.count(db, identity_for(other)) == 1

    def test_clear(self, db, customer, category):
        put_in_cart(db, customer, make_product(db, category, name="A"), 1)
        put_in_cart(db, customer, make_product(db, category, name="B"), 2)
        assert cart.clear(db, identity_for(customer)) == 2
        assert cart.count(db, identity_for(customer)) == 0


class TestView:
    def test_totals_use_discount_price(self, db, customer, category):
        a = make_product(db, category, name="Oil", price_cents=30000, discount_cents=27500, stock=9)
        b = make_product(db, category, name="Salt", price_cents=4000, stock=9)
        put_in_cart(db, customer, a, 2)
        put_in_cart(db, customer, b, 1)

        view = cart.view(db, identity_for(customer), "NPR")

        assert view["total_cents"] == 2 * 27500 + 4000
        assert view["total_items"] == 3
        assert [i["product_name"] for i in view["items"]] == ["Oil", "Salt"]


class TestCartApi:
    def test_add_update_remove(self, client, db, customer, category):
        p = make_product(db, category, stock=4)
        headers = auth_headers(customer)

        r = client.post("/api/v1/cart/items", json={"product_id": p.id, "quantity": 2}, headers=headers)
        assert r.status_code == 201, r.text
        line_id = r.json()["items"][0]["id"]
        assert client.get("/api/v1/cart/count", headers=headers).json() == {"count": 2}

        r = client.patch(f"/api/v1/cart/items/{line_id}", json={"quantity": 9}, headers=headers)
        assert r.status_code == 409

        r = client.patch(f"/api/v1/cart/items/{line_id}", json={"quantity": 3}, headers=headers)
        assert r.json()["total_items"] == 3

        assert client.delete(f"/api/v1/cart/items/{line_id}", headers=headers).status_code == 204
        assert client.get("/api/v1/cart", headers=headers).json()["items"] == []

    def test_requires_login(self, client):
        assert client.get("/api/v1/cart").status_code == 401
