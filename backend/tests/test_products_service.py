"""
Product record tests: partial updates, deletion and their effect on
order history and the inventory log.
"""

import pytest

from orderdesk.errors import NotFoundError, ValidationError
from orderdesk.extensions import db
from orderdesk.models import InventoryTransaction, Order, Product
from orderdesk.services import order_service, products_service


class TestUpdateProduct:
    def test_patches_only_given_fields(self, coffee):
        product = products_service.update_product(
            coffee.id,
            {"name": "Flat White", "price_cents": 420, "low_stock_alert": 5, "variants": [" Small ", "Large"]},
        )

        assert product.name == "Flat White"
        assert product.price_cents == 420
        assert product.low_stock_alert == 5
        assert product.variants == ["Small", "Large"]
        assert product.sku == "COF-001"
        assert product.stock == 10

    def test_stock_is_not_writable(self, coffee):
        with pytest.raises(ValidationError):
            products_service.update_product(coffee.id, {"stock": 99})
        assert db.session.get(Product, coffee.id).stock == 10

    @pytest.mark.parametrize(
        "payload",
        [{"price_cents": -1}, {"name": ""}, {"name": None}, {"variants": ["A", "A"]}, {"low_stock_alert": -3}],
    )
    def test_invalid_patches(self, coffee, payload):
        with pytest.raises(ValidationError):
            products_service.update_product(coffee.id, payload)

    def test_duplicate_sku(self, coffee, sandwich):
        with pytest.raises(ValidationError):
            products_service.update_product(sandwich.id, {"sku": "COF-001"})
        assert db.session.get(Product, sandwich.id).sku == "SND-001"

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            products_service.update_product(4242, {"name": "Nope"})

    def test_existing_orders_keep_their_snapshot(self, coffee, waitress_user):
        order = order_service.create_order(
            created_by_user_id=waitress_user.id,
            items=[{"product_id": coffee.id, "quantity": 1}],
        )
        products_service.update_product(coffee.id, {"name": "Drip", "price_cents": 100})

        item = db.session.get(Order, order.id).items[0]
        assert (item.product_name, item.unit_price_cents) == ("Coffee", 350)


class TestDeleteProduct:
    def test_removes_product_and_its_log(self, coffee):
        coffee_id = coffee.id
        assert db.session.query(InventoryTransaction).filter_by(product_id=coffee_id).count() == 1

        products_service.delete_product(coffee_id)

        assert db.session.get(Product, coffee_id) is None
        assert db.session.query(InventoryTransaction).filter_by(product_id=coffee_id).count() == 0

    def test_order_lines_lose_their_product_reference(self, coffee, waitress_user):
        order = order_service.create_order(
            created_by_user_id=waitress_user.id,
            items=[{"product_id": coffee.id, "quantity": 3}],
        )
        order_id, coffee_id = order.id, coffee.id

        products_service.delete_product(coffee_id)

        order = db.session.get(Order, order_id)
        item = order.items[0]
        assert item.product_id is None
        assert (item.product_name, item.quantity, item.subtotal_cents) == ("Coffee", 3, 1050)
        assert order.total_cents == 1050

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            products_service.delete_product(4242)


class TestProductRoutes:
    def test_manager_updates_waitress_cannot(self, client, coffee, manager_user, waitress_headers):
        login = client.post("/api/auth/login", json={"username": manager_user.username, "password": "Password123"})
        manager_headers = {"Authorization": f"Bearer {login.json['token']}"}

        resp = client.put(f"/api/products/{coffee.id}", json={"price_cents": 375}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["product"]["price_cents"] == 375

        resp = client.put(f"/api/products/{coffee.id}", json={"stock": 50}, headers=manager_headers)
        assert resp.status_code == 400

        resp = client.put(f"/api/products/{coffee.id}", json={"price_cents": 1}, headers=waitress_headers)
        assert resp.status_code == 403

    def test_only_admin_deletes(self, client, coffee, admin_headers, waitress_headers):
        coffee_id = coffee.id

        assert client.delete(f"/api/products/{coffee_id}", headers=waitress_headers).status_code == 403

        resp = client.delete(f"/api/products/{coffee_id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json == {"deleted": coffee_id}

        assert client.get(f"/api/products/{coffee_id}", headers=admin_headers).status_code == 404
        assert client.delete(f"/api/products/{coffee_id}", headers=admin_headers).status_code == 404
