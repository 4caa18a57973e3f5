"""
Authorization tests for OrderDesk.

Verifies:
- Unauthenticated requests return 401
- Waitress role denied stock and settings management (403)
- Admin and manager roles can perform privileged operations
- Password policy, session expiry and revocation
"""

from datetime import timedelta

import pytest

from orderdesk.errors import ValidationError
from orderdesk.extensions import db
from orderdesk.models import SessionToken
from orderdesk.services import auth_service, session_service
from orderdesk.services.auth_service import PasswordValidationError


def _login(client, username, password="Password123"):
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.json
    return {"Authorization": f"Bearer {response.json['token']}"}


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
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("PUT", "/api/products/1"),
            ("DELETE", "/api/products/1"),
            ("GET", "/api/orders"),
            ("POST", "/api/orders"),
            ("GET", "/api/orders/1"),
            ("POST", "/api/orders/1/items"),
            ("PUT", "/api/orders/1/status"),
            ("PUT", "/api/orders/1/cancel"),
            ("POST", "/api/orders/1/payments"),
            ("GET", "/api/orders/1/receipt"),
            ("POST", "/api/inventory/restock"),
            ("POST", "/api/inventory/adjust"),
            ("GET", "/api/inventory/products/1/history"),
            ("GET", "/api/inventory/reconciliation"),
            ("GET", "/api/settings"),
            ("PUT", "/api/settings"),
            ("GET", "/receipts/receipt-1.html"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"


# =============================================================================
# WAITRESS DENIED MANAGEMENT OPERATIONS: 403
# =============================================================================


class TestWaitressDenied:
    """Waitress role takes orders and payments but cannot manage stock or settings."""

    def test_cannot_restock(self, client, coffee, waitress_headers):
        resp = client.post("/api/inventory/restock", json={"product_id": coffee.id, "quantity": 5}, headers=waitress_headers)
        assert resp.status_code == 403

    def test_cannot_create_products(self, client, waitress_headers):
        resp = client.post("/api/products", json={"name": "Tea", "price_cents": 200}, headers=waitress_headers)
        assert resp.status_code == 403

    def test_cannot_change_settings(self, client, waitress_headers):
        resp = client.put("/api/settings", json={"tax_rate_bps": 0}, headers=waitress_headers)
        assert resp.status_code == 403

    def test_can_take_orders(self, client, coffee, waitress_headers):
        resp = client.post("/api/orders", json={"items": [{"product_id": coffee.id, "quantity": 1}]}, headers=waitress_headers)
        assert resp.status_code == 201


# =============================================================================
# PRIVILEGED ROLES
# =============================================================================


class TestPrivilegedRoles:
    def test_manager_can_adjust_but_not_change_settings(self, client, coffee, manager_user):
        headers = _login(client, manager_user.username)

        resp = client.post(
            "/api/inventory/adjust",
            json={"product_id": coffee.id, "quantity_delta": -2, "note": "Broken cups"},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json["product"]["stock"] == 8

        resp = client.put("/api/settings", json={"tax_rate_bps": 100}, headers=headers)
        assert resp.status_code == 403

    def test_admin_can_change_settings(self, client, admin_headers):
        resp = client.put("/api/settings", json={"business_name": "Night Owl"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["settings"]["business_name"] == "Night Owl"


# =============================================================================
# CREDENTIALS AND SESSIONS
# =============================================================================


class TestCredentials:
    @pytest.mark.parametrize("password", ["short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
    def test_weak_passwords_rejected(self, db_session, password):
        with pytest.raises(PasswordValidationError):
            auth_service.create_user("newbie", "newbie@orderdesk.test", password, "waitress", bcrypt_rounds=4)

    def test_duplicate_and_unknown_role(self, waitress_user):
        with pytest.raises(ValidationError):
            auth_service.create_user("waitress", "other@orderdesk.test", "Password123", "waitress", bcrypt_rounds=4)
        with pytest.raises(ValidationError):
            auth_service.create_user("chef", "chef@orderdesk.test", "Password123", "chef", bcrypt_rounds=4)

    def test_authenticate(self, waitress_user):
        assert auth_service.authenticate("waitress", "Password123").id == waitress_user.id
        assert auth_service.authenticate("WAITRESS@orderdesk.test", "Password123").id == waitress_user.id
        assert auth_service.authenticate("waitress", "Password124") is None
        assert auth_service.authenticate("nobody", "Password123") is None
        assert db.session.get(type(waitress_user), waitress_user.id).last_login_at is not None

    def test_malformed_hash_is_a_mismatch(self):
        assert auth_service.verify_password("Password123", "not-a-bcrypt-hash") is False


class TestSessions:
    def test_only_hash_is_stored(self, waitress_user):
        session, token = session_service.create_session(waitress_user.id, user_agent="pytest")
        assert session.token_hash == session_service.hash_token(token)
        assert len(token) == 64
        assert session_service.validate_session(token).id == waitress_user.id

    def test_expired_session_is_rejected(self, waitress_user):
        session, token = session_service.create_session(waitress_user.id)
        session.expires_at = session.created_at - timedelta(seconds=1)
        db.session.commit()
        assert session_service.validate_session(token) is None

    def test_revocation(self, waitress_user):
        _, token = session_service.create_session(waitress_user.id)
        assert session_service.revoke_session(token) is True
        assert session_service.revoke_session(token) is False
        assert session_service.validate_session(token) is None
        assert db.session.query(SessionToken).filter_by(is_revoked=True).count() == 1
