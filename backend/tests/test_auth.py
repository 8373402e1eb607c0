"""
Authentication tests.

Verifies:
- Registration always creates a customer and enforces password strength
- Login issues an opaque token; only its hash is stored
- Logout revokes the token
- Role checks return 401 / 403
"""

import pytest

from smart_retail.extensions import db
from smart_retail.models import SessionToken, User
from smart_retail.services.session_service import hash_token

from conftest import PASSWORD, auth_headers, get_auth_token


REGISTRATION = {
    "name": "Jane Wanjiku",
    "email": "Jane@Example.com",
    "phone": "0722000111",
    "password": "Secret123",
    "confirm_password": "Secret123",
}


class TestRegister:

    def test_register_creates_customer(self, client, db_session):
        resp = client.post("/api/auth/register", json={**REGISTRATION, "role": "admin"})

        assert resp.status_code == 201
        user = resp.json["user"]
        assert user["role"] == "customer"
        assert user["email"] == "jane@example.com"
        assert user["phone"] == "254722000111"
        assert "password_hash" not in user

    def test_duplicate_email_is_409(self, client, db_session):
        client.post("/api/auth/register", json=REGISTRATION)

        resp = client.post("/api/auth/register", json={**REGISTRATION, "phone": "0722000222"})

        assert resp.status_code == 409
        assert resp.json["details"]["field"] == "email"

    @pytest.mark.parametrize("password", ["short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
    def test_weak_password_is_400(self, client, db_session, password):
        resp = client.post(
            "/api/auth/register",
            json={**REGISTRATION, "password": password, "confirm_password": password},
        )
        assert resp.status_code == 400
        assert resp.json["details"]["field"] == "password"

    def test_password_confirmation_must_match(self, client, db_session):
        resp = client.post("/api/auth/register", json={**REGISTRATION, "confirm_password": "Other123"})
        assert resp.status_code == 400


class TestLogin:

    def test_login_returns_token(self, client, customer_user):
        resp = client.post("/api/auth/login", json={"email": customer_user.email, "password": PASSWORD})

        assert resp.status_code == 200
        token = resp.json["token"]
        assert len(token) == 64
        assert resp.json["user"]["id"] == customer_user.id

        stored = db.session.query(SessionToken).one()
        assert stored.token_hash == hash_token(token)
        assert stored.token_hash != token

    def test_wrong_password_is_401(self, client, customer_user):
        resp = client.post("/api/auth/login", json={"email": customer_user.email, "password": "Wrong1234"})
        assert resp.status_code == 401

    def test_inactive_user_cannot_log_in(self, client, customer_user):
        customer_user.is_active = False
        db.session.commit()

        assert get_auth_token(client, customer_user.email, PASSWORD) is None

    def test_me_and_logout(self, client, customer_user):
        headers = auth_headers(get_auth_token(client, customer_user.email, PASSWORD))

        assert client.get("/api/auth/me", headers=headers).json["user"]["email"] == customer_user.email
        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_deactivated_user_token_rejected(self, client, customer_user):
        headers = auth_headers(get_auth_token(client, customer_user.email, PASSWORD))
        db.session.get(User, customer_user.id).is_active = False
        db.session.commit()

        assert client.get("/api/auth/me", headers=headers).status_code == 401


class TestAccessControl:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/branches"),
            ("GET", "/api/products"),
            ("GET", "/api/inventory"),
            ("POST", "/api/sales"),
            ("GET", "/api/orders"),
            ("POST", "/api/restock"),
            ("POST", "/api/sync"),
            ("GET", "/api/reports/sales"),
            ("POST", "/api/payments/mpesa/initiate"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token_is_401(self, client, db_session):
        resp = client.get("/api/auth/me", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/inventory"),
            ("PUT", "/api/inventory/adjust"),
            ("POST", "/api/branches"),
            ("POST", "/api/products"),
            ("POST", "/api/restock/bulk"),
            ("GET", "/api/reports/revenue"),
            ("GET", "/api/sales"),
        ],
    )
    def test_customer_denied_admin_routes(self, client, customer_headers, method, path):
        resp = getattr(client, method.lower())(path, headers=customer_headers)
        assert resp.status_code == 403
