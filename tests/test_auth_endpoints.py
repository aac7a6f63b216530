"""
Auth Endpoint Tests
===================

Sign up, sign in, sessions, email confirmation and password reset.
"""
from unittest import mock

from auth_endpoints import hash_password, verify_password
from tests.conftest import sign_up_and_in


def signup(client, email="trader@example.com", password="secret123", confirm=None):
    return client.post("/api/auth/signup", json={
        "email": email,
        "password": password,
        "confirmPassword": password if confirm is None else confirm,
    })


class TestPasswords:

    def test_hash_round_trip(self):
        stored = hash_password("secret123")
        assert stored.startswith("pbkdf2:sha256:1000$")
        assert verify_password("secret123", stored)
        assert not verify_password("wrong", stored)

    def test_malformed_hash(self):
        assert not verify_password("secret123", "plain-text")


class TestSignUp:

    def test_creates_account(self, client):
        with mock.patch("auth_endpoints.send_confirmation_email") as send:
            response = signup(client, email="Trader@Example.com")

        assert response.status_code == 201
        body = response.json()
        assert body["user"]["email"] == "trader@example.com"
        assert body["user"]["emailConfirmed"] is False
        assert send.call_args.args[0] == "trader@example.com"

    def test_passwords_must_match(self, client):
        response = signup(client, confirm="different")
        assert response.status_code == 400
        assert response.json()["detail"] == "Passwords do not match"

    def test_password_too_short(self, client):
        response = signup(client, password="abc")
        assert response.status_code == 400
        assert "at least 6 characters" in response.json()["detail"]

    def test_duplicate_email(self, client):
        assert signup(client).status_code == 201
        assert signup(client).status_code == 409

    def test_invalid_email(self, client):
        assert signup(client, email="not-an-email").status_code == 422


class TestSignIn:

    def test_wrong_password(self, client):
        signup(client)
        response = client.post("/api/auth/signin", json={"email": "trader@example.com", "password": "nope123"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid login credentials"

    def test_unknown_user(self, client):
        response = client.post("/api/auth/signin", json={"email": "ghost@example.com", "password": "secret123"})
        assert response.status_code == 401

    def test_token_identifies_user(self, client):
        headers = sign_up_and_in(client)
        response = client.get("/api/auth/user", headers=headers)

        assert response.status_code == 200
        assert response.json()["user"]["email"] == "trader@example.com"

    def test_missing_or_bad_token(self, client):
        assert client.get("/api/auth/user").status_code == 401
        assert client.get("/api/auth/user", headers={"Authorization": "Bearer nope"}).status_code == 401
        assert client.get("/api/auth/user", headers={"Authorization": "Basic abc"}).status_code == 401

    def test_sign_out_revokes_token(self, client):
        headers = sign_up_and_in(client)
        assert client.post("/api/auth/signout", headers=headers).status_code == 200
        assert client.get("/api/auth/user", headers=headers).status_code == 401


class TestEmailConfirmation:

    def test_confirmation_required(self, client, monkeypatch):
        monkeypatch.setenv("REQUIRE_EMAIL_CONFIRMATION", "true")
        with mock.patch("auth_endpoints.send_confirmation_email") as send:
            signup(client)
        token = send.call_args.args[1]

        credentials = {"email": "trader@example.com", "password": "secret123"}
        response = client.post("/api/auth/signin", json=credentials)
        assert response.status_code == 403

        response = client.get("/api/auth/confirm", params={"token": token})
        assert response.status_code == 200

        response = client.post("/api/auth/signin", json=credentials)
        assert response.status_code == 200
        assert response.json()["user"]["emailConfirmed"] is True

    def test_invalid_confirmation_token(self, client):
        assert client.get("/api/auth/confirm", params={"token": "bogus"}).status_code == 400


class TestPasswordReset:

    def test_unknown_email_still_succeeds(self, client):
        with mock.patch("auth_endpoints.send_password_reset_email") as send:
            response = client.post("/api/auth/reset-password", json={"email": "ghost@example.com"})

        assert response.status_code == 200
        send.assert_not_called()

    def test_reset_flow(self, client):
        headers = sign_up_and_in(client)

        with mock.patch("auth_endpoints.send_password_reset_email") as send:
            response = client.post("/api/auth/reset-password", json={"email": "trader@example.com"})
        assert response.status_code == 200
        token = send.call_args.args[1]

        response = client.post("/api/auth/reset-password/confirm", json={"token": token, "password": "newpass456"})
        assert response.status_code == 200

        # Existing sessions are revoked
        assert client.get("/api/auth/user", headers=headers).status_code == 401

        response = client.post("/api/auth/signin", json={"email": "trader@example.com", "password": "newpass456"})
        assert response.status_code == 200

        # Tokens are single-use
        response = client.post("/api/auth/reset-password/confirm", json={"token": token, "password": "another789"})
        assert response.status_code == 400

    def test_reset_rejects_short_password(self, client):
        response = client.post("/api/auth/reset-password/confirm", json={"token": "x", "password": "abc"})
        assert response.status_code == 400
