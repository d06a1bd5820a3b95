"""
Unit tests for login, logout and the Token endpoints.
"""

from service.versionary_server import tuid

PASSWORD = "correct horse battery staple"


class TestLogin:
    """Tests for POST /v1/tokens."""

    def test_login(self, client, alice):
        """A correct password yields a bearer token."""
        response = client.post("/v1/tokens", json={"username": alice.email, "password": PASSWORD})
        assert response.status_code == 201
        body = response.json()
        assert tuid.is_valid(body["accessToken"])
        assert body["tokenType"] == "Bearer"
        assert body["expiresAt"]
        assert response.headers["Location"] == f"/v1/tokens/{body['accessToken']}"

    def test_login_by_user_id(self, client, alice, login):
        assert login(alice.id)

    def test_wrong_password(self, client, alice):
        response = client.post("/v1/tokens", json={"username": alice.email, "password": "guess"})
        assert response.status_code == 401
        assert response.json()["message"] == "unauthenticated: invalid username or password"

    def test_unknown_user(self, client):
        response = client.post("/v1/tokens", json={"username": "nobody@example.com", "password": "guess"})
        assert response.status_code == 401
        assert response.json()["message"] == "unauthenticated: invalid username or password"

    def test_disabled_user(self, client, make_user):
        user = make_user("carol@example.com", status="DISABLED")
        response = client.post("/v1/tokens", json={"username": user.email, "password": PASSWORD})
        assert response.status_code == 401


class TestTokens:
    """Tests for reading and deleting Tokens."""

    def _token_id(self, headers):
        return headers["Authorization"].split()[1]

    def test_read_own_tokens(self, client, alice, alice_headers):
        response = client.get("/v1/tokens", headers=alice_headers)
        assert response.status_code == 200
        tokens = response.json()
        assert [t["id"] for t in tokens] == [self._token_id(alice_headers)]
        assert tokens[0]["userId"] == alice.id

    def test_read_own_tokens_by_email(self, client, alice, alice_headers):
        response = client.get("/v1/tokens", params={"user": alice.email}, headers=alice_headers)
        assert response.status_code == 200
        assert len(response.json()) == 1

    def test_read_other_users_tokens(self, client, admin, alice_headers):
        response = client.get("/v1/tokens", params={"user": admin.id}, headers=alice_headers)
        assert response.status_code == 403
        assert response.json()["message"] == "unauthorized: read tokens"

    def test_admin_reads_any_tokens(self, client, alice, alice_headers, admin_headers):
        response = client.get("/v1/tokens", params={"user": alice.id}, headers=admin_headers)
        assert [t["id"] for t in response.json()] == [self._token_id(alice_headers)]

    def test_unknown_user(self, client, admin_headers):
        user_id = tuid.new_id()
        response = client.get("/v1/tokens", params={"user": user_id}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["message"].startswith(f"bad request: invalid User {user_id}")

    def test_read_token(self, client, alice_headers, bob_headers):
        token_id = self._token_id(alice_headers)
        assert client.get(f"/v1/tokens/{token_id}", headers=alice_headers).status_code == 200

        response = client.get(f"/v1/tokens/{token_id}", headers=bob_headers)
        assert response.status_code == 403
        assert response.json()["message"] == "unauthorized: read token"

    def test_read_missing_token(self, client, alice_headers):
        token_id = tuid.new_id()
        response = client.get(f"/v1/tokens/{token_id}", headers=alice_headers)
        assert response.status_code == 404
        assert response.json()["message"] == f"not found: Token {token_id}"

    def test_delete_token(self, client, alice_headers, bob_headers):
        token_id = self._token_id(alice_headers)
        response = client.delete(f"/v1/tokens/{token_id}", headers=bob_headers)
        assert response.status_code == 403
        assert response.json()["message"] == "unauthorized: delete token"

        response = client.delete(f"/v1/tokens/{token_id}", headers=alice_headers)
        assert response.status_code == 200
        assert client.get("/about", headers=alice_headers).status_code == 401

    def test_token_user_ids(self, client, admin, alice, alice_headers, admin_headers):
        response = client.get("/v1/token_user_ids", headers=admin_headers)
        assert response.status_code == 200
        assert sorted(response.json()) == sorted([admin.id, alice.id])


class TestLogout:
    """Tests for GET /logout."""

    def test_logout(self, client, alice_headers):
        """The bearer token stops working after logout."""
        response = client.get("/logout", headers=alice_headers)
        assert response.status_code == 200
        assert response.json()["id"] == alice_headers["Authorization"].split()[1]

        response = client.get("/logout", headers=alice_headers)
        assert response.status_code == 401

    def test_logout_without_token(self, client):
        response = client.get("/logout")
        assert response.status_code == 401
        assert response.json()["message"] == "unauthenticated: logout"
