"""
Unit tests for the User endpoints.

Tests cover:
- Create/read/update/delete status codes
- Ownership: users read and write only themselves, scrubbed
- Privilege escalation through PUT is prevented
- Version history endpoints
- Secondary index endpoints (ids, names, roles, statuses)
"""

import pytest

from service.versionary_server import tuid


class TestCreateUser:
    """Tests for POST /v1/users."""

    def test_requires_token(self, client):
        """Anonymous callers get a 401 envelope."""
        response = client.post("/v1/users", json={"email": "carol@example.com"})
        assert response.status_code == 401
        body = response.json()
        assert body["code"] == 401
        assert body["message"] == "unauthenticated"
        assert body["uri"] == "/v1/users"
        assert body["logLevel"] == "ERROR"
        assert "createdAt" in body
        assert "eventID" not in body

    def test_requires_admin(self, client, alice_headers):
        response = client.post("/v1/users", json={"email": "carol@example.com"}, headers=alice_headers)
        assert response.status_code == 403

    def test_create(self, client, admin_headers):
        """201 with a Location header; the password is hashed."""
        response = client.post(
            "/v1/users",
            json={"email": "Carol@Example.com", "password": "pw", "givenName": "Carol", "status": "ENABLED"},
            headers=admin_headers,
        )
        assert response.status_code == 201
        body = response.json()
        assert tuid.is_valid(body["id"])
        assert response.headers["Location"] == f"/v1/users/{body['id']}"
        assert body["email"] == "carol@example.com"
        assert body["versionID"] == body["id"]
        assert "password" not in body
        assert body["passwordHash"]

    def test_invalid_user(self, client, admin_headers):
        response = client.post("/v1/users", json={"email": "nope", "status": "BOGUS"}, headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["message"].startswith("unprocessable entity: invalid field(s): ")

    def test_duplicate_email(self, client, alice, admin_headers):
        response = client.post("/v1/users", json={"email": alice.email}, headers=admin_headers)
        assert response.status_code == 422
        assert "already in use" in response.json()["message"]

    def test_malformed_json(self, client, admin_headers):
        response = client.post(
            "/v1/users",
            content=b"{not json",
            headers={**admin_headers, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["message"].startswith("bad request: invalid JSON body")

    def test_json_array_rejected(self, client, admin_headers):
        response = client.post("/v1/users", json=[1, 2], headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "bad request: invalid JSON body: expected an object"


class TestReadUsers:
    """Tests for GET /v1/users and GET /v1/users/{id}."""

    def test_list_by_role(self, client, admin, alice, admin_headers):
        response = client.get("/v1/users", params={"role": "admin"}, headers=admin_headers)
        assert response.status_code == 200
        assert [u["id"] for u in response.json()] == [admin.id]

    def test_list_all(self, client, admin, alice, bob, admin_headers):
        response = client.get("/v1/users", params={"limit": 2}, headers=admin_headers)
        assert [u["id"] for u in response.json()] == [admin.id, alice.id]

        response = client.get("/v1/users", params={"offset": alice.id}, headers=admin_headers)
        assert [u["id"] for u in response.json()] == [bob.id]

        response = client.get("/v1/users", params={"reverse": "true", "limit": 1}, headers=admin_headers)
        assert [u["id"] for u in response.json()] == [bob.id]

    def test_list_invalid_status(self, client, admin_headers):
        response = client.get("/v1/users", params={"status": "bogus"}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "bad request: invalid status: BOGUS"

    def test_list_invalid_limit(self, client, admin_headers):
        response = client.get("/v1/users", params={"limit": "0"}, headers=admin_headers)
        assert response.status_code == 400

    def test_read_self(self, client, alice, alice_headers):
        """A user reads their own record without password material."""
        response = client.get(f"/v1/users/{alice.id}", headers=alice_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["email"] == alice.email
        assert "passwordHash" not in body

    def test_read_self_by_email(self, client, alice, alice_headers):
        response = client.get(f"/v1/users/{alice.email}", headers=alice_headers)
        assert response.status_code == 200
        assert response.json()["id"] == alice.id

    def test_read_other_forbidden(self, client, alice, bob_headers):
        response = client.get(f"/v1/users/{alice.id}", headers=bob_headers)
        assert response.status_code == 403
        assert response.json()["message"] == "unauthorized: read user"

    def test_admin_sees_every_field(self, client, alice, admin_headers):
        response = client.get(f"/v1/users/{alice.id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["passwordHash"] == alice.password_hash

    def test_requires_token(self, client, alice):
        assert client.get(f"/v1/users/{alice.id}").status_code == 401

    def test_invalid_id(self, client, admin_headers):
        response = client.get("/v1/users/not-a-tuid", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "bad request: invalid path parameter ID: not-a-tuid"

    def test_not_found(self, client, admin_headers):
        user_id = tuid.new_id()
        response = client.get(f"/v1/users/{user_id}", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["message"] == f"not found: user {user_id}"

    def test_head(self, client, alice):
        """HEAD answers 204, 404 or 400 with no body."""
        assert client.head(f"/v1/users/{alice.id}").status_code == 204
        assert client.head(f"/v1/users/{tuid.new_id()}").status_code == 404
        assert client.head("/v1/users/not-a-tuid").status_code == 400

    def test_head_by_email(self, client, alice):
        """HEAD accepts an email address wherever GET does."""
        assert client.head("/v1/users/alice@example.com").status_code == 204
        assert client.head("/v1/users/Alice@Example.com").status_code == 204
        assert client.head("/v1/users/nobody@example.com").status_code == 404
        assert client.head("/v1/users/alice@").status_code == 400


class TestUpdateUser:
    """Tests for PUT /v1/users/{id}."""

    def test_update_self(self, client, alice, alice_headers):
        user = client.get(f"/v1/users/{alice.id}", headers=alice_headers).json()
        user["givenName"] = "Alicia"

        response = client.put(f"/v1/users/{alice.id}", json=user, headers=alice_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["givenName"] == "Alicia"
        assert body["versionID"] != user["versionID"]
        assert body["createdAt"] == user["createdAt"]
        assert "passwordHash" not in body

    def test_scrubbed_update_keeps_password(self, client, alice, alice_headers, login):
        """A round-tripped scrubbed record does not erase the password."""
        user = client.get(f"/v1/users/{alice.id}", headers=alice_headers).json()
        assert client.put(f"/v1/users/{alice.id}", json=user, headers=alice_headers).status_code == 200
        login(alice.email)

    def test_change_password(self, client, alice, alice_headers, login):
        user = client.get(f"/v1/users/{alice.id}", headers=alice_headers).json()
        user["password"] = "a brand new secret"
        response = client.put(f"/v1/users/{alice.id}", json=user, headers=alice_headers)
        assert response.status_code == 200
        assert "password" not in response.json()
        login(alice.email, "a brand new secret")

    def test_cannot_grant_self_admin(self, client, alice, alice_headers):
        """Roles in a non-admin update are ignored."""
        user = client.get(f"/v1/users/{alice.id}", headers=alice_headers).json()
        user["roles"] = ["admin"]
        response = client.put(f"/v1/users/{alice.id}", json=user, headers=alice_headers)
        assert response.status_code == 200
        assert "admin" not in (response.json().get("roles") or [])
        assert client.get("/v1/users", headers=alice_headers).status_code == 403

    def test_admin_grants_role(self, client, alice, admin_headers):
        user = client.get(f"/v1/users/{alice.id}", headers=admin_headers).json()
        user["roles"] = ["editor"]
        response = client.put(f"/v1/users/{alice.id}", json=user, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["roles"] == ["editor"]

    def test_update_other_forbidden(self, client, alice, admin_headers, bob_headers):
        user = client.get(f"/v1/users/{alice.id}", headers=admin_headers).json()
        response = client.put(f"/v1/users/{alice.id}", json=user, headers=bob_headers)
        assert response.status_code == 403
        assert response.json()["message"] == "unauthorized: update user"

    def test_id_mismatch(self, client, alice, bob, admin_headers):
        user = client.get(f"/v1/users/{alice.id}", headers=admin_headers).json()
        response = client.put(f"/v1/users/{bob.id}", json=user, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["message"] == (
            f"bad request: path parameter ID {bob.id} does not match User ID {alice.id}"
        )

    def test_invalid_update(self, client, alice, admin_headers):
        user = client.get(f"/v1/users/{alice.id}", headers=admin_headers).json()
        user["status"] = "BOGUS"
        response = client.put(f"/v1/users/{alice.id}", json=user, headers=admin_headers)
        assert response.status_code == 422


class TestDeleteUser:
    """Tests for DELETE /v1/users/{id}."""

    def test_delete_twice(self, client, alice, admin_headers):
        """The first delete returns the user; the second is a 404."""
        response = client.delete(f"/v1/users/{alice.id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["id"] == alice.id

        response = client.delete(f"/v1/users/{alice.id}", headers=admin_headers)
        assert response.status_code == 404
        assert client.head(f"/v1/users/{alice.id}").status_code == 404

    def test_delete_revokes_tokens(self, client, alice, alice_headers, admin_headers):
        """A deleted user's tokens are deleted too."""
        assert client.delete(f"/v1/users/{alice.id}", headers=admin_headers).status_code == 200
        response = client.get("/about", headers=alice_headers)
        assert response.status_code == 401
        assert response.json()["message"].startswith("unauthenticated: error reading token")

    def test_delete_self(self, client, alice, alice_headers):
        response = client.delete(f"/v1/users/{alice.id}", headers=alice_headers)
        assert response.status_code == 200
        assert "passwordHash" not in response.json()

    def test_delete_other_forbidden(self, client, alice, bob_headers):
        response = client.delete(f"/v1/users/{alice.id}", headers=bob_headers)
        assert response.status_code == 403
        assert response.json()["message"] == "unauthorized: delete user"


class TestUserVersions:
    """Tests for the version history endpoints."""

    @pytest.fixture
    def versions(self, client, alice, admin_headers):
        user = client.get(f"/v1/users/{alice.id}", headers=admin_headers).json()
        user["givenName"] = "Alicia"
        updated = client.put(f"/v1/users/{alice.id}", json=user, headers=admin_headers).json()
        return [user["versionID"], updated["versionID"]]

    def test_list_versions(self, client, alice, versions, admin_headers):
        response = client.get(f"/v1/users/{alice.id}/versions", headers=admin_headers)
        assert response.status_code == 200
        assert [v["versionID"] for v in response.json()] == versions

        response = client.get(f"/v1/users/{alice.id}/versions", params={"reverse": "true"}, headers=admin_headers)
        assert [v["versionID"] for v in response.json()] == versions[::-1]

    def test_versions_of_missing_user(self, client, admin_headers):
        response = client.get(f"/v1/users/{tuid.new_id()}/versions", headers=admin_headers)
        assert response.status_code == 404

    def test_read_version(self, client, alice, versions, alice_headers, bob_headers):
        response = client.get(f"/v1/users/{alice.id}/versions/{versions[0]}", headers=alice_headers)
        assert response.status_code == 200
        assert response.json()["givenName"] == "Alice"
        assert client.head(f"/v1/users/{alice.id}/versions/{versions[0]}").status_code == 204

        response = client.get(f"/v1/users/{alice.id}/versions/{versions[0]}", headers=bob_headers)
        assert response.status_code == 403

    def test_read_missing_version(self, client, alice, admin_headers):
        version_id = tuid.new_id()
        response = client.get(f"/v1/users/{alice.id}/versions/{version_id}", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["message"] == f"not found: user {alice.id} version {version_id}"

    def test_delete_current_version(self, client, alice, versions, admin_headers):
        """Deleting the newest version restores the previous one."""
        response = client.delete(f"/v1/users/{alice.id}/versions/{versions[1]}", headers=admin_headers)
        assert response.status_code == 200
        current = client.get(f"/v1/users/{alice.id}", headers=admin_headers).json()
        assert current["versionID"] == versions[0]
        assert current["givenName"] == "Alice"


class TestUserIndexes:
    """Tests for the user index endpoints."""

    def test_user_ids(self, client, alice, admin_headers):
        response = client.get("/v1/user_ids", params={"email": "ALICE@example.com"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == [alice.id]

    def test_user_ids_requires_email(self, client, admin_headers):
        response = client.get("/v1/user_ids", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "bad request: missing required query parameter: email"

    def test_user_names_search(self, client, admin, alice, bob, admin_headers):
        response = client.get("/v1/user_names", params={"search": "alice smith"}, headers=admin_headers)
        assert response.json() == [{"key": alice.id, "value": "Alice Smith <alice@example.com>"}]

        response = client.get(
            "/v1/user_names", params={"search": "alice bob", "any": "true"}, headers=admin_headers
        )
        assert [tv["key"] for tv in response.json()] == [alice.id, bob.id]

    def test_user_names_sorted(self, client, admin, alice, bob, admin_headers):
        response = client.get("/v1/user_names", params={"sorted": "true"}, headers=admin_headers)
        assert [tv["value"] for tv in response.json()] == [
            "Ada Admin <admin@example.com>",
            "Alice Smith <alice@example.com>",
            "Bob Jones <bob@example.com>",
        ]

    def test_user_names_page(self, client, admin, alice, bob, admin_headers):
        response = client.get("/v1/user_names", params={"limit": 2}, headers=admin_headers)
        assert [tv["key"] for tv in response.json()] == [admin.id, alice.id]

    def test_roles_and_statuses(self, client, admin, alice, admin_headers):
        assert client.get("/v1/user_roles", headers=admin_headers).json() == ["admin"]
        assert client.get("/v1/user_statuses", headers=admin_headers).json() == ["ENABLED"]
        assert client.get("/v1/user_emails", headers=admin_headers).json() == [
            "admin@example.com",
            "alice@example.com",
        ]

    def test_indexes_require_admin(self, client, alice_headers):
        for path in ("/v1/user_ids", "/v1/user_names", "/v1/user_roles", "/v1/user_statuses", "/v1/user_orgs"):
            assert client.get(path, headers=alice_headers).status_code == 403
