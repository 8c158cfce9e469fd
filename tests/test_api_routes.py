"""
tests/test_api_routes.py -- Integration tests for the auth and RBAC routes.

These tests exercise the full stack: FastAPI routing -> permission dependency
-> AuthService -> RBACStore -> response model serialization, through the real
exception handlers. Unit tests of the service would miss the status-code
mapping and the error envelope -- integration tests are the right tool here.

Fixtures used (from conftest.py):
  - api_client: ApiContext(client, service, admin_token, reader_token)
    admin  / adminpass  -> role admin  (all built-in permissions)
    reader / readerpass -> role reader (user:read only)
"""

from __future__ import annotations


def flip_last_segment(token: str) -> str:
    """Alter the first signature character so the signature no longer verifies."""
    header, payload, signature = token.split(".")
    replacement = "B" if signature[0] != "B" else "C"
    return f"{header}.{payload}.{replacement}{signature[1:]}"


# ---------------------------------------------------------------------------
# /auth
# ---------------------------------------------------------------------------


class TestLogin:
    def test_login_success(self, api_client) -> None:
        resp = api_client.client.post("/auth/login", json={"username": "admin", "password": "adminpass"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["type"] == "Bearer"
        assert api_client.service.validate(body["token"]).subject == "admin"
        assert resp.headers["cache-control"] == "no-store"

    def test_login_wrong_password(self, api_client) -> None:
        """Wrong password for an existing user: 401 with no hint about which field was wrong."""
        resp = api_client.client.post("/auth/login", json={"username": "admin", "password": "wrongpass"})
        assert resp.status_code == 401
        error = resp.json()["error"]
        assert error["message"] == "Authentication failed."
        assert "password" not in error["message"].lower()
        assert "username" not in error["message"].lower()

    def test_login_unknown_user_same_body(self, api_client) -> None:
        wrong_pw = api_client.client.post("/auth/login", json={"username": "admin", "password": "wrongpass"})
        unknown = api_client.client.post("/auth/login", json={"username": "ghost", "password": "adminpass"})
        assert unknown.status_code == 401
        assert unknown.json() == wrong_pw.json()

    def test_login_malformed_body(self, api_client) -> None:
        resp = api_client.client.post("/auth/login", json={"username": "admin"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_login_not_json(self, api_client) -> None:
        resp = api_client.client.post(
            "/auth/login", content=b"username=admin", headers={"Content-Type": "application/json"}
        )
        assert resp.status_code == 400


class TestExchangeRoute:
    def test_exchange_disabled_is_401(self, api_client) -> None:
        resp = api_client.client.post("/auth/exchange", json={"brickAuthToken": "whatever"})
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Token exchange failed."

    def test_exchange_missing_field(self, api_client) -> None:
        resp = api_client.client.post("/auth/exchange", json={})
        assert resp.status_code == 400


class TestValidateAndMe:
    def test_validate_valid(self, api_client) -> None:
        resp = api_client.client.post("/auth/validate", json={"token": api_client.reader_token})
        assert resp.status_code == 200
        assert resp.json() == {
            "valid": True,
            "userInfo": {"username": "reader", "role": "reader", "permissions": ["user:read"]},
        }

    def test_validate_invalid(self, api_client) -> None:
        resp = api_client.client.post("/auth/validate", json={"token": flip_last_segment(api_client.reader_token)})
        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "token_validation_failed"

    def test_validate_missing_token(self, api_client) -> None:
        assert api_client.client.post("/auth/validate", json={}).status_code == 400

    def test_me(self, api_client) -> None:
        resp = api_client.client.get("/auth/me", headers=api_client.auth(api_client.admin_token))
        assert resp.status_code == 200
        assert resp.json()["username"] == "admin"
        assert "user:write" in resp.json()["permissions"]

    def test_me_without_header(self, api_client) -> None:
        resp = api_client.client.get("/auth/me")
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_me_wrong_scheme(self, api_client) -> None:
        resp = api_client.client.get("/auth/me", headers={"Authorization": f"Token {api_client.admin_token}"})
        assert resp.status_code == 401

    def test_me_tampered_token(self, api_client) -> None:
        resp = api_client.client.get("/auth/me", headers=api_client.auth(flip_last_segment(api_client.admin_token)))
        assert resp.status_code == 401


class TestAuthType:
    def test_get_default(self, api_client) -> None:
        resp = api_client.client.get("/auth/auth-type", headers=api_client.auth(api_client.admin_token))
        assert resp.status_code == 200
        assert resp.json()["auth_type"] in ("local", "sso", "both")

    def test_set_and_read_back(self, api_client) -> None:
        headers = api_client.auth(api_client.admin_token)
        resp = api_client.client.post("/auth/auth-type", json={"auth_type": "both"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["auth_type"] == "both"
        assert api_client.client.get("/auth/auth-type", headers=headers).json() == {"auth_type": "both"}

    def test_set_invalid_value(self, api_client) -> None:
        resp = api_client.client.post(
            "/auth/auth-type", json={"auth_type": "kerberos"}, headers=api_client.auth(api_client.admin_token)
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_auth_type"

    def test_reader_forbidden(self, api_client) -> None:
        resp = api_client.client.get("/auth/auth-type", headers=api_client.auth(api_client.reader_token))
        assert resp.status_code == 403

    def test_unauthenticated(self, api_client) -> None:
        assert api_client.client.post("/auth/auth-type", json={"auth_type": "sso"}).status_code == 401


# ---------------------------------------------------------------------------
# /user/users
# ---------------------------------------------------------------------------


class TestUsers:
    def test_list_users_hides_hashes(self, api_client) -> None:
        resp = api_client.client.get("/user/users", headers=api_client.auth(api_client.reader_token))
        assert resp.status_code == 200
        users = {u["username"]: u for u in resp.json()}
        assert users["admin"] == {"username": "admin", "role": "admin"}
        assert "password_hash" not in resp.text

    def test_list_users_unauthenticated(self, api_client) -> None:
        assert api_client.client.get("/user/users").status_code == 401

    def test_reader_cannot_create(self, api_client) -> None:
        resp = api_client.client.post(
            "/user/users",
            json={"username": "eve", "password": "pw", "role": "admin"},
            headers=api_client.auth(api_client.reader_token),
        )
        assert resp.status_code == 403
        assert api_client.service.store.get_user("eve") is None

    def test_create_update_delete(self, api_client) -> None:
        headers = api_client.auth(api_client.admin_token)
        resp = api_client.client.post(
            "/user/users", json={"username": "frank", "password": "pw1", "role": "reader"}, headers=headers
        )
        assert resp.status_code == 201
        assert resp.json() == {"message": "User created"}

        dup = api_client.client.post(
            "/user/users", json={"username": "frank", "password": "pw2", "role": "admin"}, headers=headers
        )
        assert dup.status_code == 409

        resp = api_client.client.put("/user/users/frank", json={"role": "admin"}, headers=headers)
        assert resp.status_code == 200
        assert api_client.service.store.get_user("frank").role == "admin"

        login = api_client.client.post("/auth/login", json={"username": "frank", "password": "pw1"})
        assert login.status_code == 200

        resp = api_client.client.delete("/user/users/frank", headers=headers)
        assert resp.status_code == 200
        assert api_client.client.delete("/user/users/frank", headers=headers).status_code == 404

    def test_update_missing_user(self, api_client) -> None:
        resp = api_client.client.put(
            "/user/users/ghost", json={"role": "admin"}, headers=api_client.auth(api_client.admin_token)
        )
        assert resp.status_code == 404

    def test_update_without_fields(self, api_client) -> None:
        resp = api_client.client.put("/user/users/reader", json={}, headers=api_client.auth(api_client.admin_token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "no_changes"

    def test_create_missing_field(self, api_client) -> None:
        resp = api_client.client.post(
            "/user/users", json={"username": "gina"}, headers=api_client.auth(api_client.admin_token)
        )
        assert resp.status_code == 400

    def test_multibyte_password_at_byte_limit(self, api_client) -> None:
        """36 accented characters are exactly 72 UTF-8 bytes: accepted, and login works."""
        password = "é" * 36
        resp = api_client.client.post(
            "/user/users",
            json={"username": "hugo", "password": password, "role": "reader"},
            headers=api_client.auth(api_client.admin_token),
        )
        assert resp.status_code == 201
        login = api_client.client.post("/auth/login", json={"username": "hugo", "password": password})
        assert login.status_code == 200

    def test_password_over_byte_limit_is_400(self, api_client) -> None:
        """Under 72 characters but over 72 bytes: rejected up front, never a 500."""
        headers = api_client.auth(api_client.admin_token)
        for password in ("é" * 40, "é" * 36 + "a"):
            resp = api_client.client.post(
                "/user/users", json={"username": "ines", "password": password, "role": "reader"}, headers=headers
            )
            assert resp.status_code == 400
            assert resp.json()["error"]["code"] == "validation_error"
        assert api_client.service.store.get_user("ines") is None

        resp = api_client.client.put("/user/users/reader", json={"password": "é" * 40}, headers=headers)
        assert resp.status_code == 400

    def test_login_over_byte_limit_is_400(self, api_client) -> None:
        resp = api_client.client.post("/auth/login", json={"username": "admin", "password": "é" * 40})
        assert resp.status_code == 400

    def test_surrounding_whitespace_is_stripped(self, api_client) -> None:
        """Create, update and login apply the same whitespace rule."""
        headers = api_client.auth(api_client.admin_token)
        resp = api_client.client.post(
            "/user/users", json={"username": " jules ", "password": " pw ", "role": " reader "}, headers=headers
        )
        assert resp.status_code == 201
        assert api_client.service.store.get_user("jules").role == "reader"

        resp = api_client.client.put("/user/users/jules", json={"role": " admin "}, headers=headers)
        assert resp.status_code == 200
        assert api_client.service.store.get_user("jules").role == "admin"

        login = api_client.client.post("/auth/login", json={"username": " jules ", "password": " pw "})
        assert login.status_code == 200
        assert api_client.service.validate(login.json()["token"]).subject == "jules"


# ---------------------------------------------------------------------------
# /user/roles and /user/permissions
# ---------------------------------------------------------------------------


class TestRoles:
    def test_role_lifecycle(self, api_client) -> None:
        headers = api_client.auth(api_client.admin_token)
        resp = api_client.client.post(
            "/user/roles", json={"name": "auditor", "permissions": ["audit:read", "audit:read"]}, headers=headers
        )
        assert resp.status_code == 201
        assert api_client.client.post("/user/roles", json={"name": "auditor"}, headers=headers).status_code == 409

        roles = {r["name"]: r["permissions"] for r in api_client.client.get("/user/roles", headers=headers).json()}
        assert roles["auditor"] == ["audit:read"]

        resp = api_client.client.put("/user/roles/auditor", json={"permissions": ["audit:write"]}, headers=headers)
        assert resp.status_code == 200
        assert api_client.service.store.get_role("auditor").permissions == ["audit:write"]

        assert api_client.client.delete("/user/roles/auditor", headers=headers).status_code == 200
        assert api_client.client.delete("/user/roles/auditor", headers=headers).status_code == 404

    def test_update_missing_role(self, api_client) -> None:
        resp = api_client.client.put(
            "/user/roles/ghost", json={"permissions": []}, headers=api_client.auth(api_client.admin_token)
        )
        assert resp.status_code == 404

    def test_reader_cannot_list_roles(self, api_client) -> None:
        assert api_client.client.get("/user/roles", headers=api_client.auth(api_client.reader_token)).status_code == 403


class TestPermissions:
    def test_replace_registry(self, api_client) -> None:
        headers = api_client.auth(api_client.admin_token)
        resp = api_client.client.post("/user/permissions", json=["user:read", "user:write"], headers=headers)
        assert resp.status_code == 200
        assert api_client.client.get("/user/permissions", headers=headers).json() == ["user:read", "user:write"]

    def test_registry_is_advisory(self, api_client) -> None:
        """Credentials keep working for permissions dropped from the registry."""
        headers = api_client.auth(api_client.admin_token)
        api_client.client.post("/user/permissions", json=["user:read"], headers=headers)
        assert api_client.client.get("/user/roles", headers=headers).status_code == 200

    def test_body_must_be_list(self, api_client) -> None:
        resp = api_client.client.post(
            "/user/permissions", json={"name": "user:read"}, headers=api_client.auth(api_client.admin_token)
        )
        assert resp.status_code == 400

    def test_reader_forbidden(self, api_client) -> None:
        resp = api_client.client.post("/user/permissions", json=[], headers=api_client.auth(api_client.reader_token))
        assert resp.status_code == 403
