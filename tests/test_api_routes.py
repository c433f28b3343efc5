"""
tests/test_api_routes.py -- Integration tests for the /api/v1/users surface.

These tests exercise the full stack: FastAPI routing -> AccessGate dependency
-> AccountService / AccountStore -> envelope serialization. Unit testing
individual route functions would miss the exception handlers and dependency
injection, so integration tests are the right tool here.

Coverage:
  - Session lifecycle: register -> login -> logout -> stale token 401 -> fresh login
  - Email confirmation via the captured selector/verifier pair
  - Validation failures (400), duplicate email (409), bad credentials (401)
  - Profile read/update and self-or-admin reads of other accounts
  - Admin surface: role gating, self-action guard, status/verification/role/force-logout
  - Envelope shape on success and failure, unknown routes

Fixtures used (from conftest.py):
  - api_client: (client, admin_token, admin_id) -- TestClient with an admin JWT.
"""

from __future__ import annotations

import itertools

from fastapi.testclient import TestClient

_seq = itertools.count(1)

BASE = "/api/v1/users"


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _register(client: TestClient, password: str = "Abcdef12", **extra) -> tuple[str, dict]:
    email = f"route{next(_seq)}@example.com"
    body = {"email": email, "password": password, "first_name": "Ada", "last_name": "Lovelace", **extra}
    resp = client.post(f"{BASE}/register", json=body)
    assert resp.status_code == 201, resp.text
    return email, resp.json()["data"]["user"]


def _login(client: TestClient, email: str, password: str = "Abcdef12") -> str:
    resp = client.post(f"{BASE}/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]["token"]


class TestSessionLifecycle:
    def test_register_login_logout_relogin(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        email, user = _register(client)
        assert user["status"] == 0
        assert "password_hash" not in user

        t1 = _login(client, email)
        me = client.get(f"{BASE}/me", headers=_auth(t1))
        assert me.status_code == 200
        assert me.json()["data"]["user"]["status"] == 1

        out = client.post(f"{BASE}/logout", headers=_auth(t1))
        assert out.status_code == 200
        assert out.json() == {"success": True, "message": "Logged out successfully"}

        stale = client.get(f"{BASE}/me", headers=_auth(t1))
        assert stale.status_code == 401
        assert stale.json()["code"] == "session_invalidated"

        t2 = _login(client, email)
        fresh = client.get(f"{BASE}/me", headers=_auth(t2))
        assert fresh.status_code == 200
        assert fresh.json()["data"]["user"]["force_logout"] == 1

    def test_login_response_is_not_cached(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        email, _user = _register(client)
        resp = client.post(f"{BASE}/login", json={"email": email, "password": "Abcdef12"})
        assert resp.headers["cache-control"] == "no-store"
        assert "password_hash" not in resp.json()["data"]["user"]

    def test_bad_credentials(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        email, _user = _register(client)
        wrong_pw = client.post(f"{BASE}/login", json={"email": email, "password": "Wrongpass1"})
        no_user = client.post(f"{BASE}/login", json={"email": "ghost@example.com", "password": "Abcdef12"})
        assert wrong_pw.status_code == no_user.status_code == 401
        assert wrong_pw.json() == no_user.json()

    def test_missing_and_garbage_tokens(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        missing = client.get(f"{BASE}/me")
        assert missing.status_code == 401
        assert missing.json() == {"success": False, "message": "Access token required", "code": "missing_token"}

        garbage = client.get(f"{BASE}/me", headers=_auth("garbage"))
        assert garbage.status_code == 401
        assert garbage.json()["code"] == "invalid_or_expired_token"

    def test_confirm_email(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        email, user = _register(client)
        assert user["verified"] is False
        sent = client.app.state.sent_confirmations
        _email, selector, verifier = next(s for s in sent if s[0] == email)

        bad = client.post(f"{BASE}/confirm-email", json={"selector": selector, "token": "wrong"})
        assert bad.status_code == 400

        ok = client.post(f"{BASE}/confirm-email", json={"selector": selector, "token": verifier})
        assert ok.status_code == 200
        assert ok.json()["data"]["user"]["verified"] is True

        reused = client.post(f"{BASE}/confirm-email", json={"selector": selector, "token": verifier})
        assert reused.status_code == 400


class TestRegistrationValidation:
    def test_duplicate_email_conflict(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        email, _user = _register(client)
        body = {"email": email.upper(), "password": "Abcdef12", "first_name": "A", "last_name": "B"}
        resp = client.post(f"{BASE}/register", json=body)
        assert resp.status_code == 409
        assert resp.json()["success"] is False

    def test_weak_password(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        body = {"email": "weak@example.com", "password": "alllowercase", "first_name": "A", "last_name": "B"}
        resp = client.post(f"{BASE}/register", json=body)
        assert resp.status_code == 400
        assert resp.json()["message"].startswith("password:")

    def test_missing_field_and_unknown_field(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        missing = client.post(f"{BASE}/register", json={"email": "m@example.com", "password": "Abcdef12"})
        assert missing.status_code == 400
        unknown = client.post(
            f"{BASE}/register",
            json={
                "email": "u@example.com",
                "password": "Abcdef12",
                "first_name": "A",
                "last_name": "B",
                "role": "admin",
            },
        )
        assert unknown.status_code == 400

    def test_bad_email(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        body = {"email": "not-an-email", "password": "Abcdef12", "first_name": "A", "last_name": "B"}
        assert client.post(f"{BASE}/register", json=body).status_code == 400

    def test_mistyped_field(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        body = {"email": "t@example.com", "password": 12345678, "first_name": "A", "last_name": "B"}
        assert client.post(f"{BASE}/register", json=body).status_code == 400


class TestProfileRoutes:
    def test_partial_update(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        email, _user = _register(client, city="London", phone="555")
        token = _login(client, email)
        resp = client.put(f"{BASE}/me", headers=_auth(token), json={"city": "Paris"})
        assert resp.status_code == 200
        details = resp.json()["data"]["user"]["details"]
        assert details["city"] == "Paris"
        assert details["phone"] == "555"
        assert details["first_name"] == "Ada"

    def test_update_rejects_null_name(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        email, _user = _register(client)
        token = _login(client, email)
        resp = client.put(f"{BASE}/me", headers=_auth(token), json={"first_name": None})
        assert resp.status_code == 400

    def test_read_self_other_and_admin(self, api_client: tuple[TestClient, str, int]) -> None:
        client, admin_token, _admin_id = api_client
        email, user = _register(client)
        _other_email, other = _register(client)
        token = _login(client, email)

        assert client.get(f"{BASE}/{user['id']}", headers=_auth(token)).status_code == 200
        assert client.get(f"{BASE}/{other['id']}", headers=_auth(token)).status_code == 403
        assert client.get(f"{BASE}/{other['id']}", headers=_auth(admin_token)).status_code == 200
        assert client.get(f"{BASE}/999999", headers=_auth(admin_token)).status_code == 404


class TestAdminRoutes:
    def test_non_admin_is_forbidden(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        email, user = _register(client)
        token = _login(client, email)
        resp = client.get(f"{BASE}/admin/users", headers=_auth(token))
        assert resp.status_code == 403
        assert resp.json()["code"] == "insufficient_role"
        assert client.delete(f"{BASE}/admin/users/{user['id']}", headers=_auth(token)).status_code == 403

    def test_admin_cannot_delete_self(self, api_client: tuple[TestClient, str, int]) -> None:
        client, admin_token, admin_id = api_client
        resp = client.delete(f"{BASE}/admin/users/{admin_id}", headers=_auth(admin_token))
        assert resp.status_code == 400
        assert resp.json()["code"] == "self_action"
        assert client.get(f"{BASE}/me", headers=_auth(admin_token)).status_code == 200

    def test_self_guard_on_every_mutation(self, api_client: tuple[TestClient, str, int]) -> None:
        client, admin_token, admin_id = api_client
        h = _auth(admin_token)
        assert client.patch(f"{BASE}/admin/users/{admin_id}/status", headers=h, json={"status": 0}).status_code == 400
        assert (
            client.patch(f"{BASE}/admin/users/{admin_id}/verification", headers=h, json={"verified": False}).status_code
            == 400
        )
        assert client.patch(f"{BASE}/admin/users/{admin_id}/role", headers=h, json={"role": "user"}).status_code == 400
        assert client.post(f"{BASE}/admin/users/{admin_id}/force-logout", headers=h).status_code == 400

    def test_list_users(self, api_client: tuple[TestClient, str, int]) -> None:
        client, admin_token, _admin_id = api_client
        _register(client)
        resp = client.get(f"{BASE}/admin/users", headers=_auth(admin_token), params={"page": 1, "limit": 2})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert len(data["users"]) <= 2
        assert data["total"] >= 2
        assert all("password_hash" not in u for u in data["users"])

    def test_suspend_blocks_existing_token_and_login(self, api_client: tuple[TestClient, str, int]) -> None:
        client, admin_token, _admin_id = api_client
        email, user = _register(client)
        token = _login(client, email)

        resp = client.patch(f"{BASE}/admin/users/{user['id']}/status", headers=_auth(admin_token), json={"status": 2})
        assert resp.status_code == 200

        assert client.get(f"{BASE}/me", headers=_auth(token)).status_code == 403
        again = client.post(f"{BASE}/login", json={"email": email, "password": "Abcdef12"})
        assert again.status_code == 403

    def test_status_out_of_range(self, api_client: tuple[TestClient, str, int]) -> None:
        client, admin_token, _admin_id = api_client
        _email, user = _register(client)
        resp = client.patch(f"{BASE}/admin/users/{user['id']}/status", headers=_auth(admin_token), json={"status": 7})
        assert resp.status_code == 400

    def test_verification_and_role(self, api_client: tuple[TestClient, str, int]) -> None:
        client, admin_token, _admin_id = api_client
        email, user = _register(client)
        h = _auth(admin_token)
        target = f"{BASE}/admin/users/{user['id']}"
        assert client.patch(f"{target}/verification", headers=h, json={"verified": True}).status_code == 200
        assert client.patch(f"{target}/role", headers=h, json={"role": "admin"}).status_code == 200

        token = _login(client, email)
        promoted = client.get(f"{BASE}/me", headers=_auth(token)).json()["data"]["user"]
        assert promoted["verified"] is True
        assert promoted["role"] == "admin"
        assert client.get(f"{BASE}/admin/users", headers=_auth(token)).status_code == 200

    def test_force_logout(self, api_client: tuple[TestClient, str, int]) -> None:
        client, admin_token, _admin_id = api_client
        email, user = _register(client)
        token = _login(client, email)
        resp = client.post(f"{BASE}/admin/users/{user['id']}/force-logout", headers=_auth(admin_token))
        assert resp.status_code == 200
        stale = client.get(f"{BASE}/me", headers=_auth(token))
        assert stale.status_code == 401
        assert stale.json()["code"] == "session_invalidated"

    def test_unknown_target(self, api_client: tuple[TestClient, str, int]) -> None:
        client, admin_token, _admin_id = api_client
        h = _auth(admin_token)
        assert client.delete(f"{BASE}/admin/users/999999", headers=h).status_code == 404
        assert client.post(f"{BASE}/admin/users/999999/force-logout", headers=h).status_code == 404

    def test_oversized_id_is_rejected_not_500(self, api_client: tuple[TestClient, str, int]) -> None:
        client, admin_token, _admin_id = api_client
        h = _auth(admin_token)
        huge = 2**64
        for resp in (
            client.get(f"{BASE}/{huge}", headers=h),
            client.delete(f"{BASE}/admin/users/{huge}", headers=h),
            client.post(f"{BASE}/admin/users/{huge}/force-logout", headers=h),
        ):
            assert resp.status_code == 400
            assert resp.json()["code"] == "validation_error"

        # The largest storable id is valid input that simply matches nobody.
        assert client.get(f"{BASE}/{2**63 - 1}", headers=h).status_code == 404

    def test_delete_user(self, api_client: tuple[TestClient, str, int]) -> None:
        client, admin_token, _admin_id = api_client
        email, user = _register(client)
        token = _login(client, email)
        assert client.delete(f"{BASE}/admin/users/{user['id']}", headers=_auth(admin_token)).status_code == 200
        gone = client.get(f"{BASE}/me", headers=_auth(token))
        assert gone.status_code == 401
        assert gone.json()["code"] == "invalid_token"


class TestEnvelope:
    def test_unknown_route(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _admin_id = api_client
        resp = client.get("/api/v1/nothing-here")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "message": "Route not found", "code": "http_404"}
