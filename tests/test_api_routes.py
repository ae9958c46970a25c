"""
tests/test_api_routes.py -- Integration tests for the auth, admin and host routes.

These tests exercise the full stack: FastAPI routing -> dependency injection
-> AuthOrchestrator / VerificationWorkflow -> response model serialization
and the error envelope from api/main.py.

Coverage:
  - signup -> verify-otp -> me -> refresh -> logout round trip
  - error envelope: 400 with field detail, 401, 403, 404, 409, 422
  - Cache-Control: no-store on token responses
  - admin review queue, approve / reject / reapply, block and self-block
  - host self-service and the approved-host gate
  - blocked accounts lose bearer access immediately

Fixtures used (from conftest.py):
  - api_client: (client, components, admin_token) -- one graph per module.
    Every test uses its own email addresses because the graph is shared.
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from auth.wiring import AuthComponents

ApiClient = tuple[TestClient, AuthComponents, str]


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _register(client: TestClient, graph: AuthComponents, email: str, role: str = "user") -> dict:
    """Sign up and verify; return the token response body."""
    resp = client.post(
        "/api/v1/auth/signup",
        json={"name": "Test", "email": email, "password": "pass-1234", "role": role},
    )
    assert resp.status_code == 201, resp.text
    code = graph.orchestrator.mailer.last_code(email)
    resp = client.post("/api/v1/auth/verify-otp", json={"email": email, "otp": code})
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestSignupAndSignin:
    def test_signup_returns_account_without_tokens(self, api_client: ApiClient) -> None:
        client, _graph, _admin = api_client
        resp = client.post(
            "/api/v1/auth/signup",
            json={"name": "Ada", "email": "ada.signup@x.com", "password": "pass-1234"},
        )
        assert resp.status_code == 201
        data = resp.json()
        assert "access_token" not in data
        assert data["account"]["email"] == "ada.signup@x.com"
        assert "password_hash" not in data["account"]

    def test_duplicate_signup_is_409(self, api_client: ApiClient) -> None:
        client, _graph, _admin = api_client
        body = {"name": "Ada", "email": "dup@x.com", "password": "pass-1234"}
        assert client.post("/api/v1/auth/signup", json=body).status_code == 201
        resp = client.post("/api/v1/auth/signup", json=body)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    def test_admin_signup_is_400_with_field(self, api_client: ApiClient) -> None:
        client, _graph, _admin = api_client
        resp = client.post(
            "/api/v1/auth/signup",
            json={"name": "Eve", "email": "eve@x.com", "password": "pass-1234", "role": "admin"},
        )
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "validation_error"
        assert error["detail"] == "role"

    def test_malformed_body_is_422(self, api_client: ApiClient) -> None:
        client, _graph, _admin = api_client
        resp = client.post("/api/v1/auth/signup", json={"email": "x@x.com"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_signin_returns_email_only(self, api_client: ApiClient) -> None:
        client, graph, _admin = api_client
        _register(client, graph, "signin@x.com")
        resp = client.post("/api/v1/auth/signin", json={"email": "signin@x.com", "password": "pass-1234"})
        assert resp.status_code == 200
        assert resp.json() == {"message": "Verification code sent.", "email": "signin@x.com"}

    def test_signin_bad_password_is_401(self, api_client: ApiClient) -> None:
        client, graph, _admin = api_client
        _register(client, graph, "badpass@x.com")
        resp = client.post("/api/v1/auth/signin", json={"email": "badpass@x.com", "password": "nope"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_verify_wrong_code_is_401(self, api_client: ApiClient) -> None:
        client, graph, _admin = api_client
        client.post("/api/v1/auth/signup", json={"name": "W", "email": "wrong@x.com", "password": "pass-1234"})
        real = graph.orchestrator.mailer.last_code("wrong@x.com")
        guess = "000000" if real != "000000" else "111111"
        resp = client.post("/api/v1/auth/verify-otp", json={"email": "wrong@x.com", "otp": guess})
        assert resp.status_code == 401

    def test_verify_unknown_email_is_404(self, api_client: ApiClient) -> None:
        client, _graph, _admin = api_client
        resp = client.post("/api/v1/auth/verify-otp", json={"email": "ghost@x.com", "otp": "123456"})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"

    def test_resend_otp(self, api_client: ApiClient) -> None:
        client, graph, _admin = api_client
        client.post("/api/v1/auth/signup", json={"name": "R", "email": "resend@x.com", "password": "pass-1234"})
        resp = client.post("/api/v1/auth/resend-otp", json={"email": "resend@x.com"})
        assert resp.status_code == 200
        assert graph.orchestrator.mailer.count("resend@x.com") == 2


class TestTokens:
    def test_verify_issues_tokens_with_no_store(self, api_client: ApiClient) -> None:
        client, graph, _admin = api_client
        client.post("/api/v1/auth/signup", json={"name": "T", "email": "tokens@x.com", "password": "pass-1234"})
        code = graph.orchestrator.mailer.last_code("tokens@x.com")
        resp = client.post("/api/v1/auth/verify-otp", json={"email": "tokens@x.com", "otp": code})
        assert resp.status_code == 200
        assert resp.headers["Cache-Control"] == "no-store"
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["access_token"] and data["refresh_token"]
        assert data["account"]["last_login"] is not None

    def test_me_with_access_token(self, api_client: ApiClient) -> None:
        client, graph, _admin = api_client
        tokens = _register(client, graph, "me@x.com")
        resp = client.get("/api/v1/auth/me", headers=_auth(tokens["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["email"] == "me@x.com"

    def test_me_without_token_is_401(self, api_client: ApiClient) -> None:
        client, _graph, _admin = api_client
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_refresh_token_is_not_a_bearer_token(self, api_client: ApiClient) -> None:
        client, graph, _admin = api_client
        tokens = _register(client, graph, "bearer@x.com")
        resp = client.get("/api/v1/auth/me", headers=_auth(tokens["refresh_token"]))
        assert resp.status_code == 401

    def test_refresh_and_logout(self, api_client: ApiClient) -> None:
        client, graph, _admin = api_client
        tokens = _register(client, graph, "refresh@x.com")
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 200
        assert resp.headers["Cache-Control"] == "no-store"
        assert client.get("/api/v1/auth/me", headers=_auth(resp.json()["access_token"])).status_code == 200

        assert client.post("/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]}).status_code == 200
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_refresh_without_token_is_403(self, api_client: ApiClient) -> None:
        client, _graph, _admin = api_client
        assert client.post("/api/v1/auth/refresh", json={}).status_code == 403

    def test_logout_with_garbage_is_still_200(self, api_client: ApiClient) -> None:
        client, _graph, _admin = api_client
        assert client.post("/api/v1/auth/logout", json={"refresh_token": "garbage"}).status_code == 200


class TestOAuthRoute:
    def test_oauth_issues_tokens(self, api_client: ApiClient) -> None:
        client, graph, _admin = api_client
        graph.orchestrator.verifier.allow("provider-token", "oauth@x.com")
        resp = client.post(
            "/api/v1/auth/oauth",
            json={"name": "O", "email": "oauth@x.com", "access_token": "provider-token"},
        )
        assert resp.status_code == 200
        assert resp.json()["account"]["is_oauth_user"] is True

    def test_oauth_forged_token_is_401(self, api_client: ApiClient) -> None:
        client, _graph, _admin = api_client
        resp = client.post(
            "/api/v1/auth/oauth",
            json={"name": "O", "email": "forged@x.com", "access_token": "forged"},
        )
        assert resp.status_code == 401


class TestPasswordRecovery:
    def test_forgot_and_reset(self, api_client: ApiClient) -> None:
        client, graph, _admin = api_client
        tokens = _register(client, graph, "reset@x.com")
        assert client.post("/api/v1/auth/forgot-password", json={"email": "reset@x.com"}).status_code == 200
        code = graph.orchestrator.mailer.last_code("reset@x.com", kind="reset")
        resp = client.post(
            "/api/v1/auth/reset-password",
            json={"email": "reset@x.com", "otp": code, "password": "brand-new-pass"},
        )
        assert resp.status_code == 200
        assert client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 403
        resp = client.post("/api/v1/auth/signin", json={"email": "reset@x.com", "password": "brand-new-pass"})
        assert resp.status_code == 200

    def test_forgot_unknown_email_is_404(self, api_client: ApiClient) -> None:
        client, _graph, _admin = api_client
        assert client.post("/api/v1/auth/forgot-password", json={"email": "nobody@x.com"}).status_code == 404


class TestAdminRoutes:
    def test_non_admin_is_403(self, api_client: ApiClient) -> None:
        client, graph, _admin = api_client
        tokens = _register(client, graph, "notadmin@x.com")
        resp = client.get("/api/v1/admin/hosts", headers=_auth(tokens["access_token"]))
        assert resp.status_code == 403

    def test_unauthenticated_is_401(self, api_client: ApiClient) -> None:
        client, _graph, _admin = api_client
        assert client.get("/api/v1/admin/hosts").status_code == 401

    def test_review_queue_and_decisions(self, api_client: ApiClient) -> None:
        client, graph, admin = api_client
        host = _register(client, graph, "review@x.com", role="host")["account"]
        assert host["verification_status"] == "pending"

        pending = client.get("/api/v1/admin/hosts?status=pending", headers=_auth(admin)).json()
        assert host["id"] in {h["id"] for h in pending}

        resp = client.post("/api/v1/admin/hosts/reject", json={"hostId": host["id"]}, headers=_auth(admin))
        assert resp.status_code == 400
        assert resp.json()["error"]["detail"] == "reason"

        resp = client.post(
            "/api/v1/admin/hosts/reject",
            json={"hostId": host["id"], "reason": "ID photo unreadable"},
            headers=_auth(admin),
        )
        assert resp.status_code == 200
        assert resp.json()["rejection_reason"] == "ID photo unreadable"

        resp = client.post("/api/v1/admin/hosts/reapply", json={"hostId": host["id"]}, headers=_auth(admin))
        assert resp.json()["verification_status"] == "pending"

        resp = client.post("/api/v1/admin/hosts/approve", json={"hostId": host["id"]}, headers=_auth(admin))
        assert resp.status_code == 200
        assert resp.json()["is_verified"] is True

        resp = client.post("/api/v1/admin/hosts/approve", json={"hostId": host["id"]}, headers=_auth(admin))
        assert resp.status_code == 409

    def test_approve_unknown_host_is_404(self, api_client: ApiClient) -> None:
        client, _graph, admin = api_client
        resp = client.post("/api/v1/admin/hosts/approve", json={"hostId": "missing"}, headers=_auth(admin))
        assert resp.status_code == 404

    def test_block_cuts_off_bearer_access(self, api_client: ApiClient) -> None:
        client, graph, admin = api_client
        tokens = _register(client, graph, "blockme@x.com")
        account_id = tokens["account"]["id"]

        resp = client.patch(f"/api/v1/admin/users/{account_id}/block", json={"blocked": True}, headers=_auth(admin))
        assert resp.status_code == 200
        assert resp.json()["is_blocked"] is True

        assert client.get("/api/v1/auth/me", headers=_auth(tokens["access_token"])).status_code == 401
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 401

        client.patch(f"/api/v1/admin/users/{account_id}/block", json={"blocked": False}, headers=_auth(admin))
        assert client.get("/api/v1/auth/me", headers=_auth(tokens["access_token"])).status_code == 200

    def test_admin_cannot_block_self(self, api_client: ApiClient) -> None:
        client, graph, admin = api_client
        admin_id = graph.users.get_by_email("admin@stay.io").id
        resp = client.patch(f"/api/v1/admin/users/{admin_id}/block", json={"blocked": True}, headers=_auth(admin))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "self_block"


class TestHostRoutes:
    def test_host_status_and_approved_gate(self, api_client: ApiClient) -> None:
        client, graph, admin = api_client
        tokens = _register(client, graph, "gate@x.com", role="host")
        headers = _auth(tokens["access_token"])

        resp = client.get("/api/v1/host/verification", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["verification_status"] == "pending"

        resp = client.get("/api/v1/host/profile", headers=headers)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "host_not_approved"

        client.post("/api/v1/admin/hosts/approve", json={"hostId": tokens["account"]["id"]}, headers=_auth(admin))
        assert client.get("/api/v1/host/profile", headers=headers).status_code == 200

    def test_host_reapply_after_rejection(self, api_client: ApiClient) -> None:
        client, graph, admin = api_client
        tokens = _register(client, graph, "again@x.com", role="host")
        headers = _auth(tokens["access_token"])

        assert client.post("/api/v1/host/verification/reapply", headers=headers).status_code == 409
        client.post(
            "/api/v1/admin/hosts/reject",
            json={"hostId": tokens["account"]["id"], "reason": "Incomplete"},
            headers=_auth(admin),
        )
        status = client.get("/api/v1/host/verification", headers=headers).json()
        assert status["rejection_reason"] == "Incomplete"
        resp = client.post("/api/v1/host/verification/reapply", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["verification_status"] == "pending"

    def test_guest_cannot_use_host_routes(self, api_client: ApiClient) -> None:
        client, graph, _admin = api_client
        tokens = _register(client, graph, "guestonly@x.com")
        resp = client.get("/api/v1/host/verification", headers=_auth(tokens["access_token"]))
        assert resp.status_code == 403
