"""
tests/test_security_gate.py -- Integration tests for the pre-route security gate.

The gate runs as HTTP middleware, so these go through the real ASGI stack with
a real LocalSecurityOracle swapped into app.state (the shared api_client fixture
uses an allow-all fake).

Coverage:
  - 6 requests in a minute from an unauthenticated client -> 6th is 403 rate-limit
  - authenticated callers get their role's quota and are keyed by user id
  - bot user agents and attack signatures -> 403 bot / shield
  - oracle failure -> 503 (fail closed); dry-run never blocks
  - /health is never gated; a disabled gate is a pass-through
  - identity derivation: guest by socket peer (X-Forwarded-For only from trusted
    proxies), user by token
  - CORS preflights skip the gate; CORS and host checks wrap it
"""

from __future__ import annotations

import logging
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from auth.models import SessionClaims
from security.gate import SecurityGate
from security.oracle import LocalSecurityOracle
from tests.conftest import AllowAllOracle, RaisingOracle

LIMITS = {"guest": "5/minute", "user": "10/minute", "admin": "20/minute"}


@pytest.fixture
def install_gate(api_client: TestClient) -> Generator:
    """Factory: swap a gate into app.state for one test, restore afterwards."""
    state = api_client.app.state
    original = state.security_gate

    def _install(oracle, **kwargs) -> SecurityGate:
        gate = SecurityGate(oracle, state.token_codec, cookie_name=state.settings.cookie_name, **kwargs)
        state.security_gate = gate
        return gate

    yield _install
    state.security_gate = original


@pytest.fixture
def gate_client(api_client: TestClient, install_gate) -> TestClient:
    """api_client with a fresh real oracle using the production role limits."""
    install_gate(LocalSecurityOracle(LIMITS))
    return api_client


def _token_for(client: TestClient, user: dict) -> str:
    codec = client.app.state.token_codec
    return codec.issue(SessionClaims(id=user["id"], email=user["email"], role=user["role"]))


class TestRateLimit:
    def test_sixth_guest_request_is_rejected(self, gate_client: TestClient) -> None:
        responses = [gate_client.get("/api/users") for _ in range(6)]
        assert [r.status_code for r in responses[:5]] == [200] * 5
        resp = responses[5]
        assert resp.status_code == 403
        error = resp.json()["error"]
        assert error["reason"] == "rate-limit"
        assert error["code"] == "forbidden"

    def test_guest_limit_applies_across_routes(self, gate_client: TestClient) -> None:
        for _ in range(5):
            gate_client.get("/api/users")
        resp = gate_client.post("/api/auth/signin", json={"email": "a@x.com", "password": "p1"})
        assert resp.status_code == 403
        assert resp.json()["error"]["reason"] == "rate-limit"

    def test_authenticated_user_gets_user_quota(self, gate_client: TestClient, install_gate, signup_user) -> None:
        install_gate(AllowAllOracle())
        user = signup_user()
        install_gate(LocalSecurityOracle(LIMITS))

        headers = {"Authorization": f"Bearer {_token_for(gate_client, user)}"}
        statuses = [gate_client.get("/api/users", headers=headers).status_code for _ in range(11)]
        assert statuses == [200] * 10 + [403]

    def test_admin_gets_admin_quota(self, gate_client: TestClient, install_gate, signup_user) -> None:
        install_gate(AllowAllOracle())
        admin = signup_user(role="admin")
        install_gate(LocalSecurityOracle(LIMITS))

        headers = {"Authorization": f"Bearer {_token_for(gate_client, admin)}"}
        statuses = [gate_client.get("/api/users", headers=headers).status_code for _ in range(21)]
        assert statuses == [200] * 20 + [403]

    def test_rotating_forwarded_header_does_not_reset_quota(self, gate_client: TestClient) -> None:
        statuses = [
            gate_client.get("/api/users", headers={"X-Forwarded-For": f"10.9.9.{i}"}).status_code for i in range(6)
        ]
        assert statuses == [200] * 5 + [403]

    def test_forwarded_clients_counted_separately(self, api_client: TestClient, install_gate) -> None:
        install_gate(LocalSecurityOracle(LIMITS), trusted_proxies=("testclient",))
        for _ in range(5):
            assert api_client.get("/api/users", headers={"X-Forwarded-For": "203.0.113.1"}).status_code == 200
        assert api_client.get("/api/users", headers={"X-Forwarded-For": "203.0.113.1"}).status_code == 403
        assert api_client.get("/api/users", headers={"X-Forwarded-For": "203.0.113.2"}).status_code == 200


class TestBotAndShield:
    def test_bot_user_agent_rejected(self, gate_client: TestClient) -> None:
        resp = gate_client.get("/api/users", headers={"User-Agent": "curl/8.4.0"})
        assert resp.status_code == 403
        assert resp.json()["error"]["reason"] == "bot"

    def test_attack_signature_rejected(self, gate_client: TestClient) -> None:
        resp = gate_client.get("/api/users", params={"q": "<script>alert(1)</script>"})
        assert resp.status_code == 403
        assert resp.json()["error"]["reason"] == "shield"

    def test_rejection_is_logged(self, gate_client: TestClient, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="usergate.security"):
            gate_client.get("/api/users", headers={"User-Agent": "curl/8.4.0"})
        messages = [r.getMessage() for r in caplog.records if r.name == "usergate.security"]
        assert any("reason=bot" in m and "role=guest" in m for m in messages)


class TestFailurePolicy:
    def test_oracle_failure_fails_closed(self, api_client: TestClient, install_gate, caplog) -> None:
        install_gate(RaisingOracle())
        with caplog.at_level(logging.ERROR, logger="usergate.security"):
            resp = api_client.get("/api/users")
        assert resp.status_code == 503
        assert resp.json()["error"]["reason"] == "error"
        assert any(r.levelno == logging.ERROR and r.exc_info for r in caplog.records)

    def test_dry_run_never_blocks(self, api_client: TestClient, install_gate) -> None:
        install_gate(LocalSecurityOracle(LIMITS), dry_run=True)
        statuses = [api_client.get("/api/users").status_code for _ in range(8)]
        assert statuses == [200] * 8
        assert api_client.get("/api/users", headers={"User-Agent": "curl/8.4.0"}).status_code == 200

    def test_disabled_gate_is_pass_through(self, api_client: TestClient, install_gate) -> None:
        install_gate(RaisingOracle(), enabled=False)
        assert api_client.get("/api/users").status_code == 200

    def test_health_is_never_gated(self, api_client: TestClient, install_gate) -> None:
        install_gate(RaisingOracle())
        assert api_client.get("/health").status_code == 200

    def test_preflight_is_never_gated(self, api_client: TestClient, install_gate) -> None:
        install_gate(RaisingOracle())
        resp = api_client.options("/api/users")
        assert resp.status_code == 405
        assert resp.json()["error"]["code"] == "http_405"


def _middleware_names(app) -> list[str]:
    names = []
    for m in app.user_middleware:
        options = getattr(m, "kwargs", None) or getattr(m, "options", {})
        dispatch = options.get("dispatch")
        names.append(dispatch.__name__ if dispatch else m.cls.__name__)
    return names


def test_gate_runs_inside_cors_and_host_checks(api_client: TestClient) -> None:
    assert _middleware_names(api_client.app) == [
        "log_requests",
        "CORSMiddleware",
        "TrustedHostMiddleware",
        "security_gate",
    ]


class TestIdentity:
    def test_guest_identity_is_socket_peer(self, api_client: TestClient, install_gate) -> None:
        oracle = AllowAllOracle()
        install_gate(oracle)
        api_client.get("/api/users", headers={"X-Forwarded-For": "198.51.100.7"})
        profile = oracle.seen[-1]
        assert profile.role == "guest"
        assert profile.identity == "testclient"
        assert profile.path == "/api/users"

    def test_trusted_proxy_chain_yields_client_ip(self, api_client: TestClient, install_gate) -> None:
        oracle = AllowAllOracle()
        install_gate(oracle, trusted_proxies=("testclient", "10.0.0.1"))
        api_client.get("/api/users", headers={"X-Forwarded-For": "6.6.6.6, 198.51.100.7, 10.0.0.1"})
        assert oracle.seen[-1].identity == "198.51.100.7"

    def test_session_cookie_sets_user_identity(self, api_client: TestClient, install_gate, signup_user) -> None:
        oracle = AllowAllOracle()
        install_gate(oracle)
        user = signup_user(role="admin")
        api_client.get("/api/users", headers={"Cookie": f"access_token={_token_for(api_client, user)}"})
        profile = oracle.seen[-1]
        assert profile.role == "admin"
        assert profile.identity == f"user:{user['id']}"

    def test_invalid_token_falls_back_to_guest(self, api_client: TestClient, install_gate) -> None:
        oracle = AllowAllOracle()
        install_gate(oracle)
        resp = api_client.get("/api/users", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 200
        assert oracle.seen[-1].role == "guest"
