"""
Integration tests for the HTTP API.
"""

import base64
from urllib.parse import parse_qs, urlsplit

import pyotp
import pytest
from fastapi.testclient import TestClient

from sso_service.main import create_app
from tests.conftest import REDIRECT_URI, TEST_PASSWORD


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def register(client, email="alice@example.com", password=TEST_PASSWORD):
    return client.post("/auth/register", json={"email": email, "password": password, "first_name": "Alice"})


def login(client, email="alice@example.com", password=TEST_PASSWORD, **extra):
    return client.post("/auth/login", json={"email": email, "password": password, **extra})


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def access_token(client):
    register(client)
    return login(client).json()["access_token"]


@pytest.fixture
def registered_client(client, access_token):
    response = client.post(
        "/oauth2/clients",
        json={"name": "Demo App", "redirect_uris": [REDIRECT_URI]},
        headers=bearer(access_token),
    )
    assert response.status_code == 201
    return response.json()


def authorize(client, access_token, client_id, **params):
    query = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": REDIRECT_URI,
        "scope": "openid profile",
        "state": "xyz",
        **params,
    }
    return client.get("/oauth2/authorize", params=query, headers=bearer(access_token), follow_redirects=False)


def redirect_params(response) -> dict:
    return {k: v[0] for k, v in parse_qs(urlsplit(response.headers["location"]).query).items()}


class TestService:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_correlation_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})
        assert response.headers["X-Correlation-ID"] == "abc-123"

    def test_jwks(self, client):
        keys = client.get("/.well-known/jwks.json").json()["keys"]

        assert len(keys) == 1
        assert keys[0]["kty"] == "RSA"
        assert keys[0]["alg"] == "RS256"
        assert keys[0]["kid"] == "sso-key-1"


class TestAuthEndpoints:
    """Tests for /auth."""

    def test_register(self, client):
        response = register(client)

        assert response.status_code == 201
        body = response.json()
        assert body["email"] == "alice@example.com"
        assert "password_hash" not in body

    def test_register_duplicate(self, client):
        register(client)
        response = register(client)

        assert response.status_code == 409
        assert response.json()["error"] == "already_exists"

    def test_register_weak_password(self, client):
        response = register(client, password="weakpass")

        assert response.status_code == 400
        assert response.json()["error"] == "weak_credential"

    def test_login_and_validate(self, client):
        register(client)
        response = login(client)

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "Bearer"
        assert body["expires_in"] == 3600

        validation = client.get("/auth/validate", headers=bearer(body["access_token"]))
        assert validation.status_code == 200
        assert validation.json()["user_id"] == body["user"]["id"]

    def test_login_wrong_password(self, client):
        register(client)
        response = login(client, password="Wr0ng!Password")

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_credentials"

    def test_lockout_and_admin_unlock(self, client):
        register(client)
        for _ in range(5):
            login(client, password="Wr0ng!Password")

        response = login(client)
        assert response.status_code == 423
        assert response.json()["error"] == "account_locked"

        denied = client.post("/admin/unlock", json={"email": "alice@example.com"})
        assert denied.status_code == 401

        unlocked = client.post(
            "/admin/unlock",
            json={"email": "alice@example.com"},
            headers={"X-Internal-Auth": "test-internal-key"},
        )
        assert unlocked.status_code == 200
        assert login(client).status_code == 200

    def test_validate_requires_token(self, client):
        response = client.get("/auth/validate")

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_token"

    def test_refresh_and_reuse(self, client):
        register(client)
        refresh_token = login(client).json()["refresh_token"]

        rotated = client.post("/auth/refresh", json={"refresh_token": refresh_token})
        assert rotated.status_code == 200
        assert rotated.json()["refresh_token"] != refresh_token

        reused = client.post("/auth/refresh", json={"refresh_token": refresh_token})
        assert reused.status_code == 401
        assert reused.json()["error"] == "revoked"

    def test_logout(self, client):
        register(client)
        tokens = login(client).json()

        assert client.post("/auth/logout", json={"refresh_token": tokens["refresh_token"]}).status_code == 200

        response = client.get("/auth/validate", headers=bearer(tokens["access_token"]))
        assert response.status_code == 401
        assert response.json()["error"] == "revoked"

    def test_logout_all(self, client, access_token):
        login(client)

        response = client.post("/auth/logout-all", headers=bearer(access_token))

        assert response.status_code == 200
        assert response.json()["sessions_revoked"] == 2

    def test_change_password(self, client, access_token):
        response = client.post(
            "/auth/change-password",
            json={"old_password": TEST_PASSWORD, "new_password": "N3w!Passphrase"},
            headers=bearer(access_token),
        )

        assert response.status_code == 200
        assert client.get("/auth/validate", headers=bearer(access_token)).status_code == 401
        assert login(client, password="N3w!Passphrase").status_code == 200


class TestTwoFactorEndpoints:
    """Tests for /auth/2fa."""

    def test_enroll_and_login(self, client, access_token):
        setup = client.post("/auth/2fa/setup", headers=bearer(access_token)).json()
        totp = pyotp.TOTP(setup["secret"])

        enabled = client.post("/auth/2fa/enable", json={"code": totp.now()}, headers=bearer(access_token))
        assert enabled.status_code == 200

        status = client.get("/auth/2fa/status", headers=bearer(access_token)).json()
        assert status["enabled"] is True

        required = login(client)
        assert required.status_code == 401
        assert required.json()["error"] == "second_factor_required"

        assert login(client, second_factor_code=totp.now()).status_code == 200
        assert login(client, second_factor_code=setup["backup_codes"][0]).status_code == 200

    def test_qr_code(self, client, access_token):
        assert client.get("/auth/2fa/qr", headers=bearer(access_token)).status_code == 404

        client.post("/auth/2fa/setup", headers=bearer(access_token))
        response = client.get("/auth/2fa/qr", headers=bearer(access_token))

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.headers["cache-control"] == "no-store"
        assert response.content.startswith(b"\x89PNG")

    def test_qr_code_requires_token(self, client):
        assert client.get("/auth/2fa/qr").status_code == 401

    def test_enable_with_wrong_code(self, client, access_token):
        client.post("/auth/2fa/setup", headers=bearer(access_token))

        response = client.post("/auth/2fa/enable", json={"code": "12345"}, headers=bearer(access_token))

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_code"


class TestOAuth2Endpoints:
    """Tests for /oauth2."""

    def test_register_client_returns_secret_once(self, client, access_token, registered_client):
        assert registered_client["client_secret"]
        assert registered_client["grant_types"] == ["authorization_code", "refresh_token"]

        listed = client.get("/oauth2/clients", headers=bearer(access_token)).json()
        assert listed[0]["client_id"] == registered_client["client_id"]
        assert "client_secret" not in listed[0]

    def test_authorization_code_flow(self, client, access_token, registered_client):
        response = authorize(client, access_token, registered_client["client_id"])

        assert response.status_code == 302
        assert response.headers["location"].startswith(REDIRECT_URI)
        params = redirect_params(response)
        assert params["state"] == "xyz"

        token_response = client.post(
            "/oauth2/token",
            data={
                "grant_type": "authorization_code",
                "code": params["code"],
                "redirect_uri": REDIRECT_URI,
                "client_id": registered_client["client_id"],
                "client_secret": registered_client["client_secret"],
            },
        )
        assert token_response.status_code == 200
        assert token_response.headers["Cache-Control"] == "no-store"
        tokens = token_response.json()
        assert tokens["scope"] == "openid profile"

        replay = client.post(
            "/oauth2/token",
            data={
                "grant_type": "authorization_code",
                "code": params["code"],
                "redirect_uri": REDIRECT_URI,
                "client_id": registered_client["client_id"],
                "client_secret": registered_client["client_secret"],
            },
        )
        assert replay.status_code == 400
        assert replay.json()["error"] == "invalid_grant"

    def test_token_with_basic_auth_and_refresh(self, client, access_token, registered_client):
        code = redirect_params(authorize(client, access_token, registered_client["client_id"]))["code"]
        credentials = f"{registered_client['client_id']}:{registered_client['client_secret']}"
        basic = {"Authorization": f"Basic {base64.b64encode(credentials.encode()).decode()}"}

        tokens = client.post(
            "/oauth2/token",
            data={"grant_type": "authorization_code", "code": code, "redirect_uri": REDIRECT_URI},
            headers=basic,
        ).json()

        refreshed = client.post(
            "/oauth2/token",
            data={"grant_type": "refresh_token", "refresh_token": tokens["refresh_token"]},
            headers=basic,
        )
        assert refreshed.status_code == 200
        assert refreshed.json()["refresh_token"] != tokens["refresh_token"]

    def test_unauthenticated_user_goes_to_login(self, client, registered_client):
        response = client.get(
            "/oauth2/authorize",
            params={"client_id": registered_client["client_id"], "redirect_uri": REDIRECT_URI},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"].startswith("/login?return_to=")

    def test_unregistered_redirect_is_not_followed(self, client, access_token, registered_client):
        response = authorize(
            client, access_token, registered_client["client_id"], redirect_uri="https://evil.example.com/cb"
        )

        assert response.status_code == 400
        assert "location" not in response.headers
        assert response.json()["error"] == "invalid_request"

    def test_invalid_scope_is_redirected(self, client, access_token, registered_client):
        response = authorize(client, access_token, registered_client["client_id"], scope="openid admin")

        assert response.status_code == 302
        params = redirect_params(response)
        assert params["error"] == "invalid_scope"
        assert params["state"] == "xyz"

    def test_unsupported_response_type(self, client, access_token, registered_client):
        response = authorize(client, access_token, registered_client["client_id"], response_type="token")

        assert response.status_code == 302
        assert redirect_params(response)["error"] == "unsupported_response_type"

    def test_token_errors(self, client, registered_client):
        bad_secret = client.post(
            "/oauth2/token",
            data={
                "grant_type": "authorization_code",
                "code": "whatever",
                "redirect_uri": REDIRECT_URI,
                "client_id": registered_client["client_id"],
                "client_secret": "wrong",
            },
        )
        assert bad_secret.status_code == 401
        assert set(bad_secret.json()) == {"error", "error_description"}
        assert bad_secret.json()["error"] == "invalid_client"
        assert bad_secret.headers["cache-control"] == "no-store"

        unsupported = client.post(
            "/oauth2/token",
            data={
                "grant_type": "password",
                "client_id": registered_client["client_id"],
                "client_secret": registered_client["client_secret"],
            },
        )
        assert unsupported.status_code == 400
        assert unsupported.json()["error"] == "unsupported_grant_type"

        missing = client.post("/oauth2/token", data={})
        assert missing.status_code == 400
        assert missing.json()["error"] == "invalid_request"

    def test_introspect_and_revoke(self, client, access_token, registered_client):
        code = redirect_params(authorize(client, access_token, registered_client["client_id"]))["code"]
        client_auth = {
            "client_id": registered_client["client_id"],
            "client_secret": registered_client["client_secret"],
        }
        tokens = client.post(
            "/oauth2/token",
            data={"grant_type": "authorization_code", "code": code, "redirect_uri": REDIRECT_URI, **client_auth},
        ).json()

        active = client.post("/oauth2/introspect", data={"token": tokens["access_token"], **client_auth}).json()
        assert active["active"] is True
        assert active["client_id"] == registered_client["client_id"]

        revoked = client.post("/oauth2/revoke", data={"token": tokens["access_token"], **client_auth})
        assert revoked.status_code == 200

        inactive = client.post("/oauth2/introspect", data={"token": tokens["access_token"], **client_auth})
        assert inactive.json() == {"active": False}

    def test_introspect_requires_client_auth(self, client):
        response = client.post("/oauth2/introspect", data={"token": "anything"})

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_client"
