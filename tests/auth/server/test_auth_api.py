"""Tests for the storefront authentication API.

Covers the callback leg of the login flow and the session endpoints the
session bridge talks to.
"""

import base64
import json
from unittest.mock import MagicMock

from starlette.testclient import TestClient

from storefront_auth.config import OAuthConfig
from storefront_auth.models.errors import TokenExchangeError
from storefront_auth.models.session import Customer, SessionToken
from storefront_auth.models.tokens import TokenRequest, TokenResponse
from storefront_auth.server.app import create_app
from storefront_auth.server.cookies import SESSION_COOKIE
from storefront_auth.server.tokens import TokenExchangeClient

STATE = "Yq3v0mU8kX2bT7cR1nW5aE9sL4dH6fJ0"
VERIFIER = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"


def make_id_token(claims: dict) -> str:
    def segment(data: dict) -> str:
        raw = json.dumps(data).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    return f"{segment({'alg': 'RS256'})}.{segment(claims)}.signature"


def make_config(**overrides) -> OAuthConfig:
    values = {
        "client_id": "client-123",
        "shop_id": "12345",
        "app_url": "https://www.fairybloom.cz",
    }
    values.update(overrides)
    return OAuthConfig(**values)


class ApiTest:
    def setup_method(self):
        self.token_client = MagicMock(spec=TokenExchangeClient)
        self.config = make_config()
        self.client = self.make_client(self.config)

    def make_client(self, config: OAuthConfig) -> TestClient:
        app = create_app(config, token_client=self.token_client)
        return TestClient(app, base_url="https://www.fairybloom.cz")

    def set_session(self, **body) -> None:
        payload = {"access_token": "tok_abc", "expires_at": "2099-01-01T00:00:00Z"}
        payload.update(body)
        response = self.client.post("/api/auth/set-session", json=payload)
        assert response.status_code == 200


class TestCallback(ApiTest):
    def callback(self, **params):
        return self.client.get("/api/auth/callback", params=params)

    def test_authority_error_posts_oauth_error(self):
        # Act
        response = self.callback(error="access_denied", state=STATE)

        # Assert
        assert response.status_code == 400
        assert '"OAUTH_ERROR"' in response.text
        assert '"access_denied"' in response.text
        assert '"https://www.fairybloom.cz"' in response.text

    def test_missing_code_is_rejected(self):
        # Act
        response = self.callback(state=STATE)

        # Assert
        assert response.status_code == 400
        assert "Missing required parameters" in response.text

    def test_without_flow_parameters_bounces_through_opener(self):
        # Act
        response = self.callback(code="code-1", state=STATE)

        # Assert
        assert response.status_code == 200
        assert "window.opener.sessionStorage" in response.text
        assert "oauth_code_verifier" in response.text
        self.token_client.exchange_code_for_token.assert_not_called()

    def test_state_mismatch_is_rejected_without_exchange(self):
        # Act
        response = self.callback(
            code="code-1",
            state=STATE,
            stored_state="Zz9v0mU8kX2bT7cR1nW5aE9sL4dH6fJ0",
            code_verifier=VERIFIER,
        )

        # Assert
        assert response.status_code == 400
        assert "CSRF check failed" in response.text
        self.token_client.exchange_code_for_token.assert_not_called()

    def test_malformed_verifier_is_rejected(self):
        # Act
        response = self.callback(
            code="code-1", state=STATE, stored_state=STATE, code_verifier="short"
        )

        # Assert
        assert response.status_code == 400
        assert "Invalid code verifier" in response.text

    def test_unconfigured_server_reports_configuration_error(self):
        # Arrange
        client = self.make_client(make_config(client_id=None))

        # Act
        response = client.get(
            "/api/auth/callback",
            params={
                "code": "code-1",
                "state": STATE,
                "stored_state": STATE,
                "code_verifier": VERIFIER,
            },
        )

        # Assert
        assert response.status_code == 500
        assert "Server configuration error" in response.text

    def test_successful_exchange_sets_cookie_and_posts_success(self):
        # Arrange
        client = self.make_client(make_config(cookie_domain=".fairybloom.cz"))
        id_token = make_id_token(
            {
                "sub": 23325479567704,
                "email": "jana@example.com",
                "given_name": "Jana",
                "family_name": "Novakova",
            }
        )
        self.token_client.exchange_code_for_token.return_value = TokenResponse(
            access_token="tok_abc", expires_in=3600, id_token=id_token
        )

        # Act
        response = client.get(
            "/api/auth/callback",
            params={
                "code": "code-1",
                "state": STATE,
                "stored_state": STATE,
                "code_verifier": VERIFIER,
            },
        )

        # Assert - exchange request
        self.token_client.exchange_code_for_token.assert_awaited_once_with(
            TokenRequest(
                token_endpoint="https://shopify.com/12345/auth/oauth/token",
                code="code-1",
                redirect_uri="https://www.fairybloom.cz/api/auth/callback",
                client_id="client-123",
                code_verifier=VERIFIER,
            )
        )

        # Assert - page
        assert response.status_code == 200
        assert '"OAUTH_SUCCESS"' in response.text
        assert '"tok_abc"' in response.text
        assert '"jana@example.com"' in response.text
        assert '"23325479567704"' in response.text

        # Assert - cookies
        set_cookies = response.headers.get_list("set-cookie")
        session_cookie = next(
            c for c in set_cookies if c.startswith(f"{SESSION_COOKIE}=")
        )
        lowered = session_cookie.lower()
        assert "httponly" in lowered
        assert "secure" in lowered
        assert "samesite=lax" in lowered
        assert "domain=.fairybloom.cz" in lowered
        assert "path=/" in lowered
        assert any(c.startswith("oauth_state=") for c in set_cookies)
        assert any(c.startswith("oauth_code_verifier=") for c in set_cookies)

    def test_exchange_failure_posts_oauth_error(self):
        # Arrange
        self.token_client.exchange_code_for_token.side_effect = TokenExchangeError(
            "Token exchange failed with status 400"
        )

        # Act
        response = self.callback(
            code="code-1", state=STATE, stored_state=STATE, code_verifier=VERIFIER
        )

        # Assert
        assert response.status_code == 400
        assert "Token exchange failed" in response.text
        assert SESSION_COOKIE not in response.headers.get("set-cookie", "")

    def test_unexpected_id_token_claims_still_post_success(self):
        # Arrange
        self.token_client.exchange_code_for_token.return_value = TokenResponse(
            access_token="tok_abc",
            expires_in=3600,
            id_token=make_id_token({"sub": 1, "email": ["x"]}),
        )

        # Act
        response = self.callback(
            code="code-1", state=STATE, stored_state=STATE, code_verifier=VERIFIER
        )

        # Assert
        assert response.status_code == 200
        assert '"OAUTH_SUCCESS"' in response.text
        assert '"customer"' not in response.text

    def test_script_injection_in_error_is_escaped(self):
        # Act
        response = self.callback(error="</script><script>alert(1)</script>")

        # Assert
        assert "</script><script>alert(1)" not in response.text
        assert "\\u003c/script\\u003e" in response.text


class TestSetSession(ApiTest):
    def test_sets_cookie_and_echoes_expiry(self):
        # Act
        response = self.client.post(
            "/api/auth/set-session",
            json={
                "access_token": "tok_abc",
                "expires_at": "2099-01-01T00:00:00Z",
                "customer": {"sub": "42", "email": "jana@example.com"},
            },
        )

        # Assert
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Cookie set successfully",
            "expires_at": "2099-01-01T00:00:00.000Z",
        }
        assert response.headers["set-cookie"].startswith(f"{SESSION_COOKIE}=")

    def test_accepts_epoch_milliseconds(self):
        # Act
        response = self.client.post(
            "/api/auth/set-session",
            json={"access_token": "tok_abc", "expires_at": 4070908800000},
        )

        # Assert
        assert response.status_code == 200
        assert response.json()["expires_at"] == "2099-01-01T00:00:00.000Z"

    def test_missing_fields_are_rejected(self):
        # Act
        response = self.client.post(
            "/api/auth/set-session", json={"access_token": "tok_abc"}
        )

        # Assert
        assert response.status_code == 400
        assert "required" in response.json()["error"]

    def test_invalid_expiry_is_rejected(self):
        # Act
        response = self.client.post(
            "/api/auth/set-session",
            json={"access_token": "tok_abc", "expires_at": "next tuesday"},
        )

        # Assert
        assert response.status_code == 400
        assert "expires_at" in response.json()["error"]

    def test_out_of_range_epoch_is_rejected(self):
        # Act
        response = self.client.post(
            "/api/auth/set-session",
            json={"access_token": "tok_abc", "expires_at": 1e20},
        )

        # Assert
        assert response.status_code == 400
        assert "expires_at" in response.json()["error"]
        assert "set-cookie" not in response.headers

    def test_invalid_json_is_rejected(self):
        # Act
        response = self.client.post(
            "/api/auth/set-session",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        # Assert
        assert response.status_code == 400

    def test_get_is_not_allowed(self):
        assert self.client.get("/api/auth/set-session").status_code == 405


class TestProfileAndSession(ApiTest):
    def test_profile_without_cookie_is_401(self):
        # Act
        response = self.client.get("/api/auth/profile")

        # Assert
        assert response.status_code == 401
        assert response.json() == {"error": "Not authenticated"}

    def test_profile_with_cookie_returns_customer(self):
        # Arrange
        self.set_session(customer={"sub": "42", "email": "jana@example.com"})

        # Act
        response = self.client.get("/api/auth/profile")

        # Assert
        assert response.status_code == 200
        assert response.json() == {"id": "42", "email": "jana@example.com"}

    def test_expired_cookie_is_not_authenticated(self):
        # Arrange
        expired = SessionToken(
            access_token="tok_abc",
            expires_at="2000-01-01T00:00:00Z",
            customer=Customer(id="42"),
        )
        self.client.cookies.set(SESSION_COOKIE, expired.to_cookie_value())

        # Act
        response = self.client.get("/api/auth/profile")

        # Assert
        assert response.status_code == 401

    def test_garbage_cookie_is_not_authenticated(self):
        # Arrange
        self.client.cookies.set(SESSION_COOKIE, "garbage!")

        # Act & Assert
        assert self.client.get("/api/auth/profile").status_code == 401

    def test_session_probe_for_checkout(self):
        # Act
        anonymous = self.client.get("/api/auth/session")
        self.set_session(customer={"sub": "42", "firstName": "Jana"})
        authenticated = self.client.get("/api/auth/session")

        # Assert
        assert anonymous.json() == {"authenticated": False, "customer": None}
        assert authenticated.json() == {
            "authenticated": True,
            "customer": {"id": "42", "firstName": "Jana"},
        }


class TestLogout(ApiTest):
    def test_logout_expires_cookie(self):
        # Arrange
        self.set_session(customer={"sub": "42"})

        # Act
        response = self.client.post("/api/auth/logout")

        # Assert
        assert response.status_code == 200
        assert response.json()["success"] is True
        cookie = response.headers["set-cookie"].lower()
        assert cookie.startswith(f"{SESSION_COOKIE}=")
        assert "max-age=0" in cookie
        assert self.client.get("/api/auth/profile").status_code == 401

    def test_get_is_not_allowed(self):
        assert self.client.get("/api/auth/logout").status_code == 405
