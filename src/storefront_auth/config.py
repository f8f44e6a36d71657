"""Client configuration for the storefront login flow.

Values come from the environment (optionally a ``.env`` file). Missing values
are not an error until a flow is started, so the rest of the storefront can
run without customer accounts configured.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from dotenv import load_dotenv

from storefront_auth.models.errors import ConfigurationError

logger = logging.getLogger(__name__)

BASE_SCOPES = ("openid", "email")
DEFAULT_API_PREFIX = "/api/auth"
AUTHORITY_URL = "https://shopify.com"


@dataclass(frozen=True)
class OAuthConfig:
    client_id: str | None = None
    shop_id: str | None = None
    app_url: str | None = None
    extra_scopes: tuple[str, ...] = field(default_factory=tuple)
    cookie_domain: str | None = None
    cookie_secure: bool = True
    api_prefix: str = DEFAULT_API_PREFIX

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> OAuthConfig:
        """Build configuration from environment variables.

        Reads SHOPIFY_OAUTH_CLIENT_ID, SHOPIFY_SHOP_ID, APP_URL,
        OAUTH_EXTRA_SCOPES, COOKIE_DOMAIN and COOKIE_SECURE.
        """
        load_dotenv(dotenv_path)

        extra_scopes = tuple(os.getenv("OAUTH_EXTRA_SCOPES", "").split())
        cookie_secure = os.getenv("COOKIE_SECURE", "true").strip().lower() not in (
            "0",
            "false",
            "no",
        )

        return cls(
            client_id=os.getenv("SHOPIFY_OAUTH_CLIENT_ID") or None,
            shop_id=os.getenv("SHOPIFY_SHOP_ID") or None,
            app_url=(os.getenv("APP_URL") or "").rstrip("/") or None,
            extra_scopes=extra_scopes,
            cookie_domain=os.getenv("COOKIE_DOMAIN") or None,
            cookie_secure=cookie_secure,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.shop_id and self.app_url)

    def validate(self) -> None:
        """Raise ConfigurationError naming every missing setting."""
        missing = [
            name
            for name, value in (
                ("SHOPIFY_OAUTH_CLIENT_ID", self.client_id),
                ("SHOPIFY_SHOP_ID", self.shop_id),
                ("APP_URL", self.app_url),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing OAuth configuration: {', '.join(missing)}"
            )

        parsed = urlparse(self.app_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(f"APP_URL is not an absolute URL: {self.app_url}")

    @property
    def app_origin(self) -> str:
        """Origin (scheme://host[:port]) of the storefront."""
        parsed = urlparse(self.app_url or "")
        return f"{parsed.scheme}://{parsed.netloc}"

    @property
    def scopes(self) -> tuple[str, ...]:
        ordered: list[str] = []
        for scope in (*BASE_SCOPES, *self.extra_scopes):
            if scope not in ordered:
                ordered.append(scope)
        return tuple(ordered)

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)

    @property
    def redirect_uri(self) -> str:
        return f"{(self.app_url or '').rstrip('/')}{self.api_prefix}/callback"

    @property
    def authorization_endpoint(self) -> str:
        return f"{AUTHORITY_URL}/{self.shop_id}/auth/oauth/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{AUTHORITY_URL}/{self.shop_id}/auth/oauth/token"

    def redacted(self) -> dict[str, object]:
        """Configuration view that is safe to log."""
        return {
            "client_id": "***" if self.client_id else None,
            "shop_id": self.shop_id,
            "app_url": self.app_url,
            "scopes": list(self.scopes),
            "response_type": "code",
            "code_challenge_method": "S256",
        }
