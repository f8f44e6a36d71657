"""Token endpoint models for the authorization code exchange.

The storefront is a public client: the exchange proves possession of the
PKCE code verifier instead of presenting a client secret.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel


@dataclass(frozen=True)
class TokenRequest:
    """Authorization code exchange request (RFC 6749 Section 4.1.3)."""

    token_endpoint: str
    code: str
    redirect_uri: str
    client_id: str
    code_verifier: str = field(repr=False)  # RFC 7636 PKCE

    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request.

        Token requests must use form encoding, not JSON (RFC 6749 Section 4.1.3).
        """
        return {
            "grant_type": self.grant_type,
            "client_id": self.client_id,
            "code": self.code,
            "code_verifier": self.code_verifier,
            "redirect_uri": self.redirect_uri,
        }


class TokenResponse(BaseModel):
    """Token endpoint response, success (5.1) or error (5.2)."""

    access_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None
    id_token: str | None = None
    refresh_token: str | None = None
    scope: str | None = None

    error: str | None = None
    error_description: str | None = None

    def is_success(self) -> bool:
        return self.error is None and bool(self.access_token)

    def calculate_expires_at(self, now: datetime | None = None) -> datetime:
        """Absolute expiry derived from ``expires_in``.

        Tokens without an ``expires_in`` are given one hour.
        """
        now = now or datetime.now(timezone.utc)
        seconds = self.expires_in if self.expires_in is not None else 3600
        return now + timedelta(seconds=seconds)
