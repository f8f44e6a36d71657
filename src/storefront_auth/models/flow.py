"""Authorization flow models.

Contains the flow state machine states, the authorization request and the
result handed back to the caller of a login.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlencode

from storefront_auth.models.errors import OAuthFlowError
from storefront_auth.models.session import Customer


class FlowState(str, Enum):
    IDLE = "IDLE"
    AWAITING_AUTHORIZATION = "AWAITING_AUTHORIZATION"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    TIMED_OUT = "TIMED_OUT"


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters for the authorization code flow."""

    authorization_endpoint: str
    client_id: str
    redirect_uri: str
    scope: str
    code_challenge: str
    state: str
    code_challenge_method: str = "S256"

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL."""
        params = {
            "client_id": self.client_id,
            "scope": self.scope,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "state": self.state,
            "code_challenge": self.code_challenge,
            "code_challenge_method": self.code_challenge_method,
        }

        return f"{self.authorization_endpoint}?{urlencode(params)}"


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful login.

    ``session_persisted`` is False when the token exchange succeeded but the
    shared session cookie could not be written. The token is still usable for
    the lifetime of this controller; the checkout subdomain will not see it.
    """

    access_token: str
    expires_at: str
    id_token: str | None = None
    customer: Customer | None = None
    session_persisted: bool = True
    session_error: OAuthFlowError | None = field(default=None, compare=False)
