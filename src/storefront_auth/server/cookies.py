"""Session cookie handling for the storefront API.

The session cookie is scoped to the shared parent domain so the checkout
subdomain sees the same identity. It is HttpOnly and SameSite=Lax: it
survives the top-level navigation into checkout but is neither readable from
script nor sent on cross-site subrequests.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from starlette.requests import Request
from starlette.responses import Response

from storefront_auth.config import OAuthConfig
from storefront_auth.models.session import SessionToken

logger = logging.getLogger(__name__)

SESSION_COOKIE = "shopify_access_token"
FLOW_COOKIES = ("oauth_state", "oauth_code_verifier")


def set_session_cookie(
    response: Response, session: SessionToken, config: OAuthConfig
) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        session.to_cookie_value(),
        expires=session.expires_at.astimezone(timezone.utc),
        path="/",
        domain=config.cookie_domain,
        secure=config.cookie_secure,
        httponly=True,
        samesite="lax",
    )


def clear_session_cookie(response: Response, config: OAuthConfig) -> None:
    response.delete_cookie(
        SESSION_COOKIE,
        path="/",
        domain=config.cookie_domain,
        secure=config.cookie_secure,
        httponly=True,
        samesite="lax",
    )


def clear_flow_cookies(response: Response) -> None:
    for name in FLOW_COOKIES:
        response.delete_cookie(name, path="/")


def read_session_cookie(
    request: Request, now: datetime | None = None
) -> SessionToken | None:
    """Return the unexpired session carried by the request, if any."""
    value = request.cookies.get(SESSION_COOKIE)
    if not value:
        return None

    session = SessionToken.from_cookie_value(value)
    if session is None:
        logger.warning("Failed to decode session cookie")
        return None

    if session.is_expired(now):
        logger.debug("Session cookie carries an expired token")
        return None

    return session
