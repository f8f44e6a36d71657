"""Storefront authentication API.

Serves the endpoints the login flow relies on:
- ``GET  {prefix}/callback``: authority redirect target, exchanges the code
- ``POST {prefix}/set-session``: sets the shared session cookie
- ``GET  {prefix}/profile``: customer of the current session, 401 if none
- ``GET  {prefix}/session``: session probe for the checkout subdomain
- ``POST {prefix}/logout``: clears the session cookie
"""

from __future__ import annotations

import argparse
import json
import logging
import secrets
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response
from starlette.routing import Route

from storefront_auth.config import OAuthConfig
from storefront_auth.models.errors import TokenExchangeError
from storefront_auth.models.session import (
    Customer,
    SessionToken,
    format_expires_at,
    preview_token,
)
from storefront_auth.models.tokens import TokenRequest
from storefront_auth.primitives.pkce import is_valid_code_verifier, is_valid_state
from storefront_auth.server.cookies import (
    clear_flow_cookies,
    clear_session_cookie,
    read_session_cookie,
    set_session_cookie,
)
from storefront_auth.server.pages import (
    render_bounce_page,
    render_error_page,
    render_result_page,
)
from storefront_auth.server.tokens import TokenExchangeClient, decode_id_token_customer

logger = logging.getLogger(__name__)


class AuthEndpoints:
    """Request handlers for the storefront authentication API."""

    def __init__(
        self, config: OAuthConfig, token_client: TokenExchangeClient | None = None
    ):
        self.config = config
        self._token_client = token_client or TokenExchangeClient()

    def routes(self) -> list[Route]:
        prefix = self.config.api_prefix
        return [
            Route(f"{prefix}/callback", self.callback, methods=["GET"]),
            Route(f"{prefix}/set-session", self.set_session, methods=["POST"]),
            Route(f"{prefix}/profile", self.profile, methods=["GET"]),
            Route(f"{prefix}/session", self.session, methods=["GET"]),
            Route(f"{prefix}/logout", self.logout, methods=["POST"]),
        ]

    async def callback(self, request: Request) -> Response:
        """Handle the authority's redirect back into the login popup."""
        origin = self.config.app_origin
        params = request.query_params

        error = params.get("error")
        if error:
            logger.error(f"OAuth error from authority: {error}")
            return HTMLResponse(render_error_page(error, origin), status_code=400)

        code = params.get("code")
        state = params.get("state")
        if not code or not state:
            return HTMLResponse(
                render_error_page("Missing required parameters", origin),
                status_code=400,
            )

        stored_state = params.get("stored_state")
        code_verifier = params.get("code_verifier")
        if not stored_state or not code_verifier:
            logger.debug("Callback without flow parameters, bouncing through opener")
            return HTMLResponse(render_bounce_page(origin))

        if not is_valid_state(state) or not secrets.compare_digest(
            stored_state, state
        ):
            logger.error("Invalid state parameter on callback")
            return HTMLResponse(
                render_error_page(
                    "Invalid state parameter - CSRF check failed", origin
                ),
                status_code=400,
            )

        if not is_valid_code_verifier(code_verifier):
            return HTMLResponse(
                render_error_page("Invalid code verifier", origin), status_code=400
            )

        if not self.config.is_configured:
            logger.error("Callback reached without complete OAuth configuration")
            return HTMLResponse(
                render_error_page("Server configuration error", origin),
                status_code=500,
            )

        token_request = TokenRequest(
            token_endpoint=self.config.token_endpoint,
            code=code,
            redirect_uri=self.config.redirect_uri,
            client_id=self.config.client_id,
            code_verifier=code_verifier,
        )

        try:
            token_response = await self._token_client.exchange_code_for_token(
                token_request
            )
        except TokenExchangeError as e:
            logger.error(f"Token exchange failed: {e}")
            return HTMLResponse(
                render_error_page("Token exchange failed", origin), status_code=400
            )

        session = SessionToken(
            access_token=token_response.access_token,
            expires_at=token_response.calculate_expires_at(),
            customer=decode_id_token_customer(token_response.id_token),
        )

        message = {
            "type": "OAUTH_SUCCESS",
            "access_token": session.access_token,
            "expires_at": format_expires_at(session.expires_at),
            "id_token": token_response.id_token or "",
        }
        if session.customer is not None:
            message["customer"] = session.customer.to_wire()

        response = HTMLResponse(render_result_page(message, origin))
        set_session_cookie(response, session, self.config)
        clear_flow_cookies(response)

        logger.info(
            f"Callback completed for token {preview_token(session.access_token)}"
        )
        return response

    async def set_session(self, request: Request) -> Response:
        """Set the shared session cookie from the opener window."""
        try:
            body = await request.json()
        except json.JSONDecodeError:
            return JSONResponse({"error": "Invalid JSON"}, status_code=400)

        if not isinstance(body, dict):
            return JSONResponse({"error": "Invalid request body"}, status_code=400)

        if not body.get("access_token") or not body.get("expires_at"):
            return JSONResponse(
                {
                    "error": "Missing required fields: access_token and "
                    "expires_at are required"
                },
                status_code=400,
            )

        try:
            session = SessionToken(
                access_token=body["access_token"],
                expires_at=body["expires_at"],
                customer=(
                    Customer.model_validate(body["customer"])
                    if body.get("customer")
                    else None
                ),
            )
        except ValidationError:
            return JSONResponse(
                {"error": "Invalid expires_at format. Must be ISO string or timestamp"},
                status_code=400,
            )

        expires_at = format_expires_at(session.expires_at)
        response = JSONResponse(
            {
                "success": True,
                "message": "Cookie set successfully",
                "expires_at": expires_at,
            }
        )
        set_session_cookie(response, session, self.config)

        logger.info(
            f"Session cookie set for token {session.token_preview()} "
            f"expiring at {expires_at}"
        )
        return response

    async def profile(self, request: Request) -> Response:
        session = read_session_cookie(request)
        if session is None or session.customer is None:
            return JSONResponse({"error": "Not authenticated"}, status_code=401)
        return JSONResponse(session.customer.to_wire())

    async def session(self, request: Request) -> Response:
        """Let the checkout subdomain ask whether the shopper is logged in."""
        session = read_session_cookie(request)
        if session is None or session.customer is None:
            return JSONResponse({"authenticated": False, "customer": None})
        return JSONResponse(
            {"authenticated": True, "customer": session.customer.to_wire()}
        )

    async def logout(self, request: Request) -> Response:
        response = JSONResponse({"success": True, "message": "Logged out successfully"})
        clear_session_cookie(response, self.config)
        return response

    async def close(self) -> None:
        await self._token_client.close()


def create_app(
    config: OAuthConfig | None = None, token_client: TokenExchangeClient | None = None
) -> Starlette:
    """Build the authentication API application."""
    config = config or OAuthConfig.from_env()
    if not config.is_configured:
        logger.warning(f"OAuth is not fully configured: {config.redacted()}")

    endpoints = AuthEndpoints(config, token_client)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        yield
        await endpoints.close()

    return Starlette(routes=endpoints.routes(), lifespan=lifespan)


def main() -> None:
    parser = argparse.ArgumentParser(description="Storefront authentication API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--log-level", default="info")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        create_app(), host=args.host, port=args.port, log_level=args.log_level
    )


if __name__ == "__main__":
    main()
