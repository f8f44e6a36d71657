"""Authorization code exchange against the identity authority's token endpoint."""

from __future__ import annotations

import base64
import binascii
import json
import logging

import httpx
from pydantic import ValidationError

from storefront_auth.models.errors import TokenExchangeError
from storefront_auth.models.session import Customer
from storefront_auth.models.tokens import TokenRequest, TokenResponse

logger = logging.getLogger(__name__)


class TokenExchangeClient:
    """Exchanges authorization codes for access tokens.

    Uses application/x-www-form-urlencoded encoding as required by RFC 6749.
    """

    def __init__(
        self, timeout: float = 30.0, http_client: httpx.AsyncClient | None = None
    ):
        self.timeout = timeout
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def exchange_code_for_token(
        self, token_request: TokenRequest
    ) -> TokenResponse:
        """Exchange an authorization code for an access token.

        Raises:
            TokenExchangeError: If the authority rejects the exchange or the
                response is unusable
        """
        logger.debug(f"Exchanging authorization code at {token_request.token_endpoint}")

        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }

        try:
            response = await self._http_client.post(
                token_request.token_endpoint,
                data=token_request.to_form_data(),
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"HTTP error during token exchange: {e}") from e

        if not response.is_success:
            logger.error(
                f"Token exchange failed with {response.status_code}: {response.text}"
            )
            raise TokenExchangeError(
                f"Token exchange failed with status {response.status_code}"
            )

        try:
            token_response = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TokenExchangeError(f"Invalid token response format: {e}") from e

        if not token_response.is_success():
            raise TokenExchangeError(
                f"No access token received: {token_response.error or 'unknown_error'}"
            )

        logger.info("Token exchange successful")
        return token_response

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()


def decode_id_token_customer(id_token: str | None) -> Customer | None:
    """Project the customer identity out of an OpenID Connect id_token.

    The token arrived directly from the token endpoint over TLS, so its
    payload is read without signature verification.
    """
    if not id_token:
        return None

    try:
        payload_segment = id_token.split(".")[1]
        padded = payload_segment + "=" * (-len(payload_segment) % 4)
        claims = json.loads(base64.urlsafe_b64decode(padded))
    except (IndexError, binascii.Error, ValueError) as e:
        logger.error(f"Failed to decode id_token: {e}")
        return None

    if not isinstance(claims, dict):
        return None

    try:
        return Customer(
            id=claims.get("sub"),
            email=claims.get("email"),
            first_name=claims.get("given_name") or "",
            last_name=claims.get("family_name") or "",
        )
    except ValidationError as e:
        logger.error(f"Unexpected id_token claims: {e.error_count()} errors")
        return None
