"""Session bridge between the login flow and the shared session cookie.

Runs in the opener's context: a cookie written from inside the popup would not
be visible to the storefront tab, so the token is posted back to the
storefront's own API, which sets a parent-domain cookie readable by the
checkout subdomain.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from storefront_auth.models.errors import ProfileFetchError, SessionBridgeError
from storefront_auth.models.session import Customer, SessionToken, preview_token

logger = logging.getLogger(__name__)


class SessionBridge:
    """Writes, reads and clears the session through same-origin API calls.

    The underlying client keeps a cookie jar, so the session cookie set by
    ``persist_session`` is sent along with later profile and logout calls.
    """

    def __init__(
        self,
        app_url: str,
        api_prefix: str = "/api/auth",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the session bridge.

        Args:
            app_url: Storefront base URL
            api_prefix: Path prefix of the session endpoints
            timeout: HTTP request timeout in seconds
            http_client: Optional preconfigured client (tests inject one)
        """
        self.app_url = app_url.rstrip("/")
        self.api_prefix = api_prefix
        self._http_client = http_client or httpx.AsyncClient(
            base_url=self.app_url, timeout=timeout
        )
        self._session: SessionToken | None = None

    def _url(self, endpoint: str) -> str:
        return f"{self.app_url}{self.api_prefix}/{endpoint}"

    def current_session(self) -> SessionToken | None:
        """Return the in-memory session, dropping it if it has expired."""
        if self._session is not None and self._session.is_expired():
            logger.info("In-memory session expired, discarding")
            self._session = None
        return self._session

    async def persist_session(
        self,
        access_token: str,
        expires_at: str,
        customer: Customer | None = None,
    ) -> None:
        """Ask the storefront API to set the shared session cookie.

        The token is kept in memory before the call is made, so a failed
        call still leaves the caller logged in for this controller's lifetime.

        Raises:
            SessionBridgeError: If the cookie could not be set
        """
        try:
            self._session = SessionToken(
                access_token=access_token, expires_at=expires_at, customer=customer
            )
        except ValidationError as e:
            raise SessionBridgeError(f"Invalid session payload: {e}") from e

        body = {
            "access_token": access_token,
            "expires_at": expires_at,
            "customer": customer.to_wire() if customer else None,
        }

        logger.debug(
            f"Persisting session for token {preview_token(access_token)} "
            f"expiring at {expires_at}"
        )

        try:
            response = await self._http_client.post(self._url("set-session"), json=body)
        except httpx.HTTPError as e:
            raise SessionBridgeError(f"HTTP error while setting session: {e}") from e

        if not response.is_success:
            raise SessionBridgeError(
                f"Setting session failed with {response.status_code}: {response.text}"
            )

        logger.info("Session cookie set for storefront and checkout")

    async def fetch_authenticated_profile(self) -> Customer | None:
        """Fetch the profile of the logged-in customer.

        Returns:
            The customer, or None when the session is missing or expired (401)

        Raises:
            ProfileFetchError: For any other failure
        """
        try:
            response = await self._http_client.get(self._url("profile"))
        except httpx.HTTPError as e:
            raise ProfileFetchError(f"HTTP error while fetching profile: {e}") from e

        if response.status_code == 401:
            logger.debug("Profile request not authenticated")
            self._session = None
            return None

        if not response.is_success:
            raise ProfileFetchError(
                f"Failed to fetch customer profile: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return Customer.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ProfileFetchError(
                f"Invalid profile response: {e}", status_code=response.status_code
            ) from e

    async def logout(self) -> bool:
        """Clear the session cookie.

        In-memory UI state is the caller's to reset.

        Returns:
            True if the storefront API confirmed the logout
        """
        self._session = None
        try:
            response = await self._http_client.post(self._url("logout"))
        except httpx.HTTPError as e:
            logger.error(f"Logout request failed: {e}")
            return False

        if not response.is_success:
            logger.error(f"Logout failed with {response.status_code}")
            return False

        logger.info("Logged out")
        return True

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
