"""High-level storefront authentication client.

Ties the flow controller and the session bridge together behind the three
operations the storefront UI needs: log in, fetch the profile, log out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from storefront_auth.config import OAuthConfig
from storefront_auth.models.errors import OAuthErrorType, OAuthFlowError
from storefront_auth.models.flow import LoginResult
from storefront_auth.models.session import Customer
from storefront_auth.services.flow import OAuthFlowController
from storefront_auth.services.popup import PopupOpener
from storefront_auth.services.session_bridge import SessionBridge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginOutcome:
    """What the UI needs to render after a login attempt."""

    success: bool
    result: LoginResult | None = None
    customer: Customer | None = None
    error_type: OAuthErrorType | None = None
    error: str | None = None


class StorefrontAuthClient:
    def __init__(self, controller: OAuthFlowController):
        self.controller = controller
        self.customer: Customer | None = None

    @classmethod
    def create(
        cls,
        config: OAuthConfig,
        popup_opener: PopupOpener,
        timeout: float = 10.0,
    ) -> StorefrontAuthClient:
        """Build a client with a session bridge bound to the app URL."""
        bridge = SessionBridge(
            config.app_url or "", api_prefix=config.api_prefix, timeout=timeout
        )
        return cls(OAuthFlowController(config, popup_opener, bridge))

    @property
    def session_bridge(self) -> SessionBridge:
        return self.controller.session_bridge

    async def login(self) -> LoginOutcome:
        """Log in through the popup flow and load the customer profile.

        Never raises for flow errors; the outcome carries the error type and
        a message suitable for the shopper.
        """
        try:
            result = await self.controller.initiate_login()
        except OAuthFlowError as e:
            logger.warning(f"Login failed ({e.error_type.value}): {e}")
            return LoginOutcome(
                success=False, error_type=e.error_type, error=e.user_message
            )

        customer = result.customer
        if result.session_persisted:
            try:
                customer = await self.fetch_profile() or customer
            except OAuthFlowError as e:
                logger.warning(f"Logged in but profile could not be loaded: {e}")

        self.customer = customer
        return LoginOutcome(success=True, result=result, customer=customer)

    async def fetch_profile(self) -> Customer | None:
        self.customer = await self.session_bridge.fetch_authenticated_profile()
        return self.customer

    async def logout(self) -> bool:
        self.customer = None
        return await self.session_bridge.logout()

    async def close(self) -> None:
        await self.controller.dispose()
