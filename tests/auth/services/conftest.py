import asyncio
from unittest.mock import MagicMock

import pytest

from storefront_auth.config import OAuthConfig
from storefront_auth.models.flow import FlowState
from storefront_auth.services.flow import OAuthFlowController
from storefront_auth.services.session_bridge import SessionBridge

APP_URL = "https://www.fairybloom.cz"
APP_ORIGIN = "https://www.fairybloom.cz"


class FakePopup:
    """Popup window stand-in; tests flip ``closed`` to simulate the user."""

    def __init__(self, url: str):
        self.url = url
        self.closed = False
        self.close_calls = 0

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True


class FakePopupOpener:
    def __init__(self, blocked: bool = False):
        self.blocked = blocked
        self.opened: list[tuple[str, str, str]] = []
        self.popups: list[FakePopup] = []

    def open(self, url: str, name: str, features: str) -> FakePopup | None:
        self.opened.append((url, name, features))
        if self.blocked:
            return None
        popup = FakePopup(url)
        self.popups.append(popup)
        return popup


def make_config(**overrides) -> OAuthConfig:
    values = {
        "client_id": "client-123",
        "shop_id": "12345",
        "app_url": APP_URL,
    }
    values.update(overrides)
    return OAuthConfig(**values)


class BaseFlowTest:
    timeout = 1.0
    poll_interval = 0.01

    @pytest.fixture(autouse=True)
    def setup_fixtures(self):
        self.config = make_config()
        self.opener = FakePopupOpener()
        self.bridge = MagicMock(spec=SessionBridge)
        self.states: list[FlowState] = []
        self.controller = OAuthFlowController(
            self.config,
            self.opener,
            self.bridge,
            timeout=self.timeout,
            poll_interval=self.poll_interval,
            cookie_grace_delay=0,
            on_state_change=self.states.append,
        )

    async def wait_for_popup(self, count: int = 1) -> FakePopup:
        """Wait until the controller has opened ``count`` popups."""
        for _ in range(200):
            if len(self.opener.popups) >= count:
                return self.opener.popups[count - 1]
            await asyncio.sleep(0.001)
        raise AssertionError("Popup was never opened")

    def success_message(self, **overrides) -> dict:
        message = {
            "type": "OAUTH_SUCCESS",
            "access_token": "tok_abc",
            "expires_at": "2025-01-01T00:00:00Z",
        }
        message.update(overrides)
        return message
