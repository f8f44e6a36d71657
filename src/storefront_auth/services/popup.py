"""Popup window seam and the watcher that notices a popup being closed."""

from __future__ import annotations

import asyncio
from typing import Protocol

POPUP_NAME = "shopify-oauth"
POPUP_FEATURES = "width=500,height=600,scrollbars=yes,resizable=yes"


class Popup(Protocol):
    """A secondary window owned by the flow controller."""

    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...


class PopupOpener(Protocol):
    """Opens popups. Returns None when the browser blocks the popup."""

    def open(self, url: str, name: str, features: str) -> Popup | None: ...


class CancellationWatcher:
    """Polls a popup until it reports closed."""

    def __init__(self, poll_interval: float = 1.0):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.poll_interval = poll_interval

    async def wait_until_closed(self, popup: Popup) -> None:
        while not popup.closed:
            await asyncio.sleep(self.poll_interval)
