"""Origin-filtered inbound message channel.

Stands in for the opener window's ``message`` event: the popup posts into it,
the flow controller reads out of it. Messages from any origin other than the
configured one never reach the queue.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)


class MessageChannel:
    def __init__(self, allowed_origin: str):
        self.allowed_origin = allowed_origin
        self._queue: asyncio.Queue[Any] = asyncio.Queue()

    def post(self, data: Any, origin: str) -> bool:
        """Deliver a message as if posted from ``origin``.

        Returns:
            True if the message was accepted, False if it was dropped
        """
        if origin != self.allowed_origin:
            # Only the origin is logged; the payload is untrusted.
            logger.debug(f"Dropping message from unexpected origin {origin!r}")
            return False

        self._queue.put_nowait(data)
        return True

    async def receive(self) -> Any:
        return await self._queue.get()

    def drain(self) -> list[Any]:
        """Take every message that is already queued without waiting."""
        messages = []
        while not self._queue.empty():
            messages.append(self._queue.get_nowait())
        return messages

    def reset(self) -> None:
        """Discard queued messages left over from a previous flow."""
        dropped = len(self.drain())
        if dropped:
            logger.debug(f"Discarded {dropped} stale message(s)")
