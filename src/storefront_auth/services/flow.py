"""Popup-based OAuth 2.0 authorization code flow with PKCE.

Drives one login at a time: open the popup, wait for the callback page to post
its result back, validate it, and bridge the resulting token into the shared
session cookie.

Exactly one of three event sources settles a pending flow:
- the message listener (success or error posted by the callback page)
- the popup watcher (user closed the popup)
- the deadline timer (no outcome in time)

Whichever fires first wins; the others are torn down and any late settlement
attempt is a no-op.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from storefront_auth.config import OAuthConfig
from storefront_auth.models.errors import (
    AuthorizationError,
    AuthorizationTimeoutError,
    FlowInProgressError,
    OAuthErrorType,
    OAuthFlowError,
    PopupBlockedError,
    SessionBridgeError,
    UserAuthCancelledError,
)
from storefront_auth.models.flow import AuthorizationRequest, FlowState, LoginResult
from storefront_auth.models.messages import (
    OAuthErrorMessage,
    OAuthSuccessMessage,
    parse_callback_message,
)
from storefront_auth.models.security import PKCEParameters
from storefront_auth.models.session import preview_token
from storefront_auth.services.channel import MessageChannel
from storefront_auth.services.pkce import PKCEManager
from storefront_auth.services.popup import (
    POPUP_FEATURES,
    POPUP_NAME,
    CancellationWatcher,
    Popup,
    PopupOpener,
)
from storefront_auth.services.session_bridge import SessionBridge
from storefront_auth.services.storage import FlowStorage

logger = logging.getLogger(__name__)

DEFAULT_FLOW_TIMEOUT = 5 * 60.0
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_COOKIE_GRACE_DELAY = 0.3

_TERMINAL_STATES = {
    OAuthErrorType.CANCELLED: FlowState.CANCELLED,
    OAuthErrorType.TIMEOUT: FlowState.TIMED_OUT,
}


class OAuthFlowController:
    """Owns the single login slot of one storefront tab.

    Create one per authentication owner, run flows through
    ``initiate_login``, and ``dispose`` it when done. Starting a login while
    another is pending raises ``FlowInProgressError`` and leaves the pending
    flow untouched.
    """

    def __init__(
        self,
        config: OAuthConfig,
        popup_opener: PopupOpener,
        session_bridge: SessionBridge,
        channel: MessageChannel | None = None,
        storage: FlowStorage | None = None,
        timeout: float = DEFAULT_FLOW_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        cookie_grace_delay: float = DEFAULT_COOKIE_GRACE_DELAY,
        on_state_change: Callable[[FlowState], None] | None = None,
    ):
        """Initialize the flow controller.

        Args:
            config: Client configuration, validated when a flow starts
            popup_opener: Opens the authorization popup
            session_bridge: Persists the obtained token
            channel: Inbound message channel; defaults to one filtered on the
                configured app origin
            storage: Flow-scoped verifier/state storage
            timeout: Overall flow deadline in seconds
            poll_interval: How often to check whether the popup was closed
            cookie_grace_delay: Pause after setting the cookie before
                reporting success
            on_state_change: Optional observer of state transitions
        """
        self.config = config
        self.channel = channel or MessageChannel(config.app_origin)
        self.storage = storage or FlowStorage()
        self.timeout = timeout
        self.cookie_grace_delay = cookie_grace_delay

        self._popup_opener = popup_opener
        self._session_bridge = session_bridge
        self._pkce_manager = PKCEManager()
        self._watcher = CancellationWatcher(poll_interval)
        self._on_state_change = on_state_change

        self._state = FlowState.IDLE
        self._pending: asyncio.Future[OAuthSuccessMessage] | None = None
        self._popup: Popup | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._timeout_handle: asyncio.TimerHandle | None = None
        self._disposed = False

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._pending is not None

    @property
    def session_bridge(self) -> SessionBridge:
        return self._session_bridge

    async def initiate_login(self) -> LoginResult:
        """Run one popup login to completion.

        Returns:
            LoginResult with the token payload posted by the callback page

        Raises:
            ConfigurationError: Client configuration is incomplete
            FlowInProgressError: Another login is still pending
            PopupBlockedError: The popup could not be opened
            AuthorizationError: The authority or callback reported a failure
            UserAuthCancelledError: The user closed the popup
            AuthorizationTimeoutError: No outcome before the deadline
        """
        if self._disposed:
            raise OAuthFlowError("Flow controller has been disposed")

        self.config.validate()

        if self._pending is not None:
            raise FlowInProgressError("A login flow is already in progress")

        # Claim the slot before the first suspension point.
        loop = asyncio.get_running_loop()
        pending: asyncio.Future[OAuthSuccessMessage] = loop.create_future()
        self._pending = pending

        try:
            try:
                params = await self._pkce_manager.generate_parameters()
                self._start(loop, pending, params)
                message = await pending
            finally:
                self._teardown()

            result = await self._complete(message)

        except OAuthFlowError as e:
            self._set_state(_TERMINAL_STATES.get(e.error_type, FlowState.FAILED))
            logger.info(f"Login flow ended with {e.error_type.value}: {e}")
            raise
        except asyncio.CancelledError:
            self._set_state(FlowState.CANCELLED)
            raise
        else:
            self._set_state(FlowState.SUCCEEDED)
            return result
        finally:
            self._pending = None
            self._set_state(FlowState.IDLE)

    async def dispose(self) -> None:
        """Reject any pending flow and release the session bridge."""
        self._disposed = True
        if self._pending is not None:
            self._settle(
                self._pending, error=UserAuthCancelledError("Login flow disposed")
            )
        await self._session_bridge.close()

    def _start(
        self,
        loop: asyncio.AbstractEventLoop,
        pending: asyncio.Future[OAuthSuccessMessage],
        params: PKCEParameters,
    ) -> None:
        self.storage.save(params)
        self.channel.reset()

        auth_url = AuthorizationRequest(
            authorization_endpoint=self.config.authorization_endpoint,
            client_id=self.config.client_id,
            redirect_uri=self.config.redirect_uri,
            scope=self.config.scope,
            code_challenge=params.code_challenge,
            state=params.state,
            code_challenge_method=params.code_challenge_method,
        ).build_authorization_url()

        popup = self._popup_opener.open(auth_url, POPUP_NAME, POPUP_FEATURES)
        if popup is None:
            raise PopupBlockedError("Popup was blocked by browser")

        self._popup = popup
        self._set_state(FlowState.AWAITING_AUTHORIZATION)
        logger.info("Opened login popup, awaiting authorization")

        self._tasks = [
            loop.create_task(self._listen(pending)),
            loop.create_task(self._watch_popup(pending, popup)),
        ]
        self._timeout_handle = loop.call_later(self.timeout, self._on_timeout, pending)

    async def _listen(self, pending: asyncio.Future[OAuthSuccessMessage]) -> None:
        while not pending.done():
            data = await self.channel.receive()
            self._handle_message(pending, data)

    def _handle_message(
        self, pending: asyncio.Future[OAuthSuccessMessage], data: Any
    ) -> None:
        message = parse_callback_message(data)
        if message is None:
            return

        if isinstance(message, OAuthSuccessMessage):
            if self._settle(pending, message=message):
                logger.info(
                    f"Received authorization result for token "
                    f"{preview_token(message.access_token)}"
                )
        elif isinstance(message, OAuthErrorMessage):
            reason = message.error or "OAuth authentication failed"
            if self._settle(pending, error=AuthorizationError(reason)):
                logger.warning(f"Authorization failed: {reason}")

    async def _watch_popup(
        self, pending: asyncio.Future[OAuthSuccessMessage], popup: Popup
    ) -> None:
        await self._watcher.wait_until_closed(popup)

        # The callback page closes itself right after posting its result.
        for data in self.channel.drain():
            self._handle_message(pending, data)

        if self._settle(
            pending, error=UserAuthCancelledError("Authentication cancelled by user")
        ):
            logger.info("Login popup closed before completion")

    def _on_timeout(self, pending: asyncio.Future[OAuthSuccessMessage]) -> None:
        if pending.done():
            return
        logger.warning(f"Login flow timed out after {self.timeout:.0f}s")
        self._close_popup()
        self._settle(pending, error=AuthorizationTimeoutError("Authentication timeout"))

    def _settle(
        self,
        pending: asyncio.Future[OAuthSuccessMessage],
        message: OAuthSuccessMessage | None = None,
        error: OAuthFlowError | None = None,
    ) -> bool:
        """Settle the pending flow once. Returns False if it already was."""
        if pending.done():
            return False
        if error is not None:
            pending.set_exception(error)
        else:
            pending.set_result(message)
        return True

    def _teardown(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks = []

        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

        self._close_popup()
        self._popup = None
        self.storage.clear()

    def _close_popup(self) -> None:
        popup = self._popup
        if popup is None or popup.closed:
            return
        try:
            popup.close()
        except Exception as e:
            logger.warning(f"Failed to close login popup: {e}")

    async def _complete(self, message: OAuthSuccessMessage) -> LoginResult:
        session_error: SessionBridgeError | None = None
        try:
            await self._session_bridge.persist_session(
                message.access_token, message.expires_at, message.customer
            )
        except SessionBridgeError as e:
            # The exchange itself succeeded; only the shared cookie is missing.
            session_error = e
            logger.warning(f"Logged in without a shared session cookie: {e}")
        else:
            if self.cookie_grace_delay > 0:
                await asyncio.sleep(self.cookie_grace_delay)

        return LoginResult(
            access_token=message.access_token,
            expires_at=message.expires_at,
            id_token=message.id_token or None,
            customer=message.customer,
            session_persisted=session_error is None,
            session_error=session_error,
        )

    def _set_state(self, state: FlowState) -> None:
        if state is self._state:
            return
        logger.debug(f"Login flow state {self._state.value} -> {state.value}")
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)
