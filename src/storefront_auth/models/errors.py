"""Exception hierarchy for the storefront OAuth 2.0 + PKCE login flow.

Every error carries an ``OAuthErrorType`` so callers can pick the right
user-facing remediation without matching on message text.
"""

from __future__ import annotations

from enum import Enum


class OAuthErrorType(str, Enum):
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    OAUTH_ERROR = "OAUTH_ERROR"
    POPUP_BLOCKED = "POPUP_BLOCKED"
    CANCELLED = "CANCELLED"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    FLOW_IN_PROGRESS = "FLOW_IN_PROGRESS"


_USER_MESSAGES = {
    OAuthErrorType.POPUP_BLOCKED: (
        "Popup was blocked. Please allow popups for this site and try again."
    ),
    OAuthErrorType.CANCELLED: "Login was cancelled.",
    OAuthErrorType.TIMEOUT: "Login timed out. Please try again.",
    OAuthErrorType.FLOW_IN_PROGRESS: "A login window is already open.",
}

_DEFAULT_USER_MESSAGE = "Something went wrong while logging in. Please try again."


class OAuthFlowError(Exception):
    """Base exception for all login flow errors."""

    error_type: OAuthErrorType = OAuthErrorType.OAUTH_ERROR

    def __init__(self, message: str, error_type: OAuthErrorType | None = None):
        super().__init__(message)
        if error_type is not None:
            self.error_type = error_type

    @property
    def user_message(self) -> str:
        """Text suitable for showing to the shopper."""
        return _USER_MESSAGES.get(self.error_type, _DEFAULT_USER_MESSAGE)


class ConfigurationError(OAuthFlowError):
    """Raised when required client configuration is missing."""

    error_type = OAuthErrorType.CONFIGURATION_ERROR


class PKCEError(OAuthFlowError):
    """Raised when PKCE parameter generation or validation fails."""

    pass


class PopupBlockedError(OAuthFlowError):
    """Raised when the browser refuses to open the login popup."""

    error_type = OAuthErrorType.POPUP_BLOCKED


class AuthorizationError(OAuthFlowError):
    """Raised when the identity authority or the callback reports a failure."""

    pass


class UserAuthCancelledError(OAuthFlowError):
    """Raised when the user closes the popup before the flow completes."""

    error_type = OAuthErrorType.CANCELLED


class AuthorizationTimeoutError(OAuthFlowError):
    """Raised when no terminal outcome arrives within the flow deadline."""

    error_type = OAuthErrorType.TIMEOUT


class FlowInProgressError(OAuthFlowError):
    """Raised when a login is started while another one is still pending."""

    error_type = OAuthErrorType.FLOW_IN_PROGRESS


class SessionBridgeError(OAuthFlowError):
    """Raised when the session cookie could not be written or cleared."""

    error_type = OAuthErrorType.NETWORK_ERROR


class ProfileFetchError(OAuthFlowError):
    """Raised when the profile endpoint fails for a reason other than 401."""

    error_type = OAuthErrorType.NETWORK_ERROR

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TokenExchangeError(OAuthFlowError):
    """Raised when the authorization code cannot be exchanged for a token."""

    pass
