"""Flow-scoped storage for the PKCE verifier and state of one login attempt."""

from __future__ import annotations

import logging
import secrets

from storefront_auth.models.security import PKCEParameters

logger = logging.getLogger(__name__)


class FlowStorage:
    """Holds the parameters of at most one in-flight authorization attempt.

    Stands in for the opener window's ``sessionStorage``, where the callback
    bounce page reads them back under the keys ``oauth_state`` and
    ``oauth_code_verifier``. The verifier is only handed out for the state
    it was stored with, so a stale or forged state never yields one.
    """

    def __init__(self):
        self._params: PKCEParameters | None = None

    def save(self, params: PKCEParameters) -> None:
        if self._params is not None:
            logger.debug("Replacing parameters of an abandoned flow attempt")
        self._params = params

    @property
    def current_state(self) -> str | None:
        return self._params.state if self._params else None

    def code_verifier_for(self, state: str) -> str | None:
        """Return the stored verifier if ``state`` matches the stored state."""
        if self._params is None:
            return None
        if not secrets.compare_digest(self._params.state, state):
            return None
        return self._params.code_verifier

    def has_pending(self) -> bool:
        return self._params is not None

    def clear(self) -> None:
        self._params = None
