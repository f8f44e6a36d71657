"""PKCE parameter manager for the storefront login flow."""

from __future__ import annotations

import logging

from storefront_auth.models.errors import PKCEError
from storefront_auth.models.security import PKCEParameters
from storefront_auth.primitives.pkce import (
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
    is_valid_code_verifier,
    is_valid_state,
)

logger = logging.getLogger(__name__)


class PKCEManager:
    """Generates the verifier/challenge/state triple for each login attempt.

    Parameters are re-checked after generation so a generator bug fails here
    instead of producing a malformed authorization request.
    """

    async def generate_parameters(self) -> PKCEParameters:
        """Generate new PKCE parameters for an authorization flow.

        Returns:
            PKCEParameters: Immutable parameters for the authorization flow

        Raises:
            PKCEError: If parameter generation fails
        """
        try:
            code_verifier = generate_code_verifier()
            code_challenge = await generate_code_challenge(code_verifier)
            state = generate_state()
        except Exception as e:
            raise PKCEError(f"Failed to generate PKCE parameters: {e}") from e

        if not is_valid_code_verifier(code_verifier) or not is_valid_state(state):
            raise PKCEError("Failed to generate valid PKCE parameters")

        logger.debug("Generated fresh PKCE parameters")
        return PKCEParameters(
            code_verifier=code_verifier,
            code_challenge=code_challenge,
            state=state,
        )
