"""Security-related models for the storefront login flow.

Contains the PKCE parameters generated fresh for every authorization attempt.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from storefront_auth.primitives.pkce import is_valid_code_verifier, is_valid_state


@dataclass(frozen=True)
class PKCEParameters:
    """PKCE (Proof Key for Code Exchange) parameters for one login attempt.

    Immutable so an attempt can never be re-bound to another verifier or state
    (RFC 7636).
    """

    code_verifier: str = field(repr=False)
    code_challenge: str = field()
    state: str = field()
    code_challenge_method: str = field(default="S256")

    def __post_init__(self) -> None:
        """Validate PKCE parameters meet RFC 7636 requirements."""
        if not is_valid_code_verifier(self.code_verifier):
            raise ValueError("code_verifier must be 43-128 base64url characters")
        if not (43 <= len(self.code_challenge) <= 128):
            raise ValueError("code_challenge must be 43-128 characters")
        if not is_valid_state(self.state):
            raise ValueError("state must be 16-64 base64url characters")
        if self.code_challenge_method != "S256":
            raise ValueError("Only S256 code challenge method is supported")
