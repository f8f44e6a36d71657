"""PKCE (Proof Key for Code Exchange) primitives.

Implements RFC 7636 parameter generation and validation. All randomness comes
from ``secrets``; there is no fallback to a general-purpose PRNG.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import re
import secrets

# 96 bytes -> 128 base64url characters, the RFC 7636 maximum
CODE_VERIFIER_BYTES = 96
# 24 bytes -> 32 base64url characters
STATE_BYTES = 24

CODE_VERIFIER_MIN_LENGTH = 43
CODE_VERIFIER_MAX_LENGTH = 128
STATE_MIN_LENGTH = 16
STATE_MAX_LENGTH = 64

_BASE64URL_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def base64url_encode(data: bytes) -> str:
    """Base64url-encode without padding (RFC 4648 Section 5)."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def is_valid_base64url(value: str) -> bool:
    return bool(_BASE64URL_PATTERN.match(value))


def generate_code_verifier() -> str:
    """Generate a cryptographically secure code verifier.

    RFC 7636 Section 4.1: 43-128 characters from the unreserved set. The
    base64url alphabet is a subset of it.

    Returns:
        A 128-character code verifier
    """
    return base64url_encode(secrets.token_bytes(CODE_VERIFIER_BYTES))


async def generate_code_challenge(code_verifier: str) -> str:
    """Derive the S256 code challenge for a verifier.

    RFC 7636 Section 4.2: BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))

    Args:
        code_verifier: The code verifier to hash

    Returns:
        Base64url-encoded SHA256 hash of the code verifier
    """
    # Yield once so callers observe the same suspension point as a
    # platform crypto digest would give them.
    await asyncio.sleep(0)
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64url_encode(digest)


def generate_state() -> str:
    """Generate a cryptographically secure state parameter.

    Returns:
        A 32-character random state parameter
    """
    return base64url_encode(secrets.token_bytes(STATE_BYTES))


def is_valid_code_verifier(code_verifier: str) -> bool:
    return (
        CODE_VERIFIER_MIN_LENGTH <= len(code_verifier) <= CODE_VERIFIER_MAX_LENGTH
        and is_valid_base64url(code_verifier)
    )


def is_valid_state(state: str) -> bool:
    return STATE_MIN_LENGTH <= len(state) <= STATE_MAX_LENGTH and is_valid_base64url(
        state
    )
