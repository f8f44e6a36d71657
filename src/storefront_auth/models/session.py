"""Session token and customer identity models.

The session token is what ends up in the shared ``shopify_access_token``
cookie. Its wire form is base64-encoded JSON so it survives cookie quoting.
"""

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime, timezone
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)


def parse_expires_at(value: Any) -> datetime:
    """Parse an expiry given as an ISO-8601 string or epoch milliseconds.

    Naive timestamps are taken to be UTC.

    Raises:
        ValueError: If the value is neither
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid expires_at: {value!r}")

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f"expires_at out of range: {value!r}") from e

    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    raise ValueError(f"Invalid expires_at: {value!r}")


def format_expires_at(value: datetime) -> str:
    """Format an expiry the way browsers print ``Date.toISOString()``."""
    utc = value.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Customer(BaseModel):
    """Minimal identity projection attached to a session."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = Field(default=None, validation_alias=AliasChoices("id", "sub"))
    email: str | None = None
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # Customer ids arrive as JSON numbers from the id_token
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class SessionToken(BaseModel):
    """Bearer credential plus the identity it belongs to."""

    access_token: str = Field(min_length=1)
    expires_at: datetime
    customer: Customer | None = None

    @field_validator("expires_at", mode="before")
    @classmethod
    def _parse_expires_at(cls, value: Any) -> datetime:
        if isinstance(value, datetime):
            return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return parse_expires_at(value)

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    def token_preview(self) -> str:
        """Short form of the token that is safe to log."""
        return preview_token(self.access_token)

    def to_wire(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "expires_at": format_expires_at(self.expires_at),
            "customer": self.customer.to_wire() if self.customer else None,
        }

    def to_cookie_value(self) -> str:
        """Unpadded base64url JSON, so the value needs no cookie quoting."""
        payload = json.dumps(self.to_wire(), separators=(",", ":"))
        encoded = base64.urlsafe_b64encode(payload.encode("utf-8"))
        return encoded.decode("ascii").rstrip("=")

    @classmethod
    def from_cookie_value(cls, value: str) -> SessionToken | None:
        """Decode a cookie value, returning None for anything unreadable."""
        try:
            padded = value + "=" * (-len(value) % 4)
            raw = base64.b64decode(padded, altchars=b"-_", validate=True)
            payload = json.loads(raw)
            return cls.model_validate(payload)
        except (binascii.Error, ValueError, ValidationError, TypeError):
            return None


def preview_token(token: str) -> str:
    if len(token) <= 10:
        return "***"
    return f"{token[:6]}...{token[-4:]}"
