"""Cross-window messages posted by the callback page to its opener.

Only two shapes are understood. Anything else is treated as noise and ignored.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from storefront_auth.models.session import Customer, parse_expires_at

logger = logging.getLogger(__name__)

OAUTH_SUCCESS = "OAUTH_SUCCESS"
OAUTH_ERROR = "OAUTH_ERROR"


class OAuthSuccessMessage(BaseModel):
    type: Literal["OAUTH_SUCCESS"]
    access_token: str = Field(min_length=1)
    expires_at: str = Field(min_length=1)
    id_token: str | None = None
    customer: Customer | None = None

    @field_validator("expires_at")
    @classmethod
    def _check_expires_at(cls, value: str) -> str:
        # Kept as posted; only rejected when it cannot be parsed
        parse_expires_at(value)
        return value


class OAuthErrorMessage(BaseModel):
    type: Literal["OAUTH_ERROR"]
    error: str | None = None


CallbackMessage = Annotated[
    Union[OAuthSuccessMessage, OAuthErrorMessage], Field(discriminator="type")
]

_callback_message_adapter: TypeAdapter[CallbackMessage] = TypeAdapter(CallbackMessage)


def parse_callback_message(
    data: Any,
) -> OAuthSuccessMessage | OAuthErrorMessage | None:
    """Parse a posted message into one of the known variants.

    Args:
        data: Raw message payload as delivered to the opener

    Returns:
        The parsed message, or None if the payload is not a callback message
    """
    if not isinstance(data, dict):
        return None

    try:
        return _callback_message_adapter.validate_python(data)
    except ValidationError as e:
        logger.debug(f"Ignoring malformed callback message: {e.error_count()} errors")
        return None
