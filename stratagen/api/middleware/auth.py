"""Caller identity and scheduled-trigger authorization.

Caller identity is established by the fronting gateway, which forwards the
authenticated user id in ``X-User-Id``. The scheduled trigger presents a
shared secret as a bearer token instead.
"""

import hmac
import logging

from fastapi import Depends, Header

from stratagen.api.dependencies import get_settings
from stratagen.config import Settings
from stratagen.errors import AuthenticationError

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "Bearer "


def get_caller_id(x_user_id: str | None = Header(default=None)) -> str:
    """Return the authenticated caller id.

    Raises:
        AuthenticationError: If no caller identity was forwarded.
    """
    caller_id = (x_user_id or "").strip()
    if not caller_id:
        raise AuthenticationError()
    return caller_id


def require_cron_secret(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Authorize the scheduled trigger by constant-time secret comparison.

    An unset secret rejects every call.

    Raises:
        AuthenticationError: If the bearer secret is missing or wrong.
    """
    expected = settings.cron_secret
    provided = authorization or ""
    if provided.startswith(_BEARER_PREFIX):
        provided = provided[len(_BEARER_PREFIX):]
    else:
        provided = ""

    if not expected or not provided or not hmac.compare_digest(provided, expected):
        logger.warning("Rejected scheduled trigger with invalid credentials")
        raise AuthenticationError()
