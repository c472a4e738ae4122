"""CSRF protection for the consent form.

The consent page embeds a random token in a hidden field and sets the same
value in a short-lived HttpOnly cookie. On submit both must be present and
byte-identical.
"""

import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Mapping, Optional

from oauth.cookies import FlowCookie, expired_cookie, read_cookie
from oauth.errors import CSRFError

logger = logging.getLogger(__name__)

CSRF_COOKIE = "__Host-CSRF_TOKEN"
CSRF_TTL_SECONDS = 600


@dataclass(frozen=True)
class CSRFProtection:
    token: str
    cookie: FlowCookie


class CSRFGuard:
    """Issues and validates double-submit CSRF tokens."""

    def __init__(self, ttl: int = CSRF_TTL_SECONDS):
        self.ttl = ttl

    def generate(self) -> CSRFProtection:
        token = secrets.token_urlsafe(32)
        return CSRFProtection(token=token, cookie=FlowCookie(CSRF_COOKIE, token, self.ttl))

    def validate(self, form_value: Optional[str], cookies: Optional[Mapping[str, str]]) -> FlowCookie:
        """Check the submitted token against the cookie.

        Returns the cookie that clears the CSRF cookie.

        Raises:
            CSRFError: if either value is missing or they differ.
        """
        if not form_value or not isinstance(form_value, str):
            raise CSRFError("Missing CSRF token in form data")

        cookie_value = read_cookie(cookies, CSRF_COOKIE)
        if not cookie_value:
            raise CSRFError("Missing CSRF token cookie")

        form_bytes = form_value.encode("utf-8")
        cookie_bytes = cookie_value.encode("utf-8")
        if len(form_bytes) != len(cookie_bytes) or not hmac.compare_digest(form_bytes, cookie_bytes):
            logger.warning("[SECURITY] CSRF token mismatch on consent submission")
            raise CSRFError("CSRF token mismatch")

        return expired_cookie(CSRF_COOKIE)
