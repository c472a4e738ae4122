"""Binds a state token to the browser that started the flow.

The state value is visible in URLs (and so in referrers and logs). The
browser additionally holds a cookie with the SHA-256 of the token, set by
us when the redirect was issued. A callback carrying a state whose digest
does not match that cookie did not originate from this browser.
"""

import hashlib
import hmac
from typing import Mapping, Optional

from oauth.cookies import FlowCookie, expired_cookie, read_cookie
from oauth.errors import SessionBindingError, ValidationError

SESSION_COOKIE = "__Host-CONSENTED_STATE"
SESSION_TTL_SECONDS = 600


def hash_state_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionBinder:
    def __init__(self, ttl: int = SESSION_TTL_SECONDS):
        self.ttl = ttl

    def bind(self, state_token: str) -> FlowCookie:
        """Return the cookie binding this token to the browser."""
        return FlowCookie(SESSION_COOKIE, hash_state_token(state_token), self.ttl)

    def verify(self, state_token: Optional[str], cookies: Optional[Mapping[str, str]]) -> FlowCookie:
        """Check the callback's state against the binding cookie.

        Returns the cookie that clears the binding cookie.
        """
        if not state_token:
            raise ValidationError("Missing state parameter")

        bound_digest = read_cookie(cookies, SESSION_COOKIE)
        if not bound_digest:
            raise SessionBindingError(
                "Missing session binding cookie - authorization flow must be restarted",
                code="session_restart_required",
            )

        expected = hash_state_token(state_token).encode("utf-8")
        actual = bound_digest.encode("utf-8")
        if len(expected) != len(actual) or not hmac.compare_digest(expected, actual):
            raise SessionBindingError(
                "State token does not match session - possible CSRF attack detected",
                code="state_mismatch",
                possible_attack=True,
            )

        return expired_cookie(SESSION_COOKIE)
