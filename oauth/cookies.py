"""Flow cookies.

Components describe the cookie they want as a FlowCookie; the flow applies
it to the outgoing response with Starlette's ``set_cookie``/``delete_cookie``.
All flow cookies use the ``__Host-`` prefix, so they must be Secure, have
Path=/ and carry no Domain attribute.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

from starlette.responses import Response

COOKIE_KWARGS = {
    "httponly": True,
    "secure": True,
    "samesite": "lax",
    "path": "/",
}


@dataclass(frozen=True)
class FlowCookie:
    name: str
    value: str = ""
    max_age: int = 0

    @property
    def expired(self) -> bool:
        return self.max_age <= 0


def expired_cookie(name: str) -> FlowCookie:
    return FlowCookie(name)


def apply_cookie(response: Response, cookie: FlowCookie) -> None:
    if cookie.expired:
        response.delete_cookie(cookie.name, **COOKIE_KWARGS)
    else:
        response.set_cookie(cookie.name, cookie.value, max_age=cookie.max_age, **COOKIE_KWARGS)


def read_cookie(cookies: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    """Return a non-empty cookie value or None."""
    if not cookies:
        return None
    value = cookies.get(name)
    return value or None
