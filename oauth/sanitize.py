"""Output sanitization for rendered pages.

Both functions are pure and are applied at every point where an untrusted
value is interpolated into HTML.
"""

import html
from urllib.parse import urlsplit

ALLOWED_URL_SCHEMES = ("http", "https")


def sanitize_text(text: str) -> str:
    """HTML-escape text, quotes included."""
    if text is None:
        return ""
    return html.escape(str(text), quote=True)


def _has_control_chars(value: str) -> bool:
    for ch in value:
        code = ord(ch)
        if code <= 0x1F or 0x7F <= code <= 0x9F:
            return True
    return False


def sanitize_url(url: str) -> str:
    """Return the URL if it is an absolute http(s) URL, otherwise "".

    Values containing C0/C1 control characters are rejected outright, since
    browsers strip some of them while parsing and a scheme check on the raw
    string can be bypassed that way.
    """
    if not url:
        return ""
    normalized = url.strip()
    if not normalized or _has_control_chars(normalized):
        return ""

    try:
        parts = urlsplit(normalized)
    except ValueError:
        return ""

    if parts.scheme.lower() not in ALLOWED_URL_SCHEMES or not parts.netloc:
        return ""
    return normalized


def safe_link(url: str) -> str:
    """Allow-list then escape, for use inside an HTML attribute."""
    return sanitize_text(sanitize_url(url))
