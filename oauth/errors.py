"""Structured errors for the authorization flow.

Every failure in the flow is one of these. Each carries a short error code,
a human-readable description and the HTTP status it maps to, and renders
itself as the JSON error body returned to the browser.
"""

from fastapi.responses import JSONResponse


class OAuthError(Exception):
    """Base class for all flow errors."""

    status_code = 400
    code = "invalid_request"

    def __init__(self, description: str, code: str = None, status_code: int = None):
        super().__init__(description)
        self.description = description
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.code, "error_description": self.description}

    def to_response(self) -> JSONResponse:
        return JSONResponse(self.to_dict(), status_code=self.status_code)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code!r}, {self.description!r}, {self.status_code})"


class ValidationError(OAuthError):
    """Malformed or missing request fields."""


class CSRFError(OAuthError):
    """Consent form submission failed the anti-forgery check."""


class StateError(OAuthError):
    """State token is missing, expired or already used."""


class SessionBindingError(OAuthError):
    """State token is not bound to this browser.

    ``possible_attack`` is set when a binding cookie was present but did not
    match, which is what a replayed or fixated state looks like.
    """

    def __init__(self, description: str, code: str, possible_attack: bool = False):
        super().__init__(description, code=code)
        self.possible_attack = possible_attack


class UpstreamExchangeError(OAuthError):
    """The identity provider answered with a non-2xx status."""

    status_code = 502
    code = "upstream_error"


class InternalError(OAuthError):
    status_code = 500
    code = "server_error"
