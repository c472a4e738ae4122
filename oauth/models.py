"""Data types passed between the flow components."""

import base64
import binascii
import json
import time
from dataclasses import asdict, dataclass, field
from typing import List, Optional

from oauth.errors import ValidationError


@dataclass
class AuthorizationRequest:
    """The downstream client's original /authorize request.

    Persisted opaquely across the consent step and the round-trip to the
    identity provider.
    """

    client_id: str
    redirect_uri: str = ""
    scope: List[str] = field(default_factory=list)
    state: str = ""
    code_challenge: str = ""
    code_challenge_method: str = ""
    resource: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AuthorizationRequest":
        if not isinstance(data, dict):
            raise ValueError("authorization request must be an object")
        scope = data.get("scope") or []
        if isinstance(scope, str):
            scope = scope.split()
        return cls(
            client_id=data.get("client_id") or "",
            redirect_uri=data.get("redirect_uri") or "",
            scope=[str(s) for s in scope],
            state=data.get("state") or "",
            code_challenge=data.get("code_challenge") or "",
            code_challenge_method=data.get("code_challenge_method") or "",
            resource=data.get("resource") or "",
        )


@dataclass
class ClientInfo:
    """A registered downstream OAuth client."""

    client_id: str
    client_name: str = ""
    client_uri: str = ""
    logo_uri: str = ""
    redirect_uris: List[str] = field(default_factory=list)
    client_secret: Optional[str] = None
    token_endpoint_auth_method: str = "none"
    created_at: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ClientInfo":
        return cls(
            client_id=data["client_id"],
            client_name=data.get("client_name") or "",
            client_uri=data.get("client_uri") or "",
            logo_uri=data.get("logo_uri") or "",
            redirect_uris=list(data.get("redirect_uris") or []),
            client_secret=data.get("client_secret"),
            token_endpoint_auth_method=data.get("token_endpoint_auth_method") or "none",
            created_at=int(data.get("created_at") or time.time()),
        )


@dataclass(frozen=True)
class ConsentEcho:
    """Hidden form value carrying the request through the consent page.

    This is a presentation-layer round-trip value, not a state token: it is
    never used as a lookup key and is only trusted after the CSRF check.
    """

    request: AuthorizationRequest

    def encode(self) -> str:
        payload = json.dumps({"oauthReqInfo": self.request.to_dict()}, separators=(",", ":"))
        return base64.b64encode(payload.encode("utf-8")).decode("ascii")

    @classmethod
    def decode(cls, value: Optional[str]) -> "ConsentEcho":
        if not value or not isinstance(value, str):
            raise ValidationError("Missing state in form data")
        try:
            raw = base64.b64decode(value.encode("ascii"), validate=True)
            data = json.loads(raw.decode("utf-8"))
            request = AuthorizationRequest.from_dict(data.get("oauthReqInfo"))
        except (binascii.Error, UnicodeError, ValueError, AttributeError):
            raise ValidationError("Invalid state data")
        if not request.client_id:
            raise ValidationError("Invalid request: missing client_id")
        return cls(request=request)
