"""Downstream OAuth 2.1 provider.

This is the authorization server MCP clients talk to. It owns the client
registry, turns a finished login into an authorization code, and exchanges
codes for access tokens. Clients and grants are kept in the KV store.

The instance is built once at startup and injected into the flow.
"""

import base64
import hashlib
import hmac
import json
import logging
import secrets
from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from oauth.errors import ValidationError
from oauth.jwt_utils import ACCESS_TOKEN_EXPIRE_SECONDS, create_access_token
from oauth.kv import KVStore
from oauth.models import AuthorizationRequest, ClientInfo
from oauth.sanitize import sanitize_url

logger = logging.getLogger(__name__)

CLIENT_KEY_PREFIX = "oauth:client:"
GRANT_KEY_PREFIX = "oauth:grant:"
GRANT_CODE_TTL_SECONDS = 600
SUPPORTED_SCOPES = ["mcp:tools", "mcp:read"]


def pkce_challenge(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def _append_query(url: str, params: dict) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True) + list(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


class OAuthProvider:
    def __init__(
        self,
        kv: KVStore,
        jwt_secret: str,
        issuer: str,
        access_token_ttl: int = ACCESS_TOKEN_EXPIRE_SECONDS,
    ):
        self.kv = kv
        self.jwt_secret = jwt_secret
        self.issuer = issuer.rstrip("/")
        self.access_token_ttl = access_token_ttl

    # ============== Metadata ==============

    def authorization_server_metadata(self) -> dict:
        """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""
        return {
            "issuer": self.issuer,
            "authorization_endpoint": f"{self.issuer}/authorize",
            "token_endpoint": f"{self.issuer}/token",
            "registration_endpoint": f"{self.issuer}/register",
            "scopes_supported": SUPPORTED_SCOPES,
            "response_types_supported": ["code"],
            "response_modes_supported": ["query"],
            "grant_types_supported": ["authorization_code"],
            "token_endpoint_auth_methods_supported": ["none", "client_secret_post"],
            "code_challenge_methods_supported": ["S256"],
        }

    def protected_resource_metadata(self) -> dict:
        """OAuth 2.0 Protected Resource Metadata (RFC 9728)."""
        return {
            "resource": self.issuer,
            "authorization_servers": [self.issuer],
            "scopes_supported": SUPPORTED_SCOPES,
            "bearer_methods_supported": ["header"],
        }

    # ============== Client registry ==============

    async def lookup_client(self, client_id: str) -> Optional[ClientInfo]:
        if not client_id:
            return None
        stored = await self.kv.get(f"{CLIENT_KEY_PREFIX}{client_id}")
        if stored is None:
            return None
        return ClientInfo.from_dict(json.loads(stored))

    async def register_client(self, data: dict) -> ClientInfo:
        """Dynamic Client Registration (RFC 7591)."""
        redirect_uris = data.get("redirect_uris") or []
        if not isinstance(redirect_uris, list) or not redirect_uris:
            raise ValidationError("redirect_uris is required", code="invalid_redirect_uri")
        for uri in redirect_uris:
            if not isinstance(uri, str) or not sanitize_url(uri):
                raise ValidationError(f"Invalid redirect URI: {uri}", code="invalid_redirect_uri")

        auth_method = data.get("token_endpoint_auth_method") or "none"
        if auth_method not in ("none", "client_secret_post"):
            raise ValidationError(
                f"Unsupported token_endpoint_auth_method: {auth_method}",
                code="invalid_client_metadata",
            )

        client = ClientInfo(
            client_id=secrets.token_urlsafe(24),
            client_name=str(data.get("client_name") or "MCP Client"),
            client_uri=str(data.get("client_uri") or ""),
            logo_uri=str(data.get("logo_uri") or ""),
            redirect_uris=redirect_uris,
            client_secret=secrets.token_urlsafe(32) if auth_method == "client_secret_post" else None,
            token_endpoint_auth_method=auth_method,
        )
        await self.kv.put(f"{CLIENT_KEY_PREFIX}{client.client_id}", json.dumps(client.to_dict()))
        logger.info(f"[REGISTER] Registered client: {client.client_name} ({client.client_id})")
        return client

    # ============== Authorization ==============

    async def parse_request(self, params: Mapping[str, str]) -> AuthorizationRequest:
        """Parse and validate a GET /authorize query.

        An absent client_id is returned as-is; rejecting it is the caller's
        decision.
        """
        response_type = params.get("response_type", "code")
        if response_type != "code":
            raise ValidationError("Only the code response type is supported", code="unsupported_response_type")

        request = AuthorizationRequest.from_dict(dict(params))
        if not request.client_id:
            return request
        return await self.validate_request(request)

    async def validate_request(self, request: AuthorizationRequest) -> AuthorizationRequest:
        """Check a request against the client registry.

        Also applied to requests echoed back through the consent form, since
        the hidden field is browser-controlled.
        """
        client = await self.lookup_client(request.client_id)
        if client is None:
            raise ValidationError("Unknown client", code="invalid_client")

        if not request.redirect_uri and len(client.redirect_uris) == 1:
            request.redirect_uri = client.redirect_uris[0]
        if request.redirect_uri not in client.redirect_uris:
            raise ValidationError("redirect_uri is not registered for this client")

        if request.code_challenge and request.code_challenge_method not in ("", "S256"):
            raise ValidationError("Only the S256 code challenge method is supported")
        if request.code_challenge and not request.code_challenge_method:
            request.code_challenge_method = "S256"
        return request

    async def complete_authorization(
        self,
        request: AuthorizationRequest,
        user_id: str,
        scope: list,
        props: dict,
        metadata: Optional[dict] = None,
    ) -> str:
        """Issue an authorization code and return the client redirect URL."""
        code = secrets.token_urlsafe(32)
        grant = {
            "client_id": request.client_id,
            "redirect_uri": request.redirect_uri,
            "scope": " ".join(scope),
            "code_challenge": request.code_challenge,
            "code_challenge_method": request.code_challenge_method,
            "user_id": user_id,
            "props": props,
            "metadata": metadata or {},
        }
        await self.kv.put(f"{GRANT_KEY_PREFIX}{code}", json.dumps(grant), ttl=GRANT_CODE_TTL_SECONDS)
        logger.info(f"[AUTHORIZE] Grant issued to client {request.client_id} for user {user_id}")

        params = {"code": code}
        if request.state:
            params["state"] = request.state
        return _append_query(request.redirect_uri, params)

    # ============== Token ==============

    async def exchange_code(
        self,
        code: str,
        client_id: str,
        redirect_uri: str = None,
        code_verifier: str = None,
        client_secret: str = None,
    ) -> dict:
        """Exchange an authorization code for an access token.

        Codes are single-use: the grant is removed before any check runs.
        """
        if not code:
            raise ValidationError("Missing authorization code", code="invalid_grant")

        stored = await self.kv.pop(f"{GRANT_KEY_PREFIX}{code}")
        if stored is None:
            raise ValidationError("Invalid or expired authorization code", code="invalid_grant")
        grant = json.loads(stored)

        if client_id and client_id != grant["client_id"]:
            raise ValidationError("Client mismatch", code="invalid_grant")
        if redirect_uri and redirect_uri != grant["redirect_uri"]:
            raise ValidationError("redirect_uri mismatch", code="invalid_grant")

        client = await self.lookup_client(grant["client_id"])
        if client is None:
            raise ValidationError("Unknown client", code="invalid_client")
        if client.client_secret:
            supplied = (client_secret or "").encode("utf-8")
            if not hmac.compare_digest(supplied, client.client_secret.encode("utf-8")):
                raise ValidationError("Invalid client credentials", code="invalid_client")

        if grant.get("code_challenge"):
            if not code_verifier:
                raise ValidationError("Missing code_verifier", code="invalid_grant")
            expected = pkce_challenge(code_verifier).encode("utf-8")
            if not hmac.compare_digest(expected, grant["code_challenge"].encode("utf-8")):
                raise ValidationError("PKCE verification failed", code="invalid_grant")

        props = grant.get("props") or {}
        access_token = create_access_token(
            self.jwt_secret,
            user_id=grant["user_id"],
            client_id=grant["client_id"],
            scope=grant["scope"],
            issuer=self.issuer,
            email=props.get("email", ""),
            name=props.get("name", ""),
            expires_in=self.access_token_ttl,
        )
        logger.info(f"[TOKEN] Access token issued for user: {grant['user_id']}")
        return {
            "access_token": access_token,
            "token_type": "Bearer",
            "expires_in": self.access_token_ttl,
            "scope": grant["scope"],
        }
