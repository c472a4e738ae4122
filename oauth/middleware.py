"""Bearer token middleware for the protected API.

Requests under the protected prefix must carry an access token issued by
our /token endpoint. Valid claims are exposed as ``request.state.token_claims``.
Uses JWT for stateless token validation - tokens survive server restarts.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from oauth.jwt_utils import verify_access_token

logger = logging.getLogger(__name__)


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Middleware to validate OAuth Bearer tokens for the protected API."""

    def __init__(self, app, secret: str, issuer: str, protected_prefix: str = "/api"):
        super().__init__(app)
        self.secret = secret
        self.issuer = issuer.rstrip("/")
        self.protected_prefix = protected_prefix.rstrip("/")

    def _unauthorized(self, description: str) -> JSONResponse:
        return JSONResponse(
            {"error": "unauthorized", "error_description": description},
            status_code=401,
            headers={"WWW-Authenticate": f'Bearer resource_metadata="{self.issuer}/.well-known/oauth-protected-resource"'},
        )

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path != self.protected_prefix and not path.startswith(f"{self.protected_prefix}/"):
            return await call_next(request)

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            logger.info("[AUTH] Request rejected: no Bearer token")
            return self._unauthorized("Missing or invalid Authorization header")

        token_data = verify_access_token(auth_header[7:], self.secret, issuer=self.issuer)
        if not token_data:
            logger.info("[AUTH] Request rejected: invalid or expired token")
            return self._unauthorized("Invalid or expired token")

        request.state.token_claims = token_data
        logger.info(f"[AUTH] Request authorized: {token_data.get('sub')}")
        return await call_next(request)
