"""JWT utilities for access tokens issued to downstream clients.

Tokens are stateless HS256 JWTs (PyJWT), validated by signature, so they
survive server restarts. They carry the identity claims recorded when the
grant was completed.
"""

import logging
import time
from typing import Optional

import jwt

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_SECONDS = 24 * 60 * 60  # 24 hours


def create_access_token(
    secret: str,
    user_id: str,
    client_id: str,
    scope: str,
    issuer: str,
    email: str = "",
    name: str = "",
    expires_in: int = ACCESS_TOKEN_EXPIRE_SECONDS,
) -> str:
    """Create a signed access token.

    Args:
        secret: HMAC signing secret
        user_id: Local user id (``g-<google sub>``)
        client_id: The OAuth client the token was granted to
        scope: Space-separated granted scope
        issuer: This server's URL
        email: User email claim
        name: User display name claim
        expires_in: Token lifetime in seconds (default 24 hours)

    Returns:
        The encoded JWT
    """
    now = int(time.time())
    payload = {
        "sub": user_id,
        "email": email,
        "name": name,
        "client_id": client_id,
        "scope": scope,
        "iss": issuer,
        "iat": now,
        "exp": now + expires_in,
        "type": "access",
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def verify_access_token(token: str, secret: str, issuer: str = None) -> Optional[dict]:
    """Verify and decode an access token.

    Returns:
        The decoded claims if the token is valid, unexpired and an access
        token; None otherwise.
    """
    options = {"require": ["exp", "sub"]}
    try:
        if issuer:
            payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM], options=options, issuer=issuer)
        else:
            payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM], options=options)
    except jwt.ExpiredSignatureError:
        logger.debug("[JWT] Token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"[JWT] Invalid token: {e}")
        return None

    if payload.get("type") != "access":
        logger.debug("[JWT] Token is not an access token")
        return None
    return payload
