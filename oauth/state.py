"""One-time OAuth state tokens.

A state token is the only thing that travels to the identity provider and
back. It keys the pending AuthorizationRequest in the KV store for ten
minutes and is deleted the first time it is read.
"""

import json
import logging
import secrets

from oauth.errors import InternalError, StateError
from oauth.kv import KVStore
from oauth.models import AuthorizationRequest

logger = logging.getLogger(__name__)

STATE_TTL_SECONDS = 600
STATE_KEY_PREFIX = "oauth:state:"


class StateStore:
    def __init__(self, kv: KVStore, ttl: int = STATE_TTL_SECONDS):
        self.kv = kv
        self.ttl = ttl

    @staticmethod
    def _key(token: str) -> str:
        return f"{STATE_KEY_PREFIX}{token}"

    async def create(self, request: AuthorizationRequest) -> str:
        """Persist the request and return a fresh state token."""
        token = secrets.token_urlsafe(32)
        await self.kv.put(self._key(token), json.dumps(request.to_dict()), ttl=self.ttl)
        logger.debug(f"[STATE] Created state for client: {request.client_id}")
        return token

    async def consume(self, token: str) -> AuthorizationRequest:
        """Look up and destroy a state token.

        The entry is taken out of the store in one step, before the payload
        is parsed, so only one caller ever sees a token, even if parsing
        fails.

        Raises:
            StateError: token unknown, expired or already consumed.
            InternalError: stored payload could not be parsed.
        """
        if not token:
            raise StateError("Missing state parameter")

        stored = await self.kv.pop(self._key(token))
        if stored is None:
            raise StateError("Invalid or expired state")

        try:
            return AuthorizationRequest.from_dict(json.loads(stored))
        except (ValueError, TypeError) as e:
            logger.error(f"[STATE] Stored state could not be parsed: {e}")
            raise InternalError("Invalid state data")
