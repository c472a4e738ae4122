"""Signed cookie of OAuth clients the user has already approved.

Cookie value format::

    <hex HMAC-SHA256(secret, payload)>.<base64(payload)>

where payload is a JSON list of client ids. The record lives client-side
for 30 days and lets returning users skip the consent page. Anything that
fails to verify or parse is treated as "no approvals": the user is simply
asked again.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
from typing import List, Mapping, Optional

from oauth.cookies import FlowCookie, read_cookie

logger = logging.getLogger(__name__)

APPROVED_COOKIE = "__Host-APPROVED_CLIENTS"
APPROVAL_TTL_SECONDS = 30 * 24 * 60 * 60  # 30 days


class ApprovalCache:
    def __init__(self, secret: str, ttl: int = APPROVAL_TTL_SECONDS):
        if not secret:
            raise ValueError("A cookie secret is required for signing approval cookies")
        self._key = secret.encode("utf-8")
        self.ttl = ttl

    def _sign(self, payload: str) -> bytes:
        return hmac.new(self._key, payload.encode("utf-8"), hashlib.sha256).digest()

    def _read(self, cookies: Optional[Mapping[str, str]]) -> Optional[List[str]]:
        value = read_cookie(cookies, APPROVED_COOKIE)
        if not value:
            return None

        parts = value.split(".")
        if len(parts) != 2:
            return None
        signature_hex, encoded_payload = parts

        try:
            signature = signature_hex.encode("ascii")
            payload = base64.b64decode(encoded_payload.encode("ascii"), validate=True).decode("utf-8")
        except (ValueError, binascii.Error, UnicodeError):
            return None

        if not hmac.compare_digest(signature, self._sign(payload).hex().encode("ascii")):
            logger.info("[CONSENT] Approval cookie failed signature check, ignoring")
            return None

        try:
            parsed = json.loads(payload)
        except ValueError:
            return None
        if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
            return None
        return parsed

    def approved_clients(self, cookies: Optional[Mapping[str, str]]) -> List[str]:
        return self._read(cookies) or []

    def is_approved(self, cookies: Optional[Mapping[str, str]], client_id: str) -> bool:
        return client_id in self.approved_clients(cookies)

    def add_approved(self, cookies: Optional[Mapping[str, str]], client_id: str) -> FlowCookie:
        """Add a client to the record and return the updated cookie."""
        approved = self.approved_clients(cookies)
        if client_id not in approved:
            approved.append(client_id)

        payload = json.dumps(approved, separators=(",", ":"))
        signature = self._sign(payload).hex()
        encoded = base64.b64encode(payload.encode("utf-8")).decode("ascii")
        return FlowCookie(APPROVED_COOKIE, f"{signature}.{encoded}", self.ttl)
