"""Google as the upstream identity provider.

Standard authorization-code grant: browser redirect to the authorize
endpoint, form-encoded code exchange, then a bearer-authenticated userinfo
GET. Each upstream call is made once; failures are not retried.
"""

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from oauth.errors import UpstreamExchangeError

logger = logging.getLogger(__name__)

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_SCOPE = "openid email profile"


@dataclass(frozen=True)
class GoogleUser:
    id: str
    email: str
    name: str


class GoogleIdentityProvider:
    def __init__(self, client_id: str, client_secret: str, http_client: httpx.AsyncClient):
        self.client_id = client_id
        self.client_secret = client_secret
        self.http = http_client

    def authorize_url(self, state: str, redirect_uri: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": GOOGLE_SCOPE,
            "state": state,
        }
        return f"{GOOGLE_AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> str:
        """Exchange an authorization code for a Google access token."""
        try:
            response = await self.http.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"[UPSTREAM] Token exchange request failed: {e}")
            raise UpstreamExchangeError("Failed to exchange authorization code")

        if not response.is_success:
            logger.error(f"[UPSTREAM] Google token exchange failed ({response.status_code}): {response.text}")
            raise UpstreamExchangeError("Failed to exchange authorization code")

        try:
            data = response.json()
        except ValueError:
            data = None
        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            logger.error("[UPSTREAM] Token response did not include an access token")
            raise UpstreamExchangeError("Failed to exchange authorization code")
        return access_token

    async def fetch_userinfo(self, access_token: str) -> GoogleUser:
        try:
            response = await self.http.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            logger.error(f"[UPSTREAM] Userinfo request failed: {e}")
            raise UpstreamExchangeError("Failed to fetch user info")

        if not response.is_success:
            logger.error(f"[UPSTREAM] Google userinfo failed ({response.status_code})")
            raise UpstreamExchangeError("Failed to fetch user info")

        try:
            data = response.json()
        except ValueError:
            raise UpstreamExchangeError("Failed to fetch user info")
        if not isinstance(data, dict) or not data.get("id"):
            raise UpstreamExchangeError("User info did not include a subject id")

        return GoogleUser(id=str(data["id"]), email=data.get("email", ""), name=data.get("name", ""))
