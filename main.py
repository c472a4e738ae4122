"""ChartPane Auth - OAuth front door for the ChartPane MCP server.

MCP clients (Claude, etc.) authorize against this server. The user signs in
with Google; we then issue our own authorization code and 24-hour access
token to the client.

It handles:
- OAuth discovery and client registration
- The /authorize consent flow and the Google /callback
- Token exchange (/token)
- A bearer-protected API (/api/*)

Every collaborator (stores, Google client, provider) is built once here and
handed to the routes through app.state.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from supabase import create_client

from config import Config, load_config
from logging_config import setup_logging
from oauth.approvals import ApprovalCache
from oauth.csrf import CSRFGuard
from oauth.endpoints import register_error_handlers, router as oauth_router
from oauth.flow import AuthFlow
from oauth.google import GoogleIdentityProvider
from oauth.identity import IdentityStore, MemoryIdentityStore, SupabaseIdentityStore
from oauth.kv import KVStore, MemoryKVStore, SupabaseKVStore
from oauth.middleware import BearerAuthMiddleware
from oauth.provider import OAuthProvider
from oauth.session import SessionBinder
from oauth.state import StateStore

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
UPSTREAM_TIMEOUT_SECONDS = 10.0


def build_stores(config: Config) -> tuple[KVStore, IdentityStore]:
    """Supabase-backed stores when configured, in-memory otherwise."""
    if config.supabase_enabled():
        supabase = create_client(config.supabase_url, config.supabase_key)
        logger.info("[STARTUP] Using Supabase for state and identity storage")
        return SupabaseKVStore(supabase), SupabaseIdentityStore(supabase)

    logger.warning("[STARTUP] Supabase not configured - using in-memory stores (single process only)")
    return MemoryKVStore(), MemoryIdentityStore()


def create_app(
    config: Optional[Config] = None,
    kv: Optional[KVStore] = None,
    identities: Optional[IdentityStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    config = config or load_config()
    owns_http_client = http_client is None
    http_client = http_client or httpx.AsyncClient(timeout=UPSTREAM_TIMEOUT_SECONDS)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_http_client:
            await http_client.aclose()

    app = FastAPI(
        title="ChartPane Auth",
        description="OAuth 2.1 authorization server with Google sign-in",
        version=VERSION,
        lifespan=lifespan,
    )
    register_error_handlers(app)

    auth_enabled = config.auth_enabled()
    logger.info(f"[STARTUP] SERVER_URL: {config.server_url}")
    logger.info(f"[STARTUP] OAuth enabled: {auth_enabled}")

    if auth_enabled:
        if kv is None or identities is None:
            default_kv, default_identities = build_stores(config)
            kv = kv or default_kv
            identities = identities or default_identities

        provider = OAuthProvider(kv, jwt_secret=config.jwt_secret, issuer=config.server_url)
        app.state.oauth_provider = provider
        app.state.auth_flow = AuthFlow(
            provider=provider,
            states=StateStore(kv),
            csrf=CSRFGuard(),
            binder=SessionBinder(),
            approvals=ApprovalCache(config.cookie_encryption_key),
            idp=GoogleIdentityProvider(config.google_client_id, config.google_client_secret, http_client),
            identities=identities,
            callback_url=config.callback_url,
            server_name=config.service_name,
            server_description=config.service_description,
        )
        app.include_router(oauth_router)
        app.add_middleware(BearerAuthMiddleware, secret=config.jwt_secret, issuer=config.server_url)

        @app.get("/api/me")
        async def me(request: Request):
            """Claims of the access token used for this request."""
            claims = request.state.token_claims
            return {
                "userId": claims.get("sub"),
                "email": claims.get("email"),
                "name": claims.get("name"),
                "clientId": claims.get("client_id"),
                "scope": claims.get("scope"),
            }
    else:
        logger.warning("[STARTUP] GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET and COOKIE_ENCRYPTION_KEY are required for OAuth")

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "chartpane-auth"}

    @app.get("/")
    async def root():
        """Root endpoint with server info."""
        response = {
            "name": config.service_name,
            "version": VERSION,
            "oauth_enabled": auth_enabled,
        }
        if auth_enabled:
            response["oauth"] = {
                "authorization_server": f"{config.server_url}/.well-known/oauth-authorization-server",
                "protected_resource": f"{config.server_url}/.well-known/oauth-protected-resource",
            }
        return response

    return app


def main():
    config = load_config()
    setup_logging(service_name=config.service_name, log_format=config.log_format, level=config.log_level)
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
