"""OAuth 2.1 endpoints.

This module contains all OAuth-related endpoints:
- Discovery metadata (/.well-known/*)
- Client registration (/register)
- Authorization flow (/authorize, /callback)
- Token endpoint (/token)

Collaborators are built once in main.create_app() and read from app.state.
"""

import logging

from fastapi import APIRouter, Depends, FastAPI, Form, Request
from fastapi.responses import JSONResponse

from oauth.errors import InternalError, OAuthError, SessionBindingError, ValidationError
from oauth.flow import AuthFlow
from oauth.provider import OAuthProvider

logger = logging.getLogger(__name__)

# Router for OAuth endpoints
router = APIRouter(tags=["oauth"])


def get_auth_flow(request: Request) -> AuthFlow:
    return request.app.state.auth_flow


def get_provider(request: Request) -> OAuthProvider:
    return request.app.state.oauth_provider


# ============== Error handling ==============

async def oauth_error_handler(request: Request, exc: OAuthError) -> JSONResponse:
    if isinstance(exc, SessionBindingError) and exc.possible_attack:
        client_host = request.client.host if request.client else "unknown"
        logger.warning(f"[SECURITY] Possible state fixation on {request.url.path} from {client_host}: {exc.code}")
    elif exc.status_code >= 500:
        logger.error(f"[ERROR] {request.method} {request.url.path} failed: {exc!r}")
    else:
        logger.info(f"[AUTH] {request.method} {request.url.path} rejected: {exc.code} - {exc.description}")
    return exc.to_response()


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"[ERROR] Unhandled error on {request.method} {request.url.path}")
    return InternalError("Internal server error").to_response()


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OAuthError, oauth_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


# ============== OAuth 2.1 Discovery Endpoints ==============

@router.get("/.well-known/oauth-protected-resource")
async def oauth_protected_resource(provider: OAuthProvider = Depends(get_provider)):
    """OAuth 2.0 Protected Resource Metadata (RFC 9728)."""
    return provider.protected_resource_metadata()


@router.get("/.well-known/oauth-authorization-server")
async def oauth_authorization_server(provider: OAuthProvider = Depends(get_provider)):
    """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""
    return provider.authorization_server_metadata()


# ============== Client Registration ==============

@router.post("/register")
async def register_client(request: Request, provider: OAuthProvider = Depends(get_provider)):
    """OAuth 2.0 Dynamic Client Registration (RFC 7591)."""
    try:
        data = await request.json()
    except ValueError:
        raise ValidationError("Registration body must be JSON", code="invalid_client_metadata")
    if not isinstance(data, dict):
        raise ValidationError("Registration body must be a JSON object", code="invalid_client_metadata")

    client = await provider.register_client(data)

    body = {
        "client_id": client.client_id,
        "client_name": client.client_name,
        "redirect_uris": client.redirect_uris,
        "grant_types": ["authorization_code"],
        "response_types": ["code"],
        "token_endpoint_auth_method": client.token_endpoint_auth_method,
        "client_id_issued_at": client.created_at,
    }
    if client.client_secret:
        body["client_secret"] = client.client_secret
    return JSONResponse(body, status_code=201)


# ============== Authorization Flow ==============

@router.get("/authorize")
async def authorize(request: Request, flow: AuthFlow = Depends(get_auth_flow)):
    """Start the flow: consent page, or straight to Google if already approved."""
    return await flow.begin(request.query_params, request.cookies)


@router.post("/authorize")
async def authorize_submit(request: Request, flow: AuthFlow = Depends(get_auth_flow)):
    """Handle consent form submission."""
    form = await request.form()
    return await flow.confirm(form, request.cookies)


@router.get("/callback")
async def callback(request: Request, flow: AuthFlow = Depends(get_auth_flow)):
    """Google redirects here after sign-in."""
    return await flow.callback(request.query_params, request.cookies)


# ============== Token Endpoint ==============

@router.post("/token")
async def token(
    grant_type: str = Form(None),
    code: str = Form(None),
    redirect_uri: str = Form(None),
    client_id: str = Form(None),
    client_secret: str = Form(None),
    code_verifier: str = Form(None),
    provider: OAuthProvider = Depends(get_provider),
):
    """OAuth 2.0 Token Endpoint."""
    logger.debug(f"[TOKEN] grant_type: {grant_type}, client_id: {client_id}")

    if grant_type != "authorization_code":
        raise ValidationError("Only the authorization_code grant is supported", code="unsupported_grant_type")

    token_response = await provider.exchange_code(
        code=code,
        client_id=client_id,
        redirect_uri=redirect_uri,
        code_verifier=code_verifier,
        client_secret=client_secret,
    )
    return JSONResponse(token_response, headers={"Cache-Control": "no-store"})
