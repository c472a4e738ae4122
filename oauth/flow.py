"""Authorization flow orchestrator.

Sequences the three browser-facing steps of the login:

    begin     GET  /authorize   consent page, or straight to Google if the
                                client was approved before
    confirm   POST /authorize   consent submitted, redirect to Google
    callback  GET  /callback    Google redirected back, finish the grant

    START -> DIRECT_REDIRECT | AWAIT_CONSENT -> REDIRECT_TO_IDP
          -> AWAIT_CALLBACK -> CODE_EXCHANGE -> USERINFO_FETCH
          -> IDENTITY_UPSERT -> GRANT_COMPLETION -> SUCCESS

Any step may fail with an OAuthError, which ends the request; the browser
has to start over at GET /authorize. Nothing is retried.

All cross-request state is in the KV store and in cookies. An AuthFlow
holds only its collaborators and is safe to share between requests.
"""

import logging
from typing import List, Mapping, Optional

from fastapi.responses import HTMLResponse, RedirectResponse

from oauth.approvals import ApprovalCache
from oauth.cookies import FlowCookie, apply_cookie
from oauth.csrf import CSRFGuard
from oauth.errors import ValidationError
from oauth.google import GoogleIdentityProvider
from oauth.identity import IdentityStore
from oauth.models import AuthorizationRequest, ConsentEcho
from oauth.provider import OAuthProvider
from oauth.session import SessionBinder
from oauth.state import StateStore
from oauth.templates import render_consent_page, render_success_page

logger = logging.getLogger(__name__)

# Consent page must never be framed (clickjacking)
CONSENT_HEADERS = {
    "Content-Security-Policy": "frame-ancestors 'none'",
    "X-Frame-Options": "DENY",
}
FALLBACK_CLIENT_NAME = "your MCP client"


class AuthFlow:
    def __init__(
        self,
        provider: OAuthProvider,
        states: StateStore,
        csrf: CSRFGuard,
        binder: SessionBinder,
        approvals: ApprovalCache,
        idp: GoogleIdentityProvider,
        identities: IdentityStore,
        callback_url: str,
        server_name: str = "ChartPane",
        server_description: str = "",
    ):
        self.provider = provider
        self.states = states
        self.csrf = csrf
        self.binder = binder
        self.approvals = approvals
        self.idp = idp
        self.identities = identities
        self.callback_url = callback_url
        self.server_name = server_name
        self.server_description = server_description

    def _redirect_to_idp(self, state_token: str, cookies: List[FlowCookie]) -> RedirectResponse:
        response = RedirectResponse(self.idp.authorize_url(state_token, self.callback_url), status_code=302)
        for cookie in cookies:
            apply_cookie(response, cookie)
        return response

    async def _start_upstream(self, request: AuthorizationRequest, extra_cookies: List[FlowCookie]) -> RedirectResponse:
        state_token = await self.states.create(request)
        session_cookie = self.binder.bind(state_token)
        return self._redirect_to_idp(state_token, [*extra_cookies, session_cookie])

    # ============== GET /authorize ==============

    async def begin(self, params: Mapping[str, str], cookies: Mapping[str, str]):
        request = await self.provider.parse_request(params)
        if not request.client_id:
            raise ValidationError("Invalid request: missing client_id")

        if self.approvals.is_approved(cookies, request.client_id):
            logger.info(f"[AUTHORIZE] Client previously approved, skipping consent: {request.client_id}")
            return await self._start_upstream(request, [])

        protection = self.csrf.generate()
        client = await self.provider.lookup_client(request.client_id)
        html = render_consent_page(
            client=client,
            server_name=self.server_name,
            server_description=self.server_description,
            encoded_state=ConsentEcho(request).encode(),
            csrf_token=protection.token,
        )
        response = HTMLResponse(html, headers=CONSENT_HEADERS)
        apply_cookie(response, protection.cookie)
        logger.info(f"[CONSENT] Showing consent page for client: {request.client_id}")
        return response

    # ============== POST /authorize ==============

    async def confirm(self, form: Mapping[str, str], cookies: Mapping[str, str]) -> RedirectResponse:
        # The CSRF cookie is left to expire rather than cleared here, so the
        # redirect carries exactly the approval and session cookies.
        self.csrf.validate(form.get("csrf_token"), cookies)

        echo = ConsentEcho.decode(form.get("state"))
        request = await self.provider.validate_request(echo.request)

        approval_cookie = self.approvals.add_approved(cookies, request.client_id)
        logger.info(f"[CONSENT] Client approved: {request.client_id}")
        return await self._start_upstream(request, [approval_cookie])

    # ============== GET /callback ==============

    async def callback(self, params: Mapping[str, str], cookies: Mapping[str, str]) -> HTMLResponse:
        state_token: Optional[str] = params.get("state")

        # Binding first: nothing else is touched for a foreign state
        clear_session_cookie = self.binder.verify(state_token, cookies)

        request = await self.states.consume(state_token)
        if not request.client_id:
            raise ValidationError("Invalid OAuth request data")

        code = params.get("code")
        if not code:
            if params.get("error"):
                raise ValidationError(f"Sign-in was not completed: {params.get('error')}", code="access_denied")
            raise ValidationError("Missing authorization code")

        access_token = await self.idp.exchange_code(code, self.callback_url)
        google_user = await self.idp.fetch_userinfo(access_token)

        user = await self.identities.upsert(google_user.id, google_user.email, google_user.name)
        logger.info(f"[CALLBACK] User signed in: {user.id}")

        redirect_to = await self.provider.complete_authorization(
            request=request,
            user_id=user.id,
            scope=request.scope,
            props={"userId": user.id, "email": user.email, "name": user.name},
            metadata={"label": user.name},
        )

        client = await self.provider.lookup_client(request.client_id)
        client_name = client.client_name if client and client.client_name else FALLBACK_CLIENT_NAME

        html = render_success_page(user.name, client_name, redirect_to, self.server_name)
        response = HTMLResponse(html)
        apply_cookie(response, clear_session_cookie)
        return response
