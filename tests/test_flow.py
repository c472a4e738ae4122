"""End-to-end tests of the browser-facing authorization flow.

Each test drives /authorize and /callback the way a browser would, with
Google answered by FakeGoogle.
"""

import asyncio
import logging
import re
from urllib.parse import parse_qs, urlsplit

import pytest

from _helpers import (
    CLIENT_REDIRECT_URI,
    CODE_VERIFIER,
    COOKIE_KEY,
    cookie_header,
    hidden_field,
    set_cookies,
)
from oauth.approvals import APPROVED_COOKIE, ApprovalCache
from oauth.csrf import CSRF_COOKIE
from oauth.google import GOOGLE_AUTHORIZE_URL
from oauth.session import SESSION_COOKIE, hash_state_token
from oauth.state import STATE_KEY_PREFIX


def _consent(client, authorize_params):
    response = client.get("/authorize", params=authorize_params, headers=cookie_header())
    assert response.status_code == 200
    return response


def _approve(client, authorize_params):
    """Show the consent page and submit it. Returns the redirect to Google."""
    page = _consent(client, authorize_params)
    csrf_token = set_cookies(page)[CSRF_COOKIE]
    response = client.post(
        "/authorize",
        data={"state": hidden_field(page.text, "state"), "csrf_token": hidden_field(page.text, "csrf_token")},
        headers=cookie_header({CSRF_COOKIE: csrf_token}),
    )
    assert response.status_code == 302
    return response


def _upstream_state(response) -> str:
    return parse_qs(urlsplit(response.headers["location"]).query)["state"][0]


def _callback(client, state_token, cookies, code="google-code"):
    params = {"state": state_token}
    if code:
        params["code"] = code
    client.cookies.clear()
    return client.get("/callback", params=params, headers=cookie_header(cookies))


def _success_redirect(html: str) -> str:
    match = re.search(r'window\.location\.href="([^"]*)"', html)
    assert match, "success page has no redirect"
    return match.group(1)


# ============== GET /authorize ==============


def test_first_visit_shows_consent_page(client, authorize_params):
    response = _consent(client, authorize_params)

    assert response.headers["content-type"].startswith("text/html")
    assert response.headers["content-security-policy"] == "frame-ancestors 'none'"
    assert response.headers["x-frame-options"] == "DENY"
    assert "Claude" in response.text

    csrf_cookie = set_cookies(response)[CSRF_COOKIE]
    assert hidden_field(response.text, "csrf_token") == csrf_cookie


def test_consent_page_escapes_client_metadata(client):
    registered = client.post(
        "/register",
        json={
            "client_name": "<img src=x onerror=alert(1)>",
            "client_uri": "javascript:alert(1)",
            "redirect_uris": [CLIENT_REDIRECT_URI],
        },
    ).json()

    response = client.get(
        "/authorize",
        params={"response_type": "code", "client_id": registered["client_id"], "redirect_uri": CLIENT_REDIRECT_URI},
        headers=cookie_header(),
    )

    assert response.status_code == 200
    assert "<img src=x" not in response.text
    assert "&lt;img src=x onerror=alert(1)&gt;" in response.text
    assert "javascript:" not in response.text


def test_missing_client_id_is_rejected(client):
    response = client.get("/authorize", params={"response_type": "code"}, headers=cookie_header())

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


def test_unknown_client_is_rejected(client, authorize_params):
    authorize_params["client_id"] = "not-registered"

    response = client.get("/authorize", params=authorize_params, headers=cookie_header())

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_client"


def test_unregistered_redirect_uri_is_rejected(client, authorize_params):
    authorize_params["redirect_uri"] = "https://evil.example.com/cb"

    response = client.get("/authorize", params=authorize_params, headers=cookie_header())

    assert response.status_code == 400


def test_previously_approved_client_skips_consent(client, authorize_params):
    approval_value = ApprovalCache(COOKIE_KEY).add_approved({}, authorize_params["client_id"]).value

    response = client.get(
        "/authorize",
        params=authorize_params,
        headers=cookie_header({APPROVED_COOKIE: approval_value}),
    )

    assert response.status_code == 302
    assert response.headers["location"].startswith(GOOGLE_AUTHORIZE_URL)
    cookies = set_cookies(response)
    assert list(cookies) == [SESSION_COOKIE]
    assert cookies[SESSION_COOKIE] == hash_state_token(_upstream_state(response))


def test_approval_for_other_client_still_shows_consent(client, authorize_params):
    approval_value = ApprovalCache(COOKIE_KEY).add_approved({}, "some-other-client").value

    response = client.get(
        "/authorize",
        params=authorize_params,
        headers=cookie_header({APPROVED_COOKIE: approval_value}),
    )

    assert response.status_code == 200


# ============== POST /authorize ==============


def test_consent_submission_redirects_to_google(client, authorize_params):
    response = _approve(client, authorize_params)

    location = response.headers["location"]
    assert location.startswith(GOOGLE_AUTHORIZE_URL)
    query = parse_qs(urlsplit(location).query)
    assert query["redirect_uri"] == ["https://auth.example.com/callback"]
    assert query["client_id"] == ["google-client-id"]

    assert len(response.headers.get_list("set-cookie")) == 2
    cookies = set_cookies(response)
    assert set(cookies) == {APPROVED_COOKIE, SESSION_COOKIE}
    assert cookies[SESSION_COOKIE] == hash_state_token(query["state"][0])
    assert ApprovalCache(COOKIE_KEY).is_approved(
        {APPROVED_COOKIE: cookies[APPROVED_COOKIE]}, authorize_params["client_id"]
    )


def test_consent_submission_without_csrf_cookie_fails(client, authorize_params):
    page = _consent(client, authorize_params)
    client.cookies.clear()

    response = client.post(
        "/authorize",
        data={"state": hidden_field(page.text, "state"), "csrf_token": hidden_field(page.text, "csrf_token")},
        headers=cookie_header(),
    )

    assert response.status_code == 400
    assert response.headers.get_list("set-cookie") == []


def test_consent_submission_with_wrong_csrf_token_fails(client, authorize_params):
    page = _consent(client, authorize_params)

    response = client.post(
        "/authorize",
        data={"state": hidden_field(page.text, "state"), "csrf_token": "forged"},
        headers=cookie_header({CSRF_COOKIE: set_cookies(page)[CSRF_COOKIE]}),
    )

    assert response.status_code == 400
    assert "CSRF" in response.json()["error_description"]


def test_consent_submission_with_garbled_state_fails(client, authorize_params):
    page = _consent(client, authorize_params)
    csrf_token = set_cookies(page)[CSRF_COOKIE]

    response = client.post(
        "/authorize",
        data={"state": "%%%not-base64%%%", "csrf_token": csrf_token},
        headers=cookie_header({CSRF_COOKIE: csrf_token}),
    )

    assert response.status_code == 400
    assert response.json()["error_description"] == "Invalid state data"


# ============== GET /callback ==============


def test_full_flow_issues_code_and_token(client, authorize_params, fake_google, identities):
    redirect = _approve(client, authorize_params)
    state_token = _upstream_state(redirect)

    response = _callback(client, state_token, {SESSION_COOKIE: set_cookies(redirect)[SESSION_COOKIE]})

    assert response.status_code == 200
    assert "Ada &lt;Lovelace&gt;" in response.text
    assert "Ada <Lovelace>" not in response.text
    clear = response.headers.get_list("set-cookie")
    assert len(clear) == 1 and "Max-Age=0" in clear[0]
    assert set_cookies(response) == {SESSION_COOKIE: ""}

    token_call, userinfo_call = fake_google.calls
    assert token_call.url.host == "oauth2.googleapis.com"
    assert b"code=google-code" in token_call.content
    assert userinfo_call.headers["authorization"] == "Bearer google-access-token"

    user = identities.users["1234"]
    assert user.id == "g-1234"
    assert user.email == "ada@example.com"

    client_redirect = urlsplit(_success_redirect(response.text))
    assert f"{client_redirect.scheme}://{client_redirect.netloc}{client_redirect.path}" == CLIENT_REDIRECT_URI
    query = parse_qs(client_redirect.query)
    assert query["state"] == ["client-side-state"]

    token = client.post(
        "/token",
        data={
            "grant_type": "authorization_code",
            "code": query["code"][0],
            "client_id": authorize_params["client_id"],
            "redirect_uri": CLIENT_REDIRECT_URI,
            "code_verifier": CODE_VERIFIER,
        },
    )
    assert token.status_code == 200
    assert token.headers["cache-control"] == "no-store"
    body = token.json()
    assert body["token_type"] == "Bearer"
    assert body["expires_in"] == 24 * 60 * 60
    assert body["scope"] == "mcp:tools"

    me = client.get("/api/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json() == {
        "userId": "g-1234",
        "email": "ada@example.com",
        "name": "Ada <Lovelace>",
        "clientId": authorize_params["client_id"],
        "scope": "mcp:tools",
    }


def test_replayed_callback_fails(client, authorize_params, fake_google):
    redirect = _approve(client, authorize_params)
    state_token = _upstream_state(redirect)
    cookies = {SESSION_COOKIE: set_cookies(redirect)[SESSION_COOKIE]}

    assert _callback(client, state_token, cookies).status_code == 200
    calls = len(fake_google.calls)

    replay = _callback(client, state_token, cookies)

    assert replay.status_code == 400
    assert replay.json()["error_description"] == "Invalid or expired state"
    assert len(fake_google.calls) == calls


def test_callback_from_another_browser_is_rejected(client, authorize_params, fake_google):
    """A state token sent with someone else's binding cookie."""
    victim = _approve(client, authorize_params)
    attacker = _approve(client, authorize_params)
    victim_state = _upstream_state(victim)

    response = _callback(client, victim_state, {SESSION_COOKIE: set_cookies(attacker)[SESSION_COOKIE]})

    assert response.status_code == 400
    assert response.json()["error"] == "state_mismatch"
    assert fake_google.calls == []

    # the victim's own state was not consumed
    retry = _callback(client, victim_state, {SESSION_COOKIE: set_cookies(victim)[SESSION_COOKIE]})
    assert retry.status_code == 200


def test_callback_without_binding_cookie_requires_restart(client, authorize_params, fake_google):
    state_token = _upstream_state(_approve(client, authorize_params))

    response = _callback(client, state_token, {})

    assert response.status_code == 400
    assert response.json()["error"] == "session_restart_required"
    assert fake_google.calls == []


def test_callback_with_unknown_state_fails(client):
    response = _callback(client, "never-issued", {SESSION_COOKIE: hash_state_token("never-issued")})

    assert response.status_code == 400
    assert response.json()["error_description"] == "Invalid or expired state"


def test_callback_without_code_fails(client, authorize_params, fake_google):
    redirect = _approve(client, authorize_params)

    response = _callback(
        client, _upstream_state(redirect), {SESSION_COOKIE: set_cookies(redirect)[SESSION_COOKIE]}, code=None
    )

    assert response.status_code == 400
    assert response.json()["error_description"] == "Missing authorization code"
    assert fake_google.calls == []


def test_callback_with_google_error_fails(client, authorize_params, fake_google):
    redirect = _approve(client, authorize_params)
    client.cookies.clear()

    response = client.get(
        "/callback",
        params={"state": _upstream_state(redirect), "error": "access_denied"},
        headers=cookie_header({SESSION_COOKIE: set_cookies(redirect)[SESSION_COOKIE]}),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "access_denied"
    assert fake_google.calls == []


@pytest.mark.parametrize("failing", ["token_status", "userinfo_status"])
def test_upstream_failure_is_bad_gateway(client, authorize_params, fake_google, identities, failing):
    setattr(fake_google, failing, 500)
    redirect = _approve(client, authorize_params)

    response = _callback(client, _upstream_state(redirect), {SESSION_COOKIE: set_cookies(redirect)[SESSION_COOKIE]})

    assert response.status_code == 502
    assert response.json()["error"] == "upstream_error"
    assert identities.users == {}


@pytest.mark.parametrize(
    "attribute, body",
    [
        ("token_body", ["google-access-token"]),
        ("user", [{"id": "1234"}]),
    ],
    ids=["token", "userinfo"],
)
def test_non_object_upstream_json_is_bad_gateway(client, authorize_params, fake_google, identities, attribute, body):
    setattr(fake_google, attribute, body)
    redirect = _approve(client, authorize_params)

    response = _callback(client, _upstream_state(redirect), {SESSION_COOKIE: set_cookies(redirect)[SESSION_COOKIE]})

    assert response.status_code == 502
    assert response.json()["error"] == "upstream_error"
    assert identities.users == {}


def test_unexpected_failure_is_generic_server_error(client, authorize_params, identities, monkeypatch):
    async def broken_upsert(google_id, email, name):
        raise RuntimeError("connection to users table refused")

    monkeypatch.setattr(identities, "upsert", broken_upsert)
    redirect = _approve(client, authorize_params)

    response = _callback(client, _upstream_state(redirect), {SESSION_COOKIE: set_cookies(redirect)[SESSION_COOKIE]})

    assert response.status_code == 500
    assert response.json() == {"error": "server_error", "error_description": "Internal server error"}
    assert "refused" not in response.text


def test_corrupt_stored_state_is_server_error(client, kv, fake_google):
    asyncio.run(kv.put(f"{STATE_KEY_PREFIX}corrupt-state", "{not json", ttl=600))

    response = _callback(client, "corrupt-state", {SESSION_COOKIE: hash_state_token("corrupt-state")})

    assert response.status_code == 500
    assert response.json() == {"error": "server_error", "error_description": "Invalid state data"}
    assert fake_google.calls == []

    retry = _callback(client, "corrupt-state", {SESSION_COOKIE: hash_state_token("corrupt-state")})
    assert retry.status_code == 400


def test_state_mismatch_is_logged_once(client, authorize_params, caplog):
    victim = _approve(client, authorize_params)
    attacker = _approve(client, authorize_params)

    with caplog.at_level(logging.WARNING):
        _callback(client, _upstream_state(victim), {SESSION_COOKIE: set_cookies(attacker)[SESSION_COOKIE]})

    security = [r for r in caplog.records if r.getMessage().startswith("[SECURITY]")]
    assert len(security) == 1
    assert "state_mismatch" in security[0].getMessage()
