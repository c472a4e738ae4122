"""HTML pages for the authorization flow.

Every interpolated value goes through oauth.sanitize first: text through
sanitize_text, links through sanitize_url and then sanitize_text.

ChartPane colors:
- Background: #F8FAFB
- Primary: #4E79A7 (blue), hover #6A9BC3
- Accent: #F28E2B (orange), success #59A14F
- Text: #1A2433, secondary #5A6A7E, muted #8A96A6
- Border: #E2E8F0
"""

import json

from oauth.models import ClientInfo
from oauth.sanitize import safe_link, sanitize_text, sanitize_url

_BASE_STYLE = """
        * {{ margin: 0; padding: 0; box-sizing: border-box; }}
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
               color: #1A2433; background: #F8FAFB; min-height: 100vh;
               display: flex; align-items: center; justify-content: center; padding: 24px; line-height: 1.55; }}
        .card {{ background: white; border: 1px solid #E2E8F0; border-radius: 12px; padding: 28px;
                box-shadow: 0 1px 3px rgba(0,0,0,0.04), 0 8px 24px rgba(0,0,0,0.06); }}
"""

CONSENT_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{client_name} | {server_name} Authorization</title>
    <style>""" + _BASE_STYLE + """
        .wrap {{ width: 100%; max-width: 480px; }}
        .brand {{ display: flex; align-items: center; gap: 10px; margin-bottom: 8px; }}
        .brand-icon {{ width: 36px; height: 36px; border-radius: 8px; background: #4E79A7; }}
        .brand h1 {{ font-size: 20px; font-weight: 700; }}
        .desc {{ color: #5A6A7E; font-size: 14px; margin-bottom: 24px; }}
        .card-header {{ font-size: 16px; font-weight: 600; margin-bottom: 20px; }}
        .card-header .dot {{ display: inline-block; width: 8px; height: 8px; border-radius: 50%; background: #F28E2B; }}
        .client-box {{ background: #F8FAFB; border: 1px solid #E2E8F0; border-radius: 8px; padding: 16px; margin-bottom: 20px; }}
        .client-row {{ display: flex; gap: 8px; margin-bottom: 6px; font-size: 13px; }}
        .client-label {{ color: #8A96A6; min-width: 70px; font-size: 12px; text-transform: uppercase; font-weight: 500; }}
        .client-val {{ font-family: 'SF Mono', Monaco, monospace; word-break: break-all; }}
        .client-val a {{ color: #4E79A7; text-decoration: none; }}
        .note {{ font-size: 13px; color: #5A6A7E; margin-bottom: 24px; }}
        .actions {{ display: flex; gap: 12px; justify-content: flex-end; }}
        .btn {{ padding: 10px 20px; border-radius: 8px; font-size: 14px; font-weight: 500; cursor: pointer; border: none; }}
        .btn-approve {{ background: #4E79A7; color: white; }}
        .btn-approve:hover {{ background: #6A9BC3; }}
        .btn-cancel {{ background: transparent; border: 1px solid #E2E8F0; color: #5A6A7E; }}
    </style>
</head>
<body>
    <div class="wrap">
        <div class="brand">
            {logo}
            <h1>{server_name}</h1>
        </div>
        {description}
        <div class="card">
            <div class="card-header"><span class="dot"></span> {client_name} is requesting access</div>
            <div class="client-box">
                <div class="client-row"><span class="client-label">Client</span><span class="client-val">{client_name}</span></div>
                {client_uri_row}
                {redirect_row}
            </div>
            <p class="note">Approving will redirect you to <strong>Google Sign-In</strong>. {server_name} uses your Google account to identify you.</p>
            <form method="post" action="{action}">
                <input type="hidden" name="state" value="{encoded_state}">
                <input type="hidden" name="csrf_token" value="{csrf_token}">
                <div class="actions">
                    <button type="button" class="btn btn-cancel" onclick="window.history.back()">Cancel</button>
                    <button type="submit" class="btn btn-approve">Approve</button>
                </div>
            </form>
        </div>
    </div>
</body>
</html>
"""

SUCCESS_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{server_name} - Signed In</title>
    <style>""" + _BASE_STYLE + """
        .card {{ max-width: 400px; width: 100%; text-align: center; padding: 40px 32px; }}
        .icon {{ width: 56px; height: 56px; border-radius: 50%; background: #E8F5E4; color: #59A14F;
                display: flex; align-items: center; justify-content: center; margin: 0 auto 20px; font-size: 28px; }}
        h1 {{ font-size: 20px; font-weight: 700; margin-bottom: 6px; }}
        .sub {{ color: #5A6A7E; font-size: 14px; margin-bottom: 24px; }}
        .status {{ font-size: 13px; color: #8A96A6; }}
        .status a {{ color: #4E79A7; }}
    </style>
</head>
<body>
    <div class="card">
        <div class="icon">&#10003;</div>
        <h1>Welcome, {user_name}</h1>
        <p class="sub">You're signed in to <strong>{server_name}</strong>.</p>
        <p class="status">You can close this tab and return to <strong>{client_name}</strong>.{continue_link}</p>
    </div>
    {redirect_script}
</body>
</html>
"""

DEFAULT_CLIENT_NAME = "Unknown MCP Client"


def render_consent_page(
    client: ClientInfo,
    server_name: str,
    server_description: str,
    encoded_state: str,
    csrf_token: str,
    action: str = "/authorize",
    server_logo: str = "",
) -> str:
    client_name = sanitize_text(client.client_name) if client and client.client_name else DEFAULT_CLIENT_NAME

    logo_url = safe_link(server_logo)
    if logo_url:
        logo = f'<img src="{logo_url}" alt="" class="brand-icon">'
    else:
        logo = '<div class="brand-icon"></div>'

    description = ""
    if server_description:
        description = f'<p class="desc">{sanitize_text(server_description)}</p>'

    client_uri_row = ""
    client_uri = safe_link(client.client_uri) if client else ""
    if client_uri:
        client_uri_row = (
            '<div class="client-row"><span class="client-label">Website</span>'
            f'<span class="client-val"><a href="{client_uri}" target="_blank" rel="noopener noreferrer">{client_uri}</a></span></div>'
        )

    redirect_row = ""
    redirect_uris = [safe_link(uri) for uri in (client.redirect_uris if client else [])]
    redirect_uris = [uri for uri in redirect_uris if uri]
    if redirect_uris:
        items = "".join(f"<div>{uri}</div>" for uri in redirect_uris)
        redirect_row = (
            '<div class="client-row"><span class="client-label">Redirect</span>'
            f'<span class="client-val">{items}</span></div>'
        )

    return CONSENT_PAGE.format(
        client_name=client_name,
        server_name=sanitize_text(server_name),
        logo=logo,
        description=description,
        client_uri_row=client_uri_row,
        redirect_row=redirect_row,
        action=sanitize_text(action),
        encoded_state=sanitize_text(encoded_state),
        csrf_token=sanitize_text(csrf_token),
    )


def _script_string(value: str) -> str:
    """JSON-encode a string for a <script> block without allowing tag breakout."""
    return json.dumps(value).replace("<", "\\u003c").replace(">", "\\u003e")


def render_success_page(user_name: str, client_name: str, redirect_to: str, server_name: str) -> str:
    safe_redirect = sanitize_url(redirect_to)

    continue_link = ""
    redirect_script = ""
    if safe_redirect:
        continue_link = f' <a href="{sanitize_text(safe_redirect)}">Continue</a>'
        redirect_script = f"<script>window.location.href={_script_string(safe_redirect)};</script>"

    return SUCCESS_PAGE.format(
        server_name=sanitize_text(server_name),
        user_name=sanitize_text(user_name),
        client_name=sanitize_text(client_name),
        continue_link=continue_link,
        redirect_script=redirect_script,
    )
