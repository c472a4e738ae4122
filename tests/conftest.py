"""
Shared pytest fixtures for the OAuth flow tests.

Google is replaced by an httpx.MockTransport; Supabase-backed stores are
swapped for the in-memory ones. Cookies are always passed as an explicit
Cookie header so each test controls exactly what the "browser" holds.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from _helpers import CLIENT_REDIRECT_URI, CODE_VERIFIER, COOKIE_KEY, JWT_SECRET, SERVER_URL, FakeGoogle, pkce_challenge
from config import Config
from main import create_app
from oauth.identity import MemoryIdentityStore
from oauth.kv import MemoryKVStore


@pytest.fixture
def config():
    return Config(
        {
            "SERVER_URL": SERVER_URL,
            "GOOGLE_CLIENT_ID": "google-client-id",
            "GOOGLE_CLIENT_SECRET": "google-client-secret",
            "COOKIE_ENCRYPTION_KEY": COOKIE_KEY,
            "JWT_SECRET": JWT_SECRET,
        }
    )


@pytest.fixture
def kv():
    return MemoryKVStore()


@pytest.fixture
def identities():
    return MemoryIdentityStore()


@pytest.fixture
def fake_google():
    return FakeGoogle()


@pytest.fixture
def app(config, kv, identities, fake_google):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_google.handler))
    return create_app(config, kv=kv, identities=identities, http_client=http_client)


@pytest.fixture
def client(app):
    return TestClient(app, base_url=SERVER_URL, follow_redirects=False, raise_server_exceptions=False)


@pytest.fixture
def registered_client(client):
    response = client.post(
        "/register",
        json={
            "client_name": "Claude",
            "client_uri": "https://claude.ai",
            "redirect_uris": [CLIENT_REDIRECT_URI],
        },
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def authorize_params(registered_client):
    return {
        "response_type": "code",
        "client_id": registered_client["client_id"],
        "redirect_uri": CLIENT_REDIRECT_URI,
        "scope": "mcp:tools",
        "state": "client-side-state",
        "code_challenge": pkce_challenge(CODE_VERIFIER),
        "code_challenge_method": "S256",
    }
