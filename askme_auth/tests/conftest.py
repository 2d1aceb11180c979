"""
Shared fixtures for the authentication test suite.
"""

import asyncio
import re
import time
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi import Response
from starlette.requests import Request

from askme_auth.config import Settings


TEST_SECRET = "test-session-secret-0123456789abcdef0123456789"
TEST_CLIENT_ID = "11111111-2222-3333-4444-555555555555"
TEST_TENANT_ID = "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"

PSEUDONYM_PATTERN = re.compile(r"^[0-9a-f]{4}-[0-9a-f]{5}-[0-9a-f]{4}-[0-9a-f]{4}$")

GRAPH_ME_URL = "https://graph.microsoft.com/v1.0/me"

GRAPH_PROFILE = {
    "id": "graph-user-id-123",
    "displayName": "Somchai Jaidee",
    "mail": "somchai@askme.co.th",
    "givenName": "Somchai",
    "surname": "Jaidee",
    "userPrincipalName": "somchai@askme.onmicrosoft.com",
    "preferredLanguage": "th-TH",
}


class ProviderStub:
    """Records requests and answers token / profile calls."""

    def __init__(self, token_status=200, token_body=None, profile_status=200, profile_body=None, delay=0):
        self.requests = []
        self.token_status = token_status
        self.token_body = token_body if token_body is not None else {
            "access_token": "provider-access-token",
            "token_type": "Bearer",
            "expires_in": 3600,
        }
        self.profile_status = profile_status
        self.profile_body = profile_body if profile_body is not None else GRAPH_PROFILE
        self.delay = delay

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)

        if request.url.path.endswith("/token"):
            return httpx.Response(self.token_status, json=self.token_body)
        if str(request.url) == GRAPH_ME_URL:
            return httpx.Response(self.profile_status, json=self.profile_body)
        return httpx.Response(404)

    def form(self, index=0):
        return {key: values[0] for key, values in parse_qs(self.requests[index].content.decode()).items()}


def make_settings(**overrides) -> Settings:
    """Build settings that ignore the environment and any local .env file."""
    values = {
        "APP_ENV": "test",
        "SESSION_SECRET": TEST_SECRET,
        "OIDC_TENANT_ID": TEST_TENANT_ID,
        "OIDC_CLIENT_ID": TEST_CLIENT_ID,
        "OIDC_CLIENT_SECRET": "test-client-secret",
        "OIDC_CALLBACK_URL": "http://localhost:3000/oidc/callback",
        "LOCAL_ADMIN_EMAIL": "admin@example.com",
        "LOCAL_ADMIN_PASSWORD": "correct-horse",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_request(cookies=None) -> Request:
    """Minimal ASGI request carrying the given cookies."""
    headers = []
    if cookies:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        headers.append((b"cookie", cookie_header.encode("latin-1")))

    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": headers,
    }
    return Request(scope)


def set_cookie_headers(response: Response):
    return [
        value.decode("latin-1")
        for name, value in response.raw_headers
        if name == b"set-cookie"
    ]


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def mock_settings():
    """Settings with unsigned mock tokens enabled"""
    return make_settings(ENABLE_MOCK_AUTH=True)


@pytest.fixture
def now():
    """Fixed clock, in unix seconds"""
    return int(time.time())
