"""Pytest configuration for the authorization server tests.

Every test runs against an in-process application with in-memory stores;
resource-owner login is simulated with the ``X-Test-User`` header.
"""

import asyncio
import base64
from typing import Generator
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient
from starlette.authentication import AuthCredentials, AuthenticationBackend, SimpleUser

from authz_server.api.oauth.clients import (
    AUTHORIZATION_CODE,
    CLIENT_CREDENTIALS,
    CLIENT_SECRET_POST,
    NONE,
    REFRESH_TOKEN,
    RegisteredClient,
)
from authz_server.api.oauth.config import Settings
from authz_server.api.oauth.stores import (
    InMemoryOAuth2AuthorizationConsentService,
    InMemoryOAuth2AuthorizationService,
    InMemoryRegisteredClientRepository,
)
from authz_server.app import create_app

ISSUER = "http://testserver"
TEST_SECRET = "test-signing-secret-that-is-long-enough"
REDIRECT_URI = "https://client.example.com/callback"
PUBLIC_REDIRECT_URI = "http://127.0.0.1:8080/callback"
USER_HEADER = "X-Test-User"

# RFC 7636 appendix B
CODE_VERIFIER = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
CODE_CHALLENGE = "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


class ClaimsUser(SimpleUser):
    """Authenticated user carrying OpenID Connect claims"""

    def __init__(self, username: str, claims: dict):
        super().__init__(username)
        self.claims = claims


class HeaderAuthBackend(AuthenticationBackend):
    """Authenticates the resource owner named in ``X-Test-User``."""

    async def authenticate(self, conn):
        name = conn.headers.get(USER_HEADER)
        if not name:
            return None
        claims = {
            "name": name.title(),
            "email": f"{name}@example.com",
            "email_verified": True,
        }
        return AuthCredentials(["authenticated"]), ClaimsUser(name, claims)


def basic_auth(client_id: str, client_secret: str) -> dict:
    credentials = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
    return {"Authorization": f"Basic {credentials}"}


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def query_of(location: str) -> dict:
    """Single-valued query parameters of a redirect location"""
    return {key: values[0] for key, values in parse_qs(urlparse(location).query).items()}


def run(coroutine):
    """Run a store coroutine from a synchronous test."""
    return asyncio.run(coroutine)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        issuer=ISSUER,
        jwt_algorithm="HS256",
        jwt_secret=TEST_SECRET,
        storage="memory",
    )


@pytest.fixture
def web_client() -> RegisteredClient:
    """Confidential client using client_secret_basic, consent required."""
    return RegisteredClient(
        client_id="web-app",
        client_secret="web-secret",
        client_name="Web Application",
        redirect_uris=[REDIRECT_URI],
        grant_types=[AUTHORIZATION_CODE, REFRESH_TOKEN, CLIENT_CREDENTIALS],
        scope="openid profile email message.read message.write",
    )


@pytest.fixture
def trusted_client() -> RegisteredClient:
    """First-party confidential client that skips the consent step."""
    return RegisteredClient(
        client_id="trusted-app",
        client_secret="trusted-secret",
        client_name="Trusted Application",
        redirect_uris=[REDIRECT_URI],
        grant_types=[AUTHORIZATION_CODE, REFRESH_TOKEN],
        scope="openid profile email message.read",
        token_endpoint_auth_method=CLIENT_SECRET_POST,
        require_authorization_consent=False,
    )


@pytest.fixture
def public_client() -> RegisteredClient:
    """Public client; PKCE is mandatory and no refresh tokens are issued."""
    return RegisteredClient(
        client_id="spa",
        client_name="Single Page App",
        redirect_uris=[PUBLIC_REDIRECT_URI],
        grant_types=[AUTHORIZATION_CODE, REFRESH_TOKEN],
        scope="openid profile",
        token_endpoint_auth_method=NONE,
        require_authorization_consent=False,
        require_proof_key=True,
    )


@pytest.fixture
def service_client() -> RegisteredClient:
    """Machine client allowed to register other clients."""
    return RegisteredClient(
        client_id="registrar",
        client_secret="registrar-secret",
        grant_types=[CLIENT_CREDENTIALS],
        redirect_uris=[],
        response_types=[],
        scope="client.create message.read",
    )


@pytest.fixture
def client_repository(web_client, trusted_client, public_client, service_client):
    return InMemoryRegisteredClientRepository([web_client, trusted_client, public_client, service_client])


@pytest.fixture
def authorizations():
    return InMemoryOAuth2AuthorizationService()


@pytest.fixture
def consents():
    return InMemoryOAuth2AuthorizationConsentService()


@pytest.fixture
def app_factory(settings, client_repository, authorizations, consents):
    """Build an application sharing the test stores; keyword arguments go to ``create_app``."""

    def factory(**kwargs):
        kwargs.setdefault("clients", client_repository)
        kwargs.setdefault("authorizations", authorizations)
        kwargs.setdefault("consents", consents)
        kwargs.setdefault("authentication_backend", HeaderAuthBackend())
        return create_app(kwargs.pop("settings", settings), **kwargs)

    return factory


@pytest.fixture
def app(app_factory):
    return app_factory()


@pytest.fixture
def http_client(app) -> Generator[TestClient, None, None]:
    """Provide HTTP client for API tests; redirects are not followed."""
    with TestClient(app, base_url=ISSUER, follow_redirects=False) as client:
        yield client


@pytest.fixture
def authorize(http_client):
    """Drive the authorization endpoint up to the code redirect.

    Returns the redirect response; consent is granted for every requested
    scope when the client requires it.
    """

    def do_authorize(client_id, scope="openid profile", user="alice", redirect_uri=REDIRECT_URI, **extra):
        params = {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "scope": scope,
            "state": "client-state",
            **extra,
        }
        response = http_client.get("/oauth2/authorize", params=params, headers={USER_HEADER: user})
        assert response.status_code == 302, f"Authorization failed: {response.status_code} - {response.text}"

        location = response.headers["location"]
        if location.startswith("/oauth2/consent"):
            consent = query_of(location)
            response = http_client.post(
                "/oauth2/authorize",
                data={"client_id": client_id, "state": consent["state"], "scope": consent["scope"].split()},
                headers={USER_HEADER: user},
            )
            assert response.status_code == 302, f"Consent failed: {response.status_code} - {response.text}"
        return response

    return do_authorize


@pytest.fixture
def authorization_code(authorize):
    """Authorization code for ``web-app`` with scope ``openid profile``."""

    def get_code(client_id="web-app", scope="openid profile", **extra):
        response = authorize(client_id, scope=scope, **extra)
        params = query_of(response.headers["location"])
        assert "code" in params, f"No code in redirect: {response.headers['location']}"
        assert params["state"] == "client-state"
        return params["code"]

    return get_code


@pytest.fixture
def token_response(http_client, authorization_code):
    """Token response of a complete authorization code flow for ``web-app``."""
    code = authorization_code()
    response = http_client.post(
        "/oauth2/token",
        data={"grant_type": "authorization_code", "code": code, "redirect_uri": REDIRECT_URI},
        headers=basic_auth("web-app", "web-secret"),
    )
    assert response.status_code == 200, f"Token request failed: {response.status_code} - {response.text}"
    return response.json()


@pytest.fixture
def client_credentials_token(http_client):
    """Access token for ``registrar`` via the client credentials grant."""

    def get_token(scope="client.create"):
        response = http_client.post(
            "/oauth2/token",
            data={"grant_type": "client_credentials", "scope": scope},
            headers=basic_auth("registrar", "registrar-secret"),
        )
        assert response.status_code == 200, f"Token request failed: {response.status_code} - {response.text}"
        return response.json()["access_token"]

    return get_token
