"""Token endpoint: grants, client authentication and parameter validation."""

import base64

import pytest
from authlib.jose import JsonWebToken
from fastapi.testclient import TestClient

from authz_server.api.oauth.authorization import ACCESS_TOKEN
from authz_server.api.oauth.clients import AUTHORIZATION_CODE, REFRESH_TOKEN

from .conftest import (
    CODE_CHALLENGE,
    CODE_VERIFIER,
    ISSUER,
    PUBLIC_REDIRECT_URI,
    REDIRECT_URI,
    TEST_SECRET,
    basic_auth,
    query_of,
    run,
)

TOKEN_PATH = "/oauth2/token"


def exchange(http_client, code, headers=None, **extra):
    data = {"grant_type": "authorization_code", "code": code, "redirect_uri": REDIRECT_URI, **extra}
    return http_client.post(TOKEN_PATH, data=data, headers=headers or basic_auth("web-app", "web-secret"))


@pytest.mark.oauth
@pytest.mark.token
class TestAuthorizationCodeGrant:
    """authorization_code exchange"""

    def test_exchange_issues_tokens(self, http_client, authorization_code, app):
        response = exchange(http_client, authorization_code())
        assert response.status_code == 200, response.text
        assert response.headers["cache-control"] == "no-store"

        body = response.json()
        assert body["token_type"] == "Bearer"
        assert body["expires_in"] == 1800
        assert body["refresh_token"]
        assert body["id_token"]
        # Granted scope equals the requested scope
        assert "scope" not in body

        claims = app.state.token_generator.decode(body["access_token"], ISSUER)
        assert claims["sub"] == "alice"
        assert claims["client_id"] == "web-app"
        assert claims["aud"] == ["web-app"]
        assert claims["scope"] == "openid profile"

    def test_id_token_carries_user_claims_and_nonce(self, http_client, authorization_code, app):
        body = exchange(http_client, authorization_code(nonce="n-0S6_WzA2Mj")).json()

        id_token = JsonWebToken(["HS256"]).decode(body["id_token"], TEST_SECRET)
        assert id_token["iss"] == ISSUER
        assert id_token["sub"] == "alice"
        assert id_token["azp"] == "web-app"
        assert id_token["nonce"] == "n-0S6_WzA2Mj"
        assert id_token["email"] == "alice@example.com"

    def test_client_secret_post(self, http_client, authorization_code):
        code = authorization_code(client_id="trusted-app")
        response = http_client.post(
            TOKEN_PATH,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": REDIRECT_URI,
                "client_id": "trusted-app",
                "client_secret": "trusted-secret",
            },
        )
        assert response.status_code == 200, response.text

    def test_code_cannot_be_reused(self, http_client, authorization_code):
        code = authorization_code()
        first = exchange(http_client, code)
        assert first.status_code == 200

        second = exchange(http_client, code)
        assert second.status_code == 400
        assert second.json()["error"] == "invalid_grant"

        # Tokens issued from the replayed code are revoked
        introspection = http_client.post(
            "/oauth2/introspect",
            data={"token": first.json()["access_token"]},
            headers=basic_auth("web-app", "web-secret"),
        )
        assert introspection.json() == {"active": False}

    def test_code_claimed_by_concurrent_exchange(self, http_client, authorization_code, authorizations):
        code = authorization_code()
        # Another worker consumed the code between lookup and issuance
        assert run(authorizations.claim_token(code, AUTHORIZATION_CODE))

        response = exchange(http_client, code)
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"

        authorization = run(authorizations.find_by_token(code, AUTHORIZATION_CODE))
        assert authorization.get_token(AUTHORIZATION_CODE).invalidated
        assert ACCESS_TOKEN not in authorization.tokens

    def test_redirect_uri_must_match(self, http_client, authorization_code):
        response = exchange(http_client, authorization_code(), redirect_uri="https://client.example.com/other")
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"

    def test_code_bound_to_client(self, http_client, authorization_code):
        code = authorization_code()
        response = http_client.post(
            TOKEN_PATH,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": REDIRECT_URI,
                "client_id": "trusted-app",
                "client_secret": "trusted-secret",
            },
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"

    def test_unknown_code(self, http_client):
        response = exchange(http_client, "not-a-code")
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"


@pytest.mark.oauth
@pytest.mark.token
class TestPublicClientPkce:
    """Public clients authenticate with the PKCE verifier only."""

    @pytest.fixture
    def public_code(self, authorize):
        response = authorize(
            "spa",
            redirect_uri=PUBLIC_REDIRECT_URI,
            code_challenge=CODE_CHALLENGE,
            code_challenge_method="S256",
        )
        return query_of(response.headers["location"])["code"]

    def public_exchange(self, http_client, code, **extra):
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": PUBLIC_REDIRECT_URI,
            "client_id": "spa",
            **extra,
        }
        return http_client.post(TOKEN_PATH, data=data)

    def test_valid_verifier(self, http_client, public_code):
        response = self.public_exchange(http_client, public_code, code_verifier=CODE_VERIFIER)
        assert response.status_code == 200, response.text
        body = response.json()
        assert "refresh_token" not in body
        assert body["id_token"]

    def test_wrong_verifier(self, http_client, public_code):
        response = self.public_exchange(http_client, public_code, code_verifier="x" * 43)
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"

    def test_missing_verifier_fails_client_authentication(self, http_client, public_code):
        response = self.public_exchange(http_client, public_code)
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_client"
        assert "www-authenticate" not in response.headers


@pytest.mark.oauth
@pytest.mark.token
class TestRefreshTokenGrant:
    """refresh_token grant with rotation"""

    def refresh(self, http_client, refresh_token, **extra):
        return http_client.post(
            TOKEN_PATH,
            data={"grant_type": "refresh_token", "refresh_token": refresh_token, **extra},
            headers=basic_auth("web-app", "web-secret"),
        )

    def test_refresh_rotates_token(self, http_client, token_response):
        response = self.refresh(http_client, token_response["refresh_token"])
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["access_token"] != token_response["access_token"]
        assert body["refresh_token"] != token_response["refresh_token"]

        stale = self.refresh(http_client, token_response["refresh_token"])
        assert stale.status_code == 400
        assert stale.json()["error"] == "invalid_grant"

    def test_refresh_token_reused_when_configured(self, app_factory, settings, token_response):
        app = app_factory(settings=settings.model_copy(update={"reuse_refresh_tokens": True}))
        with TestClient(app, base_url=ISSUER) as client:
            first = self.refresh(client, token_response["refresh_token"])
            second = self.refresh(client, token_response["refresh_token"])
        assert first.status_code == 200, first.text
        assert second.status_code == 200, second.text
        assert first.json()["refresh_token"] == token_response["refresh_token"]
        assert second.json()["access_token"] != first.json()["access_token"]

    def test_narrower_scope(self, http_client, token_response, app):
        response = self.refresh(http_client, token_response["refresh_token"], scope="profile")
        assert response.status_code == 200, response.text
        body = response.json()
        assert "id_token" not in body
        claims = app.state.token_generator.decode(body["access_token"], ISSUER)
        assert claims["scope"] == "profile"

    def test_broader_scope_rejected(self, http_client, token_response):
        response = self.refresh(http_client, token_response["refresh_token"], scope="openid message.read")
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_scope"

    def test_refresh_token_bound_to_client(self, http_client, token_response):
        response = http_client.post(
            TOKEN_PATH,
            data={
                "grant_type": "refresh_token",
                "refresh_token": token_response["refresh_token"],
                "client_id": "trusted-app",
                "client_secret": "trusted-secret",
            },
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"


@pytest.mark.oauth
@pytest.mark.token
class TestClientCredentialsGrant:
    """client_credentials grant"""

    def test_issues_access_token_only(self, http_client, app):
        response = http_client.post(
            TOKEN_PATH,
            data={"grant_type": "client_credentials", "scope": "message.read"},
            headers=basic_auth("registrar", "registrar-secret"),
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert set(body) == {"access_token", "token_type", "expires_in"}

        claims = app.state.token_generator.decode(body["access_token"], ISSUER)
        assert claims["sub"] == "registrar"
        assert claims["scope"] == "message.read"

    def test_scope_outside_registration(self, http_client):
        response = http_client.post(
            TOKEN_PATH,
            data={"grant_type": "client_credentials", "scope": "openid"},
            headers=basic_auth("registrar", "registrar-secret"),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_scope"

    def test_client_without_grant(self, http_client):
        response = http_client.post(
            TOKEN_PATH,
            data={"grant_type": "client_credentials", "client_id": "trusted-app", "client_secret": "trusted-secret"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "unauthorized_client"

    def test_grant_disabled_on_server(self, app_factory):
        app = app_factory(grant_types=(AUTHORIZATION_CODE, REFRESH_TOKEN))
        with TestClient(app, base_url=ISSUER) as client:
            response = client.post(
                TOKEN_PATH,
                data={"grant_type": "client_credentials"},
                headers=basic_auth("registrar", "registrar-secret"),
            )
        assert response.status_code == 400
        assert response.json()["error"] == "unsupported_grant_type"


@pytest.mark.oauth
@pytest.mark.token
class TestTokenRequestValidation:
    """Client authentication and malformed requests"""

    def test_unknown_grant_type(self, http_client):
        response = http_client.post(
            TOKEN_PATH,
            data={"grant_type": "password", "username": "alice", "password": "secret"},
            headers=basic_auth("web-app", "web-secret"),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "unsupported_grant_type"

    def test_missing_grant_type(self, http_client):
        response = http_client.post(TOKEN_PATH, data={}, headers=basic_auth("web-app", "web-secret"))
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_request"
        assert body["error_description"] == "OAuth 2.0 Parameter: grant_type"

    def test_repeated_parameter(self, http_client):
        response = http_client.post(
            TOKEN_PATH,
            data={"grant_type": "client_credentials", "scope": ["message.read", "client.create"]},
            headers=basic_auth("registrar", "registrar-secret"),
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "invalid_request"
        assert body["error_description"] == "OAuth 2.0 Parameter: scope"

    def test_repeated_grant_type_in_query_and_body(self, http_client):
        response = http_client.post(
            f"{TOKEN_PATH}?grant_type=client_credentials",
            data={"grant_type": "client_credentials"},
            headers=basic_auth("registrar", "registrar-secret"),
        )
        assert response.status_code == 400
        assert response.json()["error_description"] == "OAuth 2.0 Parameter: grant_type"

    def test_wrong_secret_basic(self, http_client):
        response = http_client.post(
            TOKEN_PATH,
            data={"grant_type": "client_credentials"},
            headers=basic_auth("registrar", "wrong"),
        )
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_client"
        assert response.headers["www-authenticate"] == 'Basic realm="oauth2"'

    def test_unknown_client(self, http_client):
        response = http_client.post(
            TOKEN_PATH,
            data={"grant_type": "client_credentials", "client_id": "nobody", "client_secret": "x"},
        )
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_client"

    def test_unregistered_authentication_method(self, http_client):
        # web-app is registered for client_secret_basic
        response = http_client.post(
            TOKEN_PATH,
            data={"grant_type": "client_credentials", "client_id": "web-app", "client_secret": "web-secret"},
        )
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_client"

    def test_malformed_basic_header(self, http_client):
        response = http_client.post(
            TOKEN_PATH,
            data={"grant_type": "client_credentials"},
            headers={"Authorization": "Basic not base64!"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_basic_header_without_secret(self, http_client):
        credentials = base64.b64encode(b"registrar").decode()
        response = http_client.post(
            TOKEN_PATH,
            data={"grant_type": "client_credentials"},
            headers={"Authorization": f"Basic {credentials}"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_basic_credentials_are_form_decoded(self, http_client):
        # RFC 6749 section 2.3.1: id and secret are form-urlencoded before base64
        response = http_client.post(
            TOKEN_PATH,
            data={"grant_type": "client_credentials"},
            headers=basic_auth("registrar", "registrar%2Dsecret"),
        )
        assert response.status_code == 200, response.text

    def test_no_client_credentials(self, http_client):
        response = http_client.post(TOKEN_PATH, data={"grant_type": "client_credentials"})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_client"

    def test_get_is_not_handled(self, http_client):
        response = http_client.get(TOKEN_PATH)
        assert response.status_code in (404, 405)
