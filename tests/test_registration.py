"""Dynamic client registration (RFC 7591)."""

import pytest

from authz_server.api.oauth.config import Settings
from authz_server.api.oauth.errors import OAuth2AuthenticationError
from authz_server.api.oauth.models import ClientRegistrationRequest
from authz_server.api.oauth.registration import build_registered_client, validate_redirect_uri

from .conftest import basic_auth, bearer, run

REGISTER_PATH = "/connect/register"

CLIENT_METADATA = {
    "client_name": "Registered App",
    "redirect_uris": ["https://registered.example.com/callback"],
    "grant_types": ["authorization_code", "refresh_token"],
    "scope": "openid profile",
}


@pytest.mark.oauth
@pytest.mark.registration
class TestClientRegistration:
    """Registration with an initial access token"""

    @pytest.fixture
    def registered(self, http_client, client_credentials_token):
        response = http_client.post(REGISTER_PATH, json=CLIENT_METADATA, headers=bearer(client_credentials_token()))
        assert response.status_code == 201, f"Registration failed: {response.status_code} - {response.text}"
        return response.json()

    def test_register_client(self, registered, client_repository):
        assert registered["client_id"]
        assert registered["client_secret"]
        assert registered["client_secret_expires_at"] == 0
        assert registered["client_name"] == "Registered App"
        assert registered["token_endpoint_auth_method"] == "client_secret_basic"
        assert registered["response_types"] == ["code"]
        assert registered["registration_access_token"]
        assert registered["registration_client_uri"] == (
            f"http://testserver/connect/register?client_id={registered['client_id']}"
        )

        client = run(client_repository.find_by_client_id(registered["client_id"]))
        assert client.redirect_uris == CLIENT_METADATA["redirect_uris"]

    def test_registered_client_can_authenticate(self, http_client, registered):
        response = http_client.post(
            "/oauth2/introspect",
            data={"token": "anything"},
            headers=basic_auth(registered["client_id"], registered["client_secret"]),
        )
        assert response.status_code == 200
        assert response.json() == {"active": False}

    def test_initial_token_is_single_use(self, http_client, client_credentials_token):
        token = client_credentials_token()
        first = http_client.post(REGISTER_PATH, json=CLIENT_METADATA, headers=bearer(token))
        assert first.status_code == 201

        second = http_client.post(REGISTER_PATH, json=CLIENT_METADATA, headers=bearer(token))
        assert second.status_code == 401
        assert second.json()["error"] == "invalid_token"

    def test_requires_client_create_scope(self, http_client, client_credentials_token):
        token = client_credentials_token("message.read")
        response = http_client.post(REGISTER_PATH, json=CLIENT_METADATA, headers=bearer(token))
        assert response.status_code == 403
        assert response.json()["error"] == "insufficient_scope"

    def test_requires_token(self, http_client):
        response = http_client.post(REGISTER_PATH, json=CLIENT_METADATA)
        assert response.status_code == 401

    def test_invalid_redirect_uri(self, http_client, client_credentials_token):
        metadata = {**CLIENT_METADATA, "redirect_uris": ["http://registered.example.com/callback"]}
        response = http_client.post(REGISTER_PATH, json=metadata, headers=bearer(client_credentials_token()))
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_redirect_uri"

    def test_malformed_metadata(self, http_client, client_credentials_token):
        response = http_client.post(
            REGISTER_PATH,
            content=b"{not json",
            headers={**bearer(client_credentials_token()), "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_client_metadata"

    def test_wrongly_typed_metadata(self, http_client, client_credentials_token):
        metadata = {**CLIENT_METADATA, "redirect_uris": "https://registered.example.com/callback"}
        response = http_client.post(REGISTER_PATH, json=metadata, headers=bearer(client_credentials_token()))
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_client_metadata"


@pytest.mark.oauth
@pytest.mark.registration
class TestClientRead:
    """Client read with the registration access token"""

    @pytest.fixture
    def registered(self, http_client, client_credentials_token):
        response = http_client.post(REGISTER_PATH, json=CLIENT_METADATA, headers=bearer(client_credentials_token()))
        assert response.status_code == 201, response.text
        return response.json()

    def test_read_own_registration(self, http_client, registered):
        response = http_client.get(
            REGISTER_PATH,
            params={"client_id": registered["client_id"]},
            headers=bearer(registered["registration_access_token"]),
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["client_id"] == registered["client_id"]
        assert body["redirect_uris"] == CLIENT_METADATA["redirect_uris"]
        assert "client_secret" not in body

    def test_read_other_client(self, http_client, registered):
        response = http_client.get(
            REGISTER_PATH,
            params={"client_id": "web-app"},
            headers=bearer(registered["registration_access_token"]),
        )
        assert response.status_code == 403
        assert response.json()["error"] == "invalid_client"

    def test_missing_client_id(self, http_client, registered):
        response = http_client.get(REGISTER_PATH, headers=bearer(registered["registration_access_token"]))
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_registration_token_cannot_register(self, http_client, registered):
        response = http_client.post(
            REGISTER_PATH, json=CLIENT_METADATA, headers=bearer(registered["registration_access_token"])
        )
        assert response.status_code == 403


@pytest.mark.unit
@pytest.mark.registration
class TestRegistrationRules:
    """Metadata validation without the HTTP layer"""

    @pytest.fixture
    def settings(self):
        return Settings(jwt_algorithm="HS256", jwt_secret="x" * 32, client_secret_lifetime=3600)

    @pytest.mark.parametrize("uri", [
        "https://app.example.com/cb",
        "http://localhost:3000/cb",
        "http://127.0.0.1/cb",
        "http://[::1]:8080/cb",
    ])
    def test_accepted_redirect_uris(self, uri):
        validate_redirect_uri(uri)

    @pytest.mark.parametrize("uri", [
        "http://app.example.com/cb",
        "https://app.example.com/cb#fragment",
        "myapp://callback",
        "/relative/callback",
    ])
    def test_rejected_redirect_uris(self, uri):
        with pytest.raises(OAuth2AuthenticationError) as exc_info:
            validate_redirect_uri(uri)
        assert exc_info.value.error_code == "invalid_redirect_uri"

    def test_public_client_gets_no_secret_and_requires_pkce(self, settings):
        client = build_registered_client(
            ClientRegistrationRequest(
                redirect_uris=["http://127.0.0.1:9000/cb"], token_endpoint_auth_method="none"
            ),
            settings,
        )
        assert client.client_secret is None
        assert client.is_public
        assert client.require_proof_key

    def test_secret_lifetime_applied(self, settings):
        client = build_registered_client(ClientRegistrationRequest(redirect_uris=["https://a.example.com/cb"]), settings)
        assert client.client_secret_expires_at == client.client_id_issued_at + 3600

    def test_public_client_credentials_rejected(self, settings):
        with pytest.raises(OAuth2AuthenticationError) as exc_info:
            build_registered_client(
                ClientRegistrationRequest(grant_types=["client_credentials"], token_endpoint_auth_method="none"),
                settings,
            )
        assert exc_info.value.error_code == "invalid_client_metadata"

    def test_code_grant_requires_redirect_uris(self, settings):
        with pytest.raises(OAuth2AuthenticationError) as exc_info:
            build_registered_client(ClientRegistrationRequest(), settings)
        assert exc_info.value.error_code == "invalid_redirect_uri"

    def test_unknown_grant_type(self, settings):
        with pytest.raises(OAuth2AuthenticationError):
            build_registered_client(
                ClientRegistrationRequest(grant_types=["password"], redirect_uris=["https://a.example.com/cb"]),
                settings,
            )

    def test_response_type_must_match_grant(self, settings):
        with pytest.raises(OAuth2AuthenticationError):
            build_registered_client(
                ClientRegistrationRequest(grant_types=["client_credentials"], response_types=["code"]),
                settings,
            )
