"""OpenID Connect UserInfo endpoint."""

import pytest

from .conftest import basic_auth, bearer

USERINFO_PATH = "/userinfo"


@pytest.mark.oauth
class TestUserInfo:
    """Claims are released according to the granted scopes."""

    def test_profile_claims(self, http_client, token_response):
        response = http_client.get(USERINFO_PATH, headers=bearer(token_response["access_token"]))
        assert response.status_code == 200, response.text
        assert response.json() == {"sub": "alice", "name": "Alice"}

    def test_email_scope_adds_email_claims(self, http_client, authorization_code):
        code = authorization_code(scope="openid profile email")
        tokens = http_client.post(
            "/oauth2/token",
            data={"grant_type": "authorization_code", "code": code, "redirect_uri": "https://client.example.com/callback"},
            headers=basic_auth("web-app", "web-secret"),
        ).json()

        response = http_client.post(USERINFO_PATH, headers=bearer(tokens["access_token"]))
        assert response.status_code == 200, response.text
        assert response.json() == {
            "sub": "alice",
            "name": "Alice",
            "email": "alice@example.com",
            "email_verified": True,
        }

    def test_missing_token(self, http_client):
        response = http_client.get(USERINFO_PATH)
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_token"
        assert response.headers["www-authenticate"].startswith('Bearer error="invalid_token"')

    def test_garbage_token(self, http_client):
        response = http_client.get(USERINFO_PATH, headers=bearer("not.a.jwt"))
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_token"

    def test_revoked_token(self, http_client, token_response):
        http_client.post(
            "/oauth2/revoke",
            data={"token": token_response["access_token"]},
            headers=basic_auth("web-app", "web-secret"),
        )
        response = http_client.get(USERINFO_PATH, headers=bearer(token_response["access_token"]))
        assert response.status_code == 401

    def test_requires_openid_scope(self, http_client, client_credentials_token):
        token = client_credentials_token("message.read")
        response = http_client.get(USERINFO_PATH, headers=bearer(token))
        assert response.status_code == 403
        assert response.json()["error"] == "insufficient_scope"
        assert 'scope="openid"' in response.headers["www-authenticate"]
