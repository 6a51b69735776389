"""authorization_code grant (RFC 6749 section 4.1.3, PKCE per RFC 7636)."""

import secrets
from typing import Optional

from authlib.oauth2.rfc7636 import create_s256_code_challenge

from ..authorization import AUTHORIZATION_CODE, AUTHORIZATION_REQUEST, OAuth2Authorization
from ..clients import RegisteredClient
from ..models import AccessTokenResult, AuthorizationCodeRequest
from ..stores import OAuth2AuthorizationService
from ..tokens import TokenGenerator
from .base import AuthenticationProvider
from .issuance import invalid_grant, issue_tokens, require_client, require_grant
from ....shared.logger import log_info, log_warning


def verify_code_verifier(
    client: RegisteredClient, authorization_request: dict, code_verifier: Optional[str]
) -> None:
    """Raise ``invalid_grant`` unless the verifier matches the stored challenge."""
    challenge = authorization_request.get("code_challenge")
    if not challenge:
        if client.is_public or client.require_proof_key or code_verifier:
            raise invalid_grant("OAuth 2.0 Parameter: code_verifier")
        return

    if not code_verifier:
        raise invalid_grant("OAuth 2.0 Parameter: code_verifier")
    expected = create_s256_code_challenge(code_verifier)
    if not secrets.compare_digest(expected, challenge):
        raise invalid_grant("OAuth 2.0 Parameter: code_verifier")


class AuthorizationCodeAuthenticationProvider(AuthenticationProvider):
    request_types = (AuthorizationCodeRequest,)

    def __init__(self, authorizations: OAuth2AuthorizationService, generator: TokenGenerator):
        self.authorizations = authorizations
        self.generator = generator

    async def authenticate(self, request: AuthorizationCodeRequest) -> AccessTokenResult:
        client = require_client(request)
        require_grant(client, AUTHORIZATION_CODE)

        authorization: Optional[OAuth2Authorization] = await self.authorizations.find_by_token(
            request.code, AUTHORIZATION_CODE
        )
        if authorization is None or authorization.client_id != client.client_id:
            raise invalid_grant()

        code = authorization.get_token(AUTHORIZATION_CODE)
        if code.invalidated:
            await self._revoke_replayed(authorization, client)
            raise invalid_grant()
        if code.is_expired():
            raise invalid_grant()

        authorization_request = authorization.attributes.get(AUTHORIZATION_REQUEST) or {}
        authorized_redirect_uri = authorization_request.get("redirect_uri")
        if authorized_redirect_uri and authorized_redirect_uri != request.redirect_uri:
            raise invalid_grant("OAuth 2.0 Parameter: redirect_uri")

        verify_code_verifier(client, authorization_request, request.code_verifier)

        # A concurrent exchange of the same code got here first
        if not await self.authorizations.claim_token(code.value, AUTHORIZATION_CODE, code.expires_at):
            current = await self.authorizations.find_by_id(authorization.id)
            await self._revoke_replayed(current or authorization, client)
            raise invalid_grant()

        result = issue_tokens(
            self.generator,
            authorization,
            client,
            authorization.authorized_scopes,
            request.issuer,
            requested_scopes=frozenset(authorization_request.get("scopes") or ()),
            nonce=authorization_request.get("nonce"),
        )
        authorization.invalidate(AUTHORIZATION_CODE)
        await self.authorizations.save(authorization)

        log_info(
            "Authorization code exchanged",
            component="oauth_token",
            client_id=client.client_id,
            principal=authorization.principal_name,
            scope=" ".join(sorted(authorization.authorized_scopes)),
        )
        return result

    async def _revoke_replayed(self, authorization: OAuth2Authorization, client: RegisteredClient) -> None:
        """Replayed code: revoke everything issued from it."""
        authorization.invalidate_all()
        await self.authorizations.save(authorization)
        log_warning(
            "Authorization code reused, tokens invalidated",
            component="oauth_token",
            client_id=client.client_id,
            authorization_id=authorization.id,
        )
