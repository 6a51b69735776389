"""Token revocation (RFC 7009)."""

from typing import Iterable

from ..authorization import ACCESS_TOKEN, REFRESH_TOKEN
from ..errors import REVOCATION_ERROR_URI, ErrorCode, oauth2_error
from ..models import RevocationRequest, RevocationResult
from ..stores import OAuth2AuthorizationService
from .base import AuthenticationProvider
from .introspection import find_token
from .issuance import require_client
from ....shared.logger import log_debug, log_info, log_warning

# Hint values defined by RFC 7009
HINTABLE_TYPES = (ACCESS_TOKEN, REFRESH_TOKEN)


class RevocationAuthenticationProvider(AuthenticationProvider):
    """Revokes a token owned by the calling client.

    Unknown tokens and tokens owned by another client succeed silently.
    """

    request_types = (RevocationRequest,)

    def __init__(
        self,
        authorizations: OAuth2AuthorizationService,
        revocable_types: Iterable[str] = HINTABLE_TYPES,
    ):
        self.authorizations = authorizations
        self.revocable_types = frozenset(revocable_types)

    async def authenticate(self, request: RevocationRequest) -> RevocationResult:
        client = require_client(request)
        hint = request.token_type_hint

        if hint in HINTABLE_TYPES and hint not in self.revocable_types:
            raise oauth2_error(
                ErrorCode.UNSUPPORTED_TOKEN_TYPE,
                "OAuth 2.0 Token Revocation Parameter: token_type_hint",
                REVOCATION_ERROR_URI,
            )

        not_revoked = RevocationResult(principal=client.client_id, client=client)

        authorization, record = await find_token(self.authorizations, request.token, hint)
        if record is None:
            log_debug("Revocation of unknown token", component="oauth_revocation", client_id=client.client_id)
            return not_revoked

        if authorization.client_id != client.client_id:
            log_warning(
                "Client tried to revoke a token issued to another client",
                component="oauth_revocation",
                client_id=client.client_id,
                owner=authorization.client_id,
            )
            return not_revoked

        if record.token_type not in self.revocable_types:
            log_debug(
                "Token type is not revocable",
                component="oauth_revocation",
                client_id=client.client_id,
                token_type=record.token_type,
            )
            return not_revoked

        authorization.invalidate(record.token_type)
        await self.authorizations.save(authorization)
        log_info(
            "Token revoked",
            component="oauth_revocation",
            client_id=client.client_id,
            token_type=record.token_type,
            authorization_id=authorization.id,
        )
        return RevocationResult(principal=client.client_id, client=client, revoked=True)
