"""client_credentials grant (RFC 6749 section 4.4)."""

from ..clients import CLIENT_CREDENTIALS
from ..authorization import OAuth2Authorization
from ..errors import TOKEN_ERROR_URI, ErrorCode, oauth2_error
from ..models import AccessTokenResult, ClientCredentialsRequest
from ..stores import OAuth2AuthorizationService
from ..tokens import TokenGenerator
from .base import AuthenticationProvider
from .issuance import require_client, require_grant
from ....shared.logger import log_info


class ClientCredentialsAuthenticationProvider(AuthenticationProvider):
    request_types = (ClientCredentialsRequest,)

    def __init__(self, authorizations: OAuth2AuthorizationService, generator: TokenGenerator):
        self.authorizations = authorizations
        self.generator = generator

    async def authenticate(self, request: ClientCredentialsRequest) -> AccessTokenResult:
        client = require_client(request)
        require_grant(client, CLIENT_CREDENTIALS)

        if not request.scopes <= client.scopes:
            raise oauth2_error(ErrorCode.INVALID_SCOPE, "OAuth 2.0 Parameter: scope", TOKEN_ERROR_URI)

        authorization = OAuth2Authorization(
            client_id=client.client_id,
            principal_name=client.client_id,
            grant_type=CLIENT_CREDENTIALS,
            authorized_scopes=request.scopes,
        )
        access_token = self.generator.generate_access_token(
            client, client.client_id, request.scopes, request.issuer, grant_type=CLIENT_CREDENTIALS
        )
        authorization.set_token(access_token)
        await self.authorizations.save(authorization)

        log_info(
            "Client credentials token issued",
            component="oauth_token",
            client_id=client.client_id,
            scope=" ".join(sorted(request.scopes)),
        )
        return AccessTokenResult(
            principal=client.client_id,
            client=client,
            access_token=access_token,
            requested_scopes=request.scopes,
        )
