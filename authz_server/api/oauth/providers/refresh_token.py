"""refresh_token grant (RFC 6749 section 6)."""

from ..authorization import REFRESH_TOKEN
from ..errors import TOKEN_ERROR_URI, ErrorCode, oauth2_error
from ..models import AccessTokenResult, RefreshTokenRequest
from ..stores import OAuth2AuthorizationService
from ..tokens import TokenGenerator
from .base import AuthenticationProvider
from .issuance import invalid_grant, issue_tokens, require_client, require_grant
from ....shared.logger import log_info


class RefreshTokenAuthenticationProvider(AuthenticationProvider):
    request_types = (RefreshTokenRequest,)

    def __init__(
        self,
        authorizations: OAuth2AuthorizationService,
        generator: TokenGenerator,
        reuse_refresh_tokens: bool = False,
    ):
        self.authorizations = authorizations
        self.generator = generator
        self.reuse_refresh_tokens = reuse_refresh_tokens

    async def authenticate(self, request: RefreshTokenRequest) -> AccessTokenResult:
        client = require_client(request)
        require_grant(client, REFRESH_TOKEN)

        authorization = await self.authorizations.find_by_token(request.refresh_token, REFRESH_TOKEN)
        if authorization is None or authorization.client_id != client.client_id:
            raise invalid_grant()

        refresh_token = authorization.get_token(REFRESH_TOKEN)
        if not refresh_token.is_active():
            raise invalid_grant()

        scopes = request.scopes or authorization.authorized_scopes
        if not scopes <= authorization.authorized_scopes:
            raise oauth2_error(ErrorCode.INVALID_SCOPE, "OAuth 2.0 Parameter: scope", TOKEN_ERROR_URI)

        result = issue_tokens(
            self.generator,
            authorization,
            client,
            scopes,
            request.issuer,
            requested_scopes=scopes,
            rotate_refresh_token=not self.reuse_refresh_tokens,
        )
        await self.authorizations.save(authorization)

        log_info(
            "Access token refreshed",
            component="oauth_token",
            client_id=client.client_id,
            principal=authorization.principal_name,
            rotated=not self.reuse_refresh_tokens,
        )
        return result
