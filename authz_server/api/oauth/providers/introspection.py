"""Token introspection (RFC 7662)."""

from typing import Any, Dict, Optional, Tuple

from ..authorization import ACCESS_TOKEN, TOKEN_TYPES, OAuth2Authorization, OAuth2TokenRecord
from ..models import IntrospectionRequest, IntrospectionResult
from ..stores import OAuth2AuthorizationService
from ..tokens import scope_string
from .base import AuthenticationProvider
from .issuance import require_client
from ....shared.logger import log_debug

INACTIVE = {"active": False}

# Claims copied from a self-contained token
_TOKEN_CLAIMS = ("exp", "iat", "nbf", "sub", "aud", "iss", "jti")


async def find_token(
    authorizations: OAuth2AuthorizationService, token: str, hint: Optional[str]
) -> Tuple[Optional[OAuth2Authorization], Optional[OAuth2TokenRecord]]:
    """Look the token up under the hinted kind first, then under every kind."""
    authorization = None
    if hint in TOKEN_TYPES:
        authorization = await authorizations.find_by_token(token, hint)
    if authorization is None:
        for token_type in TOKEN_TYPES:
            authorization = await authorizations.find_by_token(token, token_type)
            if authorization is not None:
                break
    if authorization is None:
        return None, None
    return authorization, authorization.find_token(token)


def introspection_claims(authorization: OAuth2Authorization, record: OAuth2TokenRecord) -> Dict[str, Any]:
    claims: Dict[str, Any] = {
        "active": True,
        "client_id": authorization.client_id,
        "username": authorization.principal_name,
        "iat": record.issued_at,
    }
    if record.expires_at:
        claims["exp"] = record.expires_at
    if record.scopes:
        claims["scope"] = scope_string(record.scopes)
    if record.token_type == ACCESS_TOKEN:
        claims["token_type"] = "Bearer"
    for name in _TOKEN_CLAIMS:
        if name in record.claims:
            claims[name] = record.claims[name]
    return claims


class IntrospectionAuthenticationProvider(AuthenticationProvider):
    request_types = (IntrospectionRequest,)

    def __init__(self, authorizations: OAuth2AuthorizationService):
        self.authorizations = authorizations

    async def authenticate(self, request: IntrospectionRequest) -> IntrospectionResult:
        client = require_client(request)

        authorization, record = await find_token(self.authorizations, request.token, request.token_type_hint)
        if record is None or not record.is_active():
            log_debug(
                "Introspected token is not active",
                component="oauth_introspection",
                client_id=client.client_id,
                found=record is not None,
            )
            return IntrospectionResult(principal=client.client_id, client=client, claims=dict(INACTIVE))

        return IntrospectionResult(
            principal=client.client_id,
            client=client,
            claims=introspection_claims(authorization, record),
        )
