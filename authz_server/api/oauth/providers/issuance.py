"""Helpers shared by the token-issuing grant providers."""

from typing import Any, Dict, FrozenSet, Optional

from ..authorization import REFRESH_TOKEN, OAuth2Authorization
from ..clients import RegisteredClient
from ..context import ResourceOwner
from ..errors import TOKEN_ERROR_URI, ErrorCode, oauth2_error
from ..models import AccessTokenResult, AuthenticationRequest
from ..tokens import TokenGenerator

OPENID = "openid"
PRINCIPAL = "principal"


def require_client(request: AuthenticationRequest) -> RegisteredClient:
    """The authenticated client, or ``invalid_client``."""
    if request.client is None:
        raise oauth2_error(ErrorCode.INVALID_CLIENT, "Client authentication failed", TOKEN_ERROR_URI)
    return request.client


def require_grant(client: RegisteredClient, grant_type: str) -> None:
    if not client.check_grant_type(grant_type):
        raise oauth2_error(
            ErrorCode.UNAUTHORIZED_CLIENT,
            f"Client is not authorized for grant_type {grant_type}",
            TOKEN_ERROR_URI,
        )


def invalid_grant(description: Optional[str] = None):
    return oauth2_error(ErrorCode.INVALID_GRANT, description, TOKEN_ERROR_URI)


def owner_to_dict(owner: ResourceOwner) -> Dict[str, Any]:
    return {"name": owner.name, "claims": owner.claims, "auth_time": owner.auth_time}


def owner_from_authorization(authorization: OAuth2Authorization) -> ResourceOwner:
    data = authorization.attributes.get(PRINCIPAL) or {}
    return ResourceOwner(
        name=data.get("name", authorization.principal_name),
        claims=data.get("claims") or {},
        auth_time=data.get("auth_time") or 0,
    )


def issue_tokens(
    generator: TokenGenerator,
    authorization: OAuth2Authorization,
    client: RegisteredClient,
    scopes: FrozenSet[str],
    issuer: str,
    *,
    requested_scopes: Optional[FrozenSet[str]] = None,
    rotate_refresh_token: bool = True,
    nonce: Optional[str] = None,
) -> AccessTokenResult:
    """Issue access (and where applicable refresh and ID) tokens into ``authorization``.

    The caller persists the authorization.
    """
    access_token = generator.generate_access_token(
        client, authorization.principal_name, scopes, issuer, grant_type=authorization.grant_type
    )
    authorization.set_token(access_token)

    refresh_token = authorization.get_token(REFRESH_TOKEN)
    if client.check_grant_type(REFRESH_TOKEN) and not client.is_public:
        if refresh_token is None or rotate_refresh_token:
            refresh_token = generator.generate_refresh_token(authorization.authorized_scopes)
            authorization.set_token(refresh_token)
    else:
        refresh_token = None

    id_token = None
    if OPENID in scopes:
        owner = owner_from_authorization(authorization)
        id_token = generator.generate_id_token(
            client, owner, scopes, issuer, nonce=nonce, sid=authorization.id
        )
        authorization.set_token(id_token)

    return AccessTokenResult(
        principal=authorization.principal_name,
        client=client,
        access_token=access_token,
        refresh_token=refresh_token,
        id_token=id_token,
        requested_scopes=requested_scopes,
    )
