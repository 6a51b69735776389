"""Bearer token protection for UserInfo and client registration.

Authlib's ResourceProtector is synchronous, so validation is wrapped in an
async protector usable from FastAPI handlers. The validator keeps Authlib's
``BearerTokenValidator`` contract for signature checks and scope matching.
"""

from typing import Any, Dict, Optional, Sequence

from authlib.jose.errors import JoseError
from authlib.oauth2.rfc6750 import BearerTokenValidator
from fastapi import HTTPException, Request

from .authorization import ACCESS_TOKEN
from .errors import BEARER_ERROR_URI, ErrorCode, OAuth2Error
from .stores import OAuth2AuthorizationService
from .tokens import TokenGenerator
from ...shared.client_ip import get_external_url, get_real_client_ip
from ...shared.logger import log_debug, log_warning
from ...shared.sanitizer import sanitize_token

AUTHORIZATION_ID = "authorization_id"


class JWTBearerTokenValidator(BearerTokenValidator):
    """Validates self-contained access tokens against the authorization store.

    ``authenticate_token`` keeps Authlib's synchronous contract and only
    verifies the signature and registered claims. The store lookup needs
    Redis, so :meth:`validate` adds the issuer and revocation checks on top.
    """

    def __init__(self, generator: TokenGenerator, authorizations: OAuth2AuthorizationService, realm: Optional[str] = None):
        super().__init__(realm)
        self.generator = generator
        self.authorizations = authorizations

    def authenticate_token(self, token_string: str) -> Optional[Dict[str, Any]]:
        try:
            return self.generator.decode(token_string)
        except JoseError as e:
            log_debug(
                "JWT validation failed",
                component="oauth_resource",
                token=sanitize_token(token_string),
                error_type=type(e).__name__,
            )
            return None

    async def validate(self, token_string: str, issuer: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Claims of an active access token issued by ``issuer``, else None."""
        claims = self.authenticate_token(token_string)
        if claims is None:
            return None
        if issuer and claims.get("iss") != issuer:
            log_debug("JWT issued by another issuer", component="oauth_resource", iss=claims.get("iss"))
            return None

        authorization = await self.authorizations.find_by_token(token_string, ACCESS_TOKEN)
        record = authorization.get_token(ACCESS_TOKEN) if authorization else None
        if record is None or not record.is_active():
            log_warning(
                "Access token revoked or unknown",
                component="oauth_resource",
                jti=claims.get("jti"),
                client_id=claims.get("client_id"),
            )
            return None

        claims[AUTHORIZATION_ID] = authorization.id
        return claims


class AsyncResourceProtector:
    """Resolves and checks the bearer token of a request.

    Raises ``HTTPException`` carrying an RFC 6750 error body and
    ``WWW-Authenticate`` challenge on failure.
    """

    def __init__(self, validator: JWTBearerTokenValidator, issuer: Optional[str] = None):
        self.validator = validator
        self.issuer = issuer

    @staticmethod
    def _challenge(error: OAuth2Error, scopes: Sequence[str] = ()) -> str:
        params = [f'error="{error.error}"']
        if error.description:
            params.append(f'error_description="{error.description}"')
        if error.uri:
            params.append(f'error_uri="{error.uri}"')
        if scopes:
            params.append(f'scope="{" ".join(scopes)}"')
        return "Bearer " + ", ".join(params)

    def _fail(self, status_code: int, error: OAuth2Error, scopes: Sequence[str] = ()) -> HTTPException:
        return HTTPException(
            status_code=status_code,
            detail=error.to_dict(),
            headers={"WWW-Authenticate": self._challenge(error, scopes)},
        )

    async def validate_request(self, request: Request, scopes: Sequence[str] = ()) -> Dict[str, Any]:
        """Return the token claims for ``request`` or raise ``HTTPException``."""
        scheme, _, token_string = request.headers.get("authorization", "").partition(" ")
        if scheme.lower() != "bearer" or not token_string.strip():
            raise self._fail(
                401, OAuth2Error(ErrorCode.INVALID_TOKEN.value, "Bearer token is missing", BEARER_ERROR_URI)
            )

        issuer = get_external_url(request, self.issuer)
        claims = await self.validator.validate(token_string.strip(), issuer)
        if claims is None:
            log_warning(
                "Bearer token rejected",
                component="oauth_resource",
                client_ip=get_real_client_ip(request),
                path=request.url.path,
            )
            raise self._fail(
                401,
                OAuth2Error(ErrorCode.INVALID_TOKEN.value, "The access token is invalid or expired", BEARER_ERROR_URI),
            )

        if scopes and self.validator.scope_insufficient(claims.get("scope", ""), list(scopes)):
            raise self._fail(
                403,
                OAuth2Error(ErrorCode.INSUFFICIENT_SCOPE.value, "The access token lacks the required scope", BEARER_ERROR_URI),
                scopes,
            )

        return claims
