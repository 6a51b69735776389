"""Authorization endpoint providers: the code request and the consent submission.

Errors raised before the redirect URI is validated carry no redirect target
and are answered directly; later errors carry the validated redirect URI and
the client's ``state`` so the failure handler can redirect the user agent.
"""

import secrets
import time
from typing import Optional

from ..authorization import (
    AUTHORIZATION_CODE,
    AUTHORIZATION_REQUEST,
    STATE,
    OAuth2Authorization,
    OAuth2AuthorizationConsent,
)
from ..clients import RegisteredClient
from ..errors import AUTHORIZATION_ERROR_URI, PKCE_ERROR_URI, ErrorCode, oauth2_error
from ..models import (
    AuthenticatedResult,
    AuthorizationCodeResult,
    AuthorizationConsentRequest,
    AuthorizationRequest,
    ConsentRequiredResult,
    LoginRequiredResult,
)
from ..stores import (
    OAuth2AuthorizationConsentService,
    OAuth2AuthorizationService,
    RegisteredClientRepository,
)
from ..tokens import TokenGenerator
from .base import AuthenticationProvider
from .issuance import OPENID, PRINCIPAL, owner_to_dict
from ....shared.logger import log_debug, log_info, log_warning

RESPONSE_TYPE_CODE = "code"
S256 = "S256"


def _parameter_error(name: str, code: ErrorCode = ErrorCode.INVALID_REQUEST, uri: str = AUTHORIZATION_ERROR_URI, **kwargs):
    return oauth2_error(code, f"OAuth 2.0 Parameter: {name}", uri, **kwargs)


class AuthorizationRequestAuthenticationProvider(AuthenticationProvider):
    request_types = (AuthorizationRequest,)

    def __init__(
        self,
        clients: RegisteredClientRepository,
        authorizations: OAuth2AuthorizationService,
        consents: OAuth2AuthorizationConsentService,
        generator: TokenGenerator,
    ):
        self.clients = clients
        self.authorizations = authorizations
        self.consents = consents
        self.generator = generator

    async def authenticate(self, request: AuthorizationRequest) -> AuthenticatedResult:
        client = await self.clients.find_by_client_id(request.client_id)
        if client is None:
            raise _parameter_error("client_id")

        redirect_uri = self._resolve_redirect_uri(client, request)
        redirect = {"redirect_uri": redirect_uri, "state": request.state}

        if not client.check_grant_type(AUTHORIZATION_CODE):
            raise _parameter_error("client_id", ErrorCode.UNAUTHORIZED_CLIENT, **redirect)
        if request.response_type != RESPONSE_TYPE_CODE or not client.check_response_type(request.response_type):
            raise _parameter_error("response_type", ErrorCode.UNSUPPORTED_RESPONSE_TYPE, **redirect)
        if not request.scopes <= client.scopes:
            raise _parameter_error("scope", ErrorCode.INVALID_SCOPE, **redirect)
        self._validate_pkce(client, request, redirect)

        if request.user is None:
            return LoginRequiredResult(principal="anonymous", client=client, request_uri=request.request_uri)
        user = request.user

        authorization_request = {
            "redirect_uri": request.redirect_uri,
            "resolved_redirect_uri": redirect_uri,
            "state": request.state,
            "scopes": sorted(request.scopes),
            "code_challenge": request.code_challenge,
            "code_challenge_method": request.code_challenge_method,
            "nonce": request.nonce,
        }
        authorization = OAuth2Authorization(
            client_id=client.client_id,
            principal_name=user.name,
            grant_type=AUTHORIZATION_CODE,
            attributes={AUTHORIZATION_REQUEST: authorization_request, PRINCIPAL: owner_to_dict(user)},
        )

        if await self._requires_consent(client, user.name, request.scopes):
            consent_state = secrets.token_urlsafe(32)
            authorization.set_consent_state(
                consent_state, int(time.time()) + self.generator.settings.consent_state_lifetime
            )
            await self.authorizations.save(authorization)
            log_info(
                "Authorization requires consent",
                component="oauth_authorize",
                client_id=client.client_id,
                principal=user.name,
                scope=" ".join(sorted(request.scopes)),
            )
            return ConsentRequiredResult(
                principal=user.name,
                client=client,
                authorization=authorization,
                consent_state=consent_state,
                scopes=request.scopes,
            )

        authorization.authorized_scopes = request.scopes
        code = self.generator.generate_authorization_code(request.scopes)
        authorization.set_token(code)
        await self.authorizations.save(authorization)
        log_info(
            "Authorization code issued",
            component="oauth_authorize",
            client_id=client.client_id,
            principal=user.name,
        )
        return AuthorizationCodeResult(
            principal=user.name, client=client, redirect_uri=redirect_uri, code=code, state=request.state
        )

    @staticmethod
    def _resolve_redirect_uri(client: RegisteredClient, request: AuthorizationRequest) -> str:
        if request.redirect_uri:
            if not client.check_redirect_uri(request.redirect_uri):
                log_warning(
                    "Unregistered redirect_uri",
                    component="oauth_authorize",
                    client_id=client.client_id,
                    redirect_uri=request.redirect_uri,
                )
                raise _parameter_error("redirect_uri")
            return request.redirect_uri

        # OpenID Connect requests must name their redirect_uri
        if OPENID in request.scopes or len(client.redirect_uris) != 1:
            raise _parameter_error("redirect_uri")
        return client.redirect_uris[0]

    @staticmethod
    def _validate_pkce(client: RegisteredClient, request: AuthorizationRequest, redirect: dict) -> None:
        if request.code_challenge:
            if request.code_challenge_method != S256:
                raise _parameter_error("code_challenge_method", uri=PKCE_ERROR_URI, **redirect)
        elif request.code_challenge_method:
            raise _parameter_error("code_challenge", uri=PKCE_ERROR_URI, **redirect)
        elif client.require_proof_key or client.is_public:
            raise _parameter_error("code_challenge", uri=PKCE_ERROR_URI, **redirect)

    async def _requires_consent(self, client: RegisteredClient, principal: str, scopes: frozenset) -> bool:
        if not client.require_authorization_consent:
            return False
        if not scopes or scopes == {OPENID}:
            return False
        consent = await self.consents.find(client.client_id, principal)
        return consent is None or not consent.covers(scopes)


class AuthorizationConsentAuthenticationProvider(AuthenticationProvider):
    request_types = (AuthorizationConsentRequest,)

    def __init__(
        self,
        clients: RegisteredClientRepository,
        authorizations: OAuth2AuthorizationService,
        consents: OAuth2AuthorizationConsentService,
        generator: TokenGenerator,
    ):
        self.clients = clients
        self.authorizations = authorizations
        self.consents = consents
        self.generator = generator

    async def authenticate(self, request: AuthorizationConsentRequest) -> AuthorizationCodeResult:
        authorization = await self.authorizations.find_by_token(request.state, STATE)
        if authorization is None:
            raise _parameter_error("state")
        if authorization.consent_state_expired():
            await self.authorizations.remove(authorization)
            log_info(
                "Consent state expired",
                component="oauth_authorize",
                client_id=authorization.client_id,
                principal=authorization.principal_name,
            )
            raise _parameter_error("state")
        if request.user is None or request.user.name != authorization.principal_name:
            raise _parameter_error("state")

        client: Optional[RegisteredClient] = await self.clients.find_by_client_id(request.client_id)
        if client is None or client.client_id != authorization.client_id:
            raise _parameter_error("client_id")

        authorization_request = authorization.attributes.get(AUTHORIZATION_REQUEST) or {}
        requested = frozenset(authorization_request.get("scopes") or ())
        redirect = {
            "redirect_uri": authorization_request.get("resolved_redirect_uri"),
            "state": authorization_request.get("state"),
        }

        if not request.scopes <= requested:
            raise _parameter_error("scope", ErrorCode.INVALID_SCOPE, **redirect)

        current = await self.consents.find(client.client_id, authorization.principal_name)
        authorized = set(request.scopes)
        if current is not None:
            authorized |= current.scopes & requested
        authorized.discard(OPENID)

        if not authorized:
            if current is not None:
                await self.consents.remove(current)
            await self.authorizations.remove(authorization)
            log_info(
                "Resource owner denied consent",
                component="oauth_authorize",
                client_id=client.client_id,
                principal=authorization.principal_name,
            )
            raise oauth2_error(
                ErrorCode.ACCESS_DENIED, "OAuth 2.0 Parameter: consent", AUTHORIZATION_ERROR_URI, **redirect
            )

        if OPENID in requested:
            authorized.add(OPENID)
        authorized_scopes = frozenset(authorized)

        await self.consents.save(
            OAuth2AuthorizationConsent(client.client_id, authorization.principal_name, authorized_scopes)
        )

        authorization.clear_consent_state()
        authorization.authorized_scopes = authorized_scopes
        code = self.generator.generate_authorization_code(authorized_scopes)
        authorization.set_token(code)
        await self.authorizations.save(authorization)

        log_debug(
            "Consent recorded, authorization code issued",
            component="oauth_authorize",
            client_id=client.client_id,
            principal=authorization.principal_name,
            scope=" ".join(sorted(authorized_scopes)),
        )
        return AuthorizationCodeResult(
            principal=authorization.principal_name,
            client=client,
            redirect_uri=redirect["redirect_uri"],
            code=code,
            state=redirect["state"],
        )
