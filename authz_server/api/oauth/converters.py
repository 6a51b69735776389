"""Converters: HTTP parameters to unauthenticated request variants.

A converter returns ``None`` when the request is not one it understands and
raises :class:`OAuth2AuthenticationError` (``invalid_request``) when it is,
but a parameter is missing, repeated or malformed. Converters never touch a
store.
"""

from functools import partial
from typing import Optional, Sequence
from urllib.parse import urlencode

from authlib.oauth2.rfc6749.util import extract_basic_authorization
from starlette.datastructures import MultiDict
from starlette.requests import Request

from .authorization import AUTHORIZATION_CODE, REFRESH_TOKEN
from .clients import CLIENT_CREDENTIALS, CLIENT_SECRET_BASIC, CLIENT_SECRET_POST, NONE
from .context import SecurityContext
from .errors import (
    AUTHORIZATION_ERROR_URI,
    INTROSPECTION_ERROR_URI,
    REVOCATION_ERROR_URI,
    TOKEN_ERROR_URI,
    ErrorCode,
    oauth2_error,
    parameter_error,
)
from .models import (
    AuthenticationRequest,
    AuthorizationCodeRequest,
    AuthorizationConsentRequest,
    AuthorizationRequest,
    ClientAuthenticationRequest,
    ClientCredentialsRequest,
    IntrospectionRequest,
    RefreshTokenRequest,
    RevocationRequest,
)
from .parameters import optional_single, require_single, split_scope

token_error = partial(parameter_error, uri=TOKEN_ERROR_URI)
authorization_error = partial(parameter_error, uri=AUTHORIZATION_ERROR_URI)
introspection_error = partial(
    parameter_error, uri=INTROSPECTION_ERROR_URI, prefix="OAuth 2.0 Token Introspection Parameter"
)
revocation_error = partial(
    parameter_error, uri=REVOCATION_ERROR_URI, prefix="OAuth 2.0 Token Revocation Parameter"
)

# Parameters consumed by client authentication or the grant converters
_RESERVED = frozenset({
    "grant_type", "client_id", "client_secret", "code", "redirect_uri",
    "code_verifier", "refresh_token", "scope",
})


def _additional(parameters: MultiDict) -> dict:
    return {key: value for key, value in parameters.multi_items() if key not in _RESERVED}


class AuthenticationConverter:
    """Base converter; subclasses implement :meth:`convert`."""

    async def convert(
        self, request: Request, parameters: MultiDict, context: SecurityContext
    ) -> Optional[AuthenticationRequest]:
        raise NotImplementedError


class DelegatingAuthenticationConverter(AuthenticationConverter):
    """Tries each converter in order, first non-None wins."""

    def __init__(self, converters: Sequence[AuthenticationConverter]):
        self.converters = tuple(converters)

    async def convert(self, request, parameters, context):
        for converter in self.converters:
            result = await converter.convert(request, parameters, context)
            if result is not None:
                return result
        return None


class GrantTypeConverter(DelegatingAuthenticationConverter):
    """Token endpoint converter: validates ``grant_type`` then delegates."""

    async def convert(self, request, parameters, context):
        require_single(parameters, "grant_type", token_error)
        return await super().convert(request, parameters, context)


class AuthorizationCodeConverter(AuthenticationConverter):
    async def convert(self, request, parameters, context):
        if parameters.get("grant_type") != AUTHORIZATION_CODE:
            return None
        return AuthorizationCodeRequest(
            client=context.client,
            issuer=context.issuer,
            code=require_single(parameters, "code", token_error),
            redirect_uri=optional_single(parameters, "redirect_uri", token_error),
            code_verifier=optional_single(parameters, "code_verifier", token_error),
            additional_parameters=_additional(parameters),
        )


class RefreshTokenConverter(AuthenticationConverter):
    async def convert(self, request, parameters, context):
        if parameters.get("grant_type") != REFRESH_TOKEN:
            return None
        return RefreshTokenRequest(
            client=context.client,
            issuer=context.issuer,
            refresh_token=require_single(parameters, "refresh_token", token_error),
            scopes=split_scope(optional_single(parameters, "scope", token_error)),
            additional_parameters=_additional(parameters),
        )


class ClientCredentialsConverter(AuthenticationConverter):
    async def convert(self, request, parameters, context):
        if parameters.get("grant_type") != CLIENT_CREDENTIALS:
            return None
        return ClientCredentialsRequest(
            client=context.client,
            issuer=context.issuer,
            scopes=split_scope(optional_single(parameters, "scope", token_error)),
            additional_parameters=_additional(parameters),
        )


class IntrospectionConverter(AuthenticationConverter):
    async def convert(self, request, parameters, context):
        return IntrospectionRequest(
            client=context.client,
            issuer=context.issuer,
            token=require_single(parameters, "token", introspection_error),
            token_type_hint=optional_single(parameters, "token_type_hint", introspection_error),
        )


class RevocationConverter(AuthenticationConverter):
    async def convert(self, request, parameters, context):
        return RevocationRequest(
            client=context.client,
            issuer=context.issuer,
            token=require_single(parameters, "token", revocation_error),
            token_type_hint=optional_single(parameters, "token_type_hint", revocation_error),
        )


class ClientAuthenticationConverter(AuthenticationConverter):
    """Extracts client credentials: HTTP Basic, form post, or a bare ``client_id``.

    Returns None when the request carries no client credentials at all.
    """

    async def convert(self, request, parameters, context):
        scheme = request.headers.get("authorization", "").partition(" ")[0]

        if scheme.lower() == "basic":
            client_id, client_secret = self._decode_basic(request)
            return ClientAuthenticationRequest(
                issuer=context.issuer,
                client_id=client_id,
                client_secret=client_secret,
                method=CLIENT_SECRET_BASIC,
                grant_type=parameters.get("grant_type"),
                code_verifier=parameters.get("code_verifier"),
            )

        if "client_id" not in parameters:
            return None

        client_id = require_single(parameters, "client_id", token_error)
        client_secret = optional_single(parameters, "client_secret", token_error)
        return ClientAuthenticationRequest(
            issuer=context.issuer,
            client_id=client_id,
            client_secret=client_secret,
            method=CLIENT_SECRET_POST if client_secret else NONE,
            grant_type=parameters.get("grant_type"),
            code_verifier=optional_single(parameters, "code_verifier", token_error),
        )

    @staticmethod
    def _decode_basic(request: Request):
        try:
            client_id, client_secret = extract_basic_authorization(request.headers)
        except ValueError:
            # Undecodable bytes, or a bare "Basic" scheme
            client_id = client_secret = None
        if not client_id or not client_secret:
            raise oauth2_error(ErrorCode.INVALID_REQUEST, "Malformed Basic authorization header", TOKEN_ERROR_URI)
        return client_id, client_secret


class AuthorizationEndpointConverter(AuthenticationConverter):
    """GET (or POST with ``response_type``) is an authorization request,
    any other POST is a consent submission.
    """

    async def convert(self, request, parameters, context):
        if request.method == "POST" and "response_type" not in parameters:
            return self._consent(parameters, context)

        query = urlencode(list(parameters.multi_items()))
        return AuthorizationRequest(
            issuer=context.issuer,
            client_id=require_single(parameters, "client_id", authorization_error),
            response_type=require_single(parameters, "response_type", authorization_error),
            redirect_uri=optional_single(parameters, "redirect_uri", authorization_error),
            scopes=split_scope(optional_single(parameters, "scope", authorization_error)),
            state=optional_single(parameters, "state", authorization_error),
            code_challenge=optional_single(parameters, "code_challenge", authorization_error),
            code_challenge_method=optional_single(parameters, "code_challenge_method", authorization_error),
            nonce=optional_single(parameters, "nonce", authorization_error),
            user=context.user,
            request_uri=f"{request.url.path}?{query}",
        )

    @staticmethod
    def _consent(parameters: MultiDict, context: SecurityContext) -> AuthorizationConsentRequest:
        scopes = set()
        for value in parameters.getlist("scope"):
            scopes.update(value.split())
        return AuthorizationConsentRequest(
            issuer=context.issuer,
            client_id=require_single(parameters, "client_id", authorization_error),
            state=require_single(parameters, "state", authorization_error),
            scopes=frozenset(scopes),
            user=context.user,
        )
