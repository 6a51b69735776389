"""Success and failure handlers: results and errors to RFC wire responses.

A handler is an async callable ``(request, outcome, context)`` returning a
Starlette response, or ``None`` to let the filter chain continue.
"""

from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from .context import SecurityContext
from .errors import ErrorCode, OAuth2AuthenticationError
from .models import (
    AccessTokenResult,
    AuthenticatedResult,
    AuthorizationCodeResult,
    ClientAuthenticationResult,
    ConsentRequiredResult,
    IntrospectionResult,
    LoginRequiredResult,
)
from .tokens import scope_string
from ...shared.client_ip import get_real_client_ip
from ...shared.logger import log_info, log_warning

SuccessHandler = Callable[[Request, AuthenticatedResult, SecurityContext], Awaitable[Optional[Response]]]
FailureHandler = Callable[[Request, OAuth2AuthenticationError, SecurityContext], Awaitable[Optional[Response]]]

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def append_query(url: str, params: Dict[str, Any]) -> str:
    """Add ``params`` to ``url`` keeping its existing query and dropping None values."""
    parsed = urlparse(url)
    query = parse_qsl(parsed.query, keep_blank_values=True)
    query.extend((key, value) for key, value in params.items() if value is not None)
    return urlunparse(parsed._replace(query=urlencode(query)))


def error_response(error: OAuth2AuthenticationError, status_code: int = 400, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(error.error.to_dict(), status_code=status_code, headers={**NO_STORE_HEADERS, **(headers or {})})


# Client authentication


async def client_authentication_success(request: Request, result: ClientAuthenticationResult, context: SecurityContext):
    context.authenticate_client(result.client, result.method)
    return None


async def client_authentication_failure(request: Request, error: OAuth2AuthenticationError, context: SecurityContext):
    log_warning(
        "Client authentication failed",
        component="oauth_client_auth",
        client_ip=get_real_client_ip(request),
        error=error.error_code,
    )
    if error.error_code != ErrorCode.INVALID_CLIENT.value:
        return error_response(error)
    headers = {}
    if request.headers.get("authorization", "").lower().startswith("basic"):
        headers["WWW-Authenticate"] = 'Basic realm="oauth2"'
    return error_response(error, 401, headers)


# Token endpoint


async def access_token_response(request: Request, result: AccessTokenResult, context: SecurityContext):
    access_token = result.access_token
    body: Dict[str, Any] = {
        "access_token": access_token.value,
        "token_type": "Bearer",
    }
    if access_token.expires_at:
        body["expires_in"] = max(access_token.expires_at - access_token.issued_at, 0)
    if result.refresh_token is not None:
        body["refresh_token"] = result.refresh_token.value
    if result.requested_scopes is not None and access_token.scopes != result.requested_scopes:
        body["scope"] = scope_string(access_token.scopes)
    if result.id_token is not None:
        body["id_token"] = result.id_token.value
    body.update(result.additional_parameters)
    return JSONResponse(body, headers=NO_STORE_HEADERS)


async def token_error_response(request: Request, error: OAuth2AuthenticationError, context: SecurityContext):
    log_warning(
        "Token request failed",
        component="oauth_token",
        client_ip=get_real_client_ip(request),
        error=error.error_code,
        error_description=error.error.description,
    )
    return error_response(error)


# Introspection and revocation


async def introspection_response(request: Request, result: IntrospectionResult, context: SecurityContext):
    return JSONResponse(result.claims, headers=NO_STORE_HEADERS)


async def revocation_response(request: Request, result: AuthenticatedResult, context: SecurityContext):
    return Response(status_code=200)


# Authorization endpoint


class AuthorizationResponseHandler:
    """Redirects the user agent: to the client, the consent page or the login page."""

    def __init__(self, consent_page: str, login_page: str):
        self.consent_page = consent_page
        self.login_page = login_page

    async def __call__(self, request: Request, result: AuthenticatedResult, context: SecurityContext):
        if isinstance(result, AuthorizationCodeResult):
            location = append_query(result.redirect_uri, {"code": result.code.value, "state": result.state})
            log_info(
                "Redirecting with authorization code",
                component="oauth_authorize",
                client_id=result.client.client_id if result.client else None,
            )
        elif isinstance(result, ConsentRequiredResult):
            location = append_query(
                self.consent_page,
                {
                    "client_id": result.client.client_id,
                    "scope": scope_string(result.scopes),
                    "state": result.consent_state,
                },
            )
        elif isinstance(result, LoginRequiredResult):
            location = append_query(self.login_page, {"next": result.request_uri})
        else:
            raise TypeError(f"Unexpected authorization result {type(result).__name__}")
        return RedirectResponse(location, status_code=302)


async def authorization_error_response(request: Request, error: OAuth2AuthenticationError, context: SecurityContext):
    log_warning(
        "Authorization request failed",
        component="oauth_authorize",
        client_ip=get_real_client_ip(request),
        error=error.error_code,
        redirect=bool(error.redirect_uri),
    )
    if not error.redirect_uri:
        return error_response(error)

    params = {
        "error": error.error.error,
        "error_description": error.error.description,
        "error_uri": error.error.uri,
        "state": error.state,
    }
    return RedirectResponse(append_query(error.redirect_uri, params), status_code=302)
