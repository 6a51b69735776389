"""OAuth 2.0 error model shared by every endpoint."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Error codes from RFC 6749, 6750, 7009, 7591 and OpenID Connect."""

    INVALID_REQUEST = "invalid_request"
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    UNAUTHORIZED_CLIENT = "unauthorized_client"
    UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"
    INVALID_SCOPE = "invalid_scope"
    UNSUPPORTED_TOKEN_TYPE = "unsupported_token_type"
    SERVER_ERROR = "server_error"
    ACCESS_DENIED = "access_denied"
    UNSUPPORTED_RESPONSE_TYPE = "unsupported_response_type"
    INVALID_TOKEN = "invalid_token"
    INSUFFICIENT_SCOPE = "insufficient_scope"
    INVALID_CLIENT_METADATA = "invalid_client_metadata"
    INVALID_REDIRECT_URI = "invalid_redirect_uri"


# Reference sections used as error_uri
TOKEN_ERROR_URI = "https://datatracker.ietf.org/doc/html/rfc6749#section-5.2"
AUTHORIZATION_ERROR_URI = "https://datatracker.ietf.org/doc/html/rfc6749#section-4.1.2.1"
REVOCATION_ERROR_URI = "https://datatracker.ietf.org/doc/html/rfc7009#section-2.1"
INTROSPECTION_ERROR_URI = "https://datatracker.ietf.org/doc/html/rfc7662#section-2.1"
PKCE_ERROR_URI = "https://datatracker.ietf.org/doc/html/rfc7636#section-4.4.1"
BEARER_ERROR_URI = "https://datatracker.ietf.org/doc/html/rfc6750#section-3.1"
REGISTRATION_ERROR_URI = "https://datatracker.ietf.org/doc/html/rfc7591#section-3.2.2"


@dataclass(frozen=True)
class OAuth2Error:
    """RFC error response: ``error``, ``error_description``, ``error_uri``."""

    error: str
    description: Optional[str] = None
    uri: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.error}
        if self.description:
            body["error_description"] = self.description
        if self.uri:
            body["error_uri"] = self.uri
        return body


class OAuth2AuthenticationError(Exception):
    """Raised by converters and providers; terminal for the request.

    ``redirect_uri`` and ``state`` are only set once the redirect URI has been
    validated against the client registration, which is what allows the
    authorization endpoint to report the error by redirect.
    """

    def __init__(
        self,
        error: OAuth2Error,
        redirect_uri: Optional[str] = None,
        state: Optional[str] = None,
    ):
        super().__init__(error.description or error.error)
        self.error = error
        self.redirect_uri = redirect_uri
        self.state = state

    @property
    def error_code(self) -> str:
        return self.error.error


def oauth2_error(
    code: ErrorCode,
    description: Optional[str] = None,
    uri: Optional[str] = None,
    **kwargs,
) -> OAuth2AuthenticationError:
    """Build an :class:`OAuth2AuthenticationError` for ``code``."""
    return OAuth2AuthenticationError(OAuth2Error(code.value, description, uri), **kwargs)


def parameter_error(
    parameter: str,
    uri: str = TOKEN_ERROR_URI,
    prefix: str = "OAuth 2.0 Parameter",
    code: ErrorCode = ErrorCode.INVALID_REQUEST,
    **kwargs,
) -> OAuth2AuthenticationError:
    """Error naming the offending request parameter."""
    return oauth2_error(code, f"{prefix}: {parameter}", uri, **kwargs)


class ConfigurationError(ValueError):
    """The authorization server configuration is invalid."""


class ProviderNotFoundError(RuntimeError):
    """No registered provider supports a request variant.

    This is a wiring defect of the server, never a client error.
    """

    def __init__(self, request_type: type):
        super().__init__(f"No AuthenticationProvider found for {request_type.__name__}")
        self.request_type = request_type
