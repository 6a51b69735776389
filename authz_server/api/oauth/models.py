"""Request variants, authenticated results and registration models.

Converters turn an HTTP request into one of the *request* dataclasses below.
They are immutable and unauthenticated: nothing in them has been checked
against a store yet. Providers consume a request and return one of the
*result* dataclasses, whose existence is the only evidence that the request
was authenticated.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field

from .authorization import OAuth2Authorization, OAuth2TokenRecord
from .clients import RegisteredClient
from .context import ResourceOwner


# Requests


@dataclass(frozen=True, kw_only=True)
class AuthenticationRequest:
    """Base of every request variant.

    ``client`` is copied from the security context, never from the body.
    """

    client: Optional[RegisteredClient] = None
    issuer: str = ""
    additional_parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class ClientAuthenticationRequest(AuthenticationRequest):
    client_id: str
    method: str
    client_secret: Optional[str] = None
    code_verifier: Optional[str] = None
    grant_type: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class AuthorizationCodeRequest(AuthenticationRequest):
    code: str
    redirect_uri: Optional[str] = None
    code_verifier: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class RefreshTokenRequest(AuthenticationRequest):
    refresh_token: str
    scopes: FrozenSet[str] = frozenset()


@dataclass(frozen=True, kw_only=True)
class ClientCredentialsRequest(AuthenticationRequest):
    scopes: FrozenSet[str] = frozenset()


@dataclass(frozen=True, kw_only=True)
class IntrospectionRequest(AuthenticationRequest):
    token: str
    token_type_hint: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class RevocationRequest(AuthenticationRequest):
    token: str
    token_type_hint: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class AuthorizationRequest(AuthenticationRequest):
    """Authorization code request at the authorization endpoint."""

    client_id: str
    response_type: Optional[str] = None
    redirect_uri: Optional[str] = None
    scopes: FrozenSet[str] = frozenset()
    state: Optional[str] = None
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None
    nonce: Optional[str] = None
    user: Optional[ResourceOwner] = None
    # Original query, replayed after login
    request_uri: str = ""


@dataclass(frozen=True, kw_only=True)
class AuthorizationConsentRequest(AuthenticationRequest):
    """Resource owner's answer to the consent page."""

    client_id: str
    state: str
    scopes: FrozenSet[str] = frozenset()
    user: Optional[ResourceOwner] = None


# Results


@dataclass(frozen=True, kw_only=True)
class AuthenticatedResult:
    principal: str
    client: Optional[RegisteredClient] = None


@dataclass(frozen=True, kw_only=True)
class ClientAuthenticationResult(AuthenticatedResult):
    method: str


@dataclass(frozen=True, kw_only=True)
class AccessTokenResult(AuthenticatedResult):
    access_token: OAuth2TokenRecord
    refresh_token: Optional[OAuth2TokenRecord] = None
    id_token: Optional[OAuth2TokenRecord] = None
    requested_scopes: Optional[FrozenSet[str]] = None
    additional_parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class IntrospectionResult(AuthenticatedResult):
    claims: Dict[str, Any]


@dataclass(frozen=True, kw_only=True)
class RevocationResult(AuthenticatedResult):
    revoked: bool = False


@dataclass(frozen=True, kw_only=True)
class AuthorizationCodeResult(AuthenticatedResult):
    redirect_uri: str
    code: OAuth2TokenRecord
    state: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class ConsentRequiredResult(AuthenticatedResult):
    authorization: OAuth2Authorization
    consent_state: str
    scopes: FrozenSet[str]


@dataclass(frozen=True, kw_only=True)
class LoginRequiredResult(AuthenticatedResult):
    request_uri: str


# Dynamic client registration


class ClientRegistrationRequest(BaseModel):
    """Client metadata submitted to the registration endpoint (RFC 7591 / OIDC)."""

    redirect_uris: List[str] = Field(default_factory=list)
    client_name: Optional[str] = None
    grant_types: List[str] = Field(default_factory=list)
    response_types: List[str] = Field(default_factory=list)
    scope: Optional[str] = None
    token_endpoint_auth_method: Optional[str] = None
    client_uri: Optional[str] = None
    logo_uri: Optional[str] = None
    contacts: Optional[List[str]] = None
    require_proof_key: bool = Field(
        default=False,
        description="Force PKCE for this client even when it is confidential",
    )
