"""Authentication providers, one per request variant."""

from .authorization import (
    AuthorizationConsentAuthenticationProvider,
    AuthorizationRequestAuthenticationProvider,
)
from .authorization_code import AuthorizationCodeAuthenticationProvider
from .base import AuthenticationDispatcher, AuthenticationProvider, ProviderRegistration
from .client_authentication import ClientAuthenticationProvider
from .client_credentials import ClientCredentialsAuthenticationProvider
from .introspection import IntrospectionAuthenticationProvider
from .refresh_token import RefreshTokenAuthenticationProvider
from .revocation import RevocationAuthenticationProvider

__all__ = [
    "AuthenticationDispatcher",
    "AuthenticationProvider",
    "AuthorizationCodeAuthenticationProvider",
    "AuthorizationConsentAuthenticationProvider",
    "AuthorizationRequestAuthenticationProvider",
    "ClientAuthenticationProvider",
    "ClientCredentialsAuthenticationProvider",
    "IntrospectionAuthenticationProvider",
    "ProviderRegistration",
    "RefreshTokenAuthenticationProvider",
    "RevocationAuthenticationProvider",
]
