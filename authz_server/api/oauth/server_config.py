"""Authorization server wiring.

``AuthorizationServerConfig`` is a plain list of endpoint definitions built
before the application starts. It is validated on construction: every
request variant an endpoint's converter can produce must be supported by one
of that endpoint's providers, otherwise :class:`ConfigurationError` is raised
and the server never starts.
"""

from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Type

from .authorization import AUTHORIZATION_CODE, REFRESH_TOKEN
from .clients import CLIENT_CREDENTIALS
from .config import Settings
from .converters import (
    AuthenticationConverter,
    AuthorizationCodeConverter,
    AuthorizationEndpointConverter,
    ClientAuthenticationConverter,
    ClientCredentialsConverter,
    GrantTypeConverter,
    IntrospectionConverter,
    RefreshTokenConverter,
    RevocationConverter,
)
from .errors import TOKEN_ERROR_URI, ConfigurationError, ErrorCode, OAuth2AuthenticationError, oauth2_error
from .filters import EndpointFilter
from .handlers import (
    AuthorizationResponseHandler,
    FailureHandler,
    SuccessHandler,
    access_token_response,
    authorization_error_response,
    client_authentication_failure,
    client_authentication_success,
    introspection_response,
    revocation_response,
    token_error_response,
)
from .matchers import OrRequestMatcher, RequestMatcher
from .models import (
    AuthorizationCodeRequest,
    AuthorizationConsentRequest,
    AuthorizationRequest,
    ClientAuthenticationRequest,
    ClientCredentialsRequest,
    IntrospectionRequest,
    RefreshTokenRequest,
    RevocationRequest,
)
from .providers import (
    AuthenticationDispatcher,
    AuthorizationCodeAuthenticationProvider,
    AuthorizationConsentAuthenticationProvider,
    AuthorizationRequestAuthenticationProvider,
    ClientAuthenticationProvider,
    ClientCredentialsAuthenticationProvider,
    IntrospectionAuthenticationProvider,
    RefreshTokenAuthenticationProvider,
    RevocationAuthenticationProvider,
)
from .providers.base import ProviderLike
from .providers.revocation import HINTABLE_TYPES
from .stores import (
    OAuth2AuthorizationConsentService,
    OAuth2AuthorizationService,
    RegisteredClientRepository,
)
from .tokens import TokenGenerator
from ...shared.logger import log_debug, log_info

CLIENT_AUTHENTICATION = "client_authentication"
AUTHORIZATION = "authorization"
TOKEN = "token"
INTROSPECTION = "introspection"
REVOCATION = "revocation"

DEFAULT_GRANT_TYPES = (AUTHORIZATION_CODE, REFRESH_TOKEN, CLIENT_CREDENTIALS)


def unsupported_grant_type() -> OAuth2AuthenticationError:
    return oauth2_error(ErrorCode.UNSUPPORTED_GRANT_TYPE, "OAuth 2.0 Parameter: grant_type", TOKEN_ERROR_URI)


@dataclass(frozen=True)
class EndpointDefinition:
    name: str
    matcher: object
    converter: AuthenticationConverter
    providers: Tuple[ProviderLike, ...]
    success_handler: SuccessHandler
    failure_handler: FailureHandler
    produces: Tuple[Type, ...] = ()
    unconverted_error: Optional[Callable[[], OAuth2AuthenticationError]] = None

    def dispatcher(self) -> AuthenticationDispatcher:
        return AuthenticationDispatcher(self.providers)


@dataclass
class AuthorizationServerConfig:
    endpoints: List[EndpointDefinition] = field(default_factory=list)

    def __post_init__(self):
        self.endpoints = list(self.endpoints)
        self.validate()

    def validate(self) -> None:
        names = [endpoint.name for endpoint in self.endpoints]
        duplicates = {name for name in names if names.count(name) > 1}
        if duplicates:
            raise ConfigurationError(f"Duplicate endpoint definitions: {', '.join(sorted(duplicates))}")

        for endpoint in self.endpoints:
            dispatcher = endpoint.dispatcher()
            for request_type in endpoint.produces:
                if not dispatcher.supports(request_type):
                    raise ConfigurationError(
                        f"Endpoint '{endpoint.name}' produces {request_type.__name__} "
                        f"but no provider supports it"
                    )

    def get(self, name: str) -> EndpointDefinition:
        for endpoint in self.endpoints:
            if endpoint.name == name:
                return endpoint
        raise ConfigurationError(f"Unknown endpoint '{name}'")

    def customize_endpoint(
        self,
        name: str,
        *,
        success_handler: Optional[SuccessHandler] = None,
        failure_handler: Optional[FailureHandler] = None,
        providers: Optional[Iterable[ProviderLike]] = None,
        converter: Optional[AuthenticationConverter] = None,
        produces: Optional[Iterable[Type]] = None,
    ) -> "AuthorizationServerConfig":
        """Replace parts of an endpoint; the last customization wins.

        A replacement ``converter`` that emits other request variants must be
        given together with the matching ``produces`` so validation sees them.
        """
        endpoint = self.get(name)
        changes = {}
        if converter is not None:
            changes["converter"] = converter
        if produces is not None:
            changes["produces"] = tuple(produces)
        if success_handler is not None:
            changes["success_handler"] = success_handler
        if failure_handler is not None:
            changes["failure_handler"] = failure_handler
        if providers is not None:
            changes["providers"] = tuple(providers)

        index = self.endpoints.index(endpoint)
        self.endpoints[index] = replace(endpoint, **changes)
        try:
            self.validate()
        except ConfigurationError:
            self.endpoints[index] = endpoint
            raise
        log_debug("Endpoint customized", component="oauth_config", endpoint=name, changed=sorted(changes))
        return self

    def build_filters(self) -> List[EndpointFilter]:
        filters = [
            EndpointFilter(
                name=endpoint.name,
                matcher=endpoint.matcher,
                converter=endpoint.converter,
                dispatcher=endpoint.dispatcher(),
                success_handler=endpoint.success_handler,
                failure_handler=endpoint.failure_handler,
                unconverted_error=endpoint.unconverted_error,
            )
            for endpoint in self.endpoints
        ]
        log_info(
            "Authorization server endpoints configured",
            component="oauth_config",
            endpoints=[endpoint.name for endpoint in self.endpoints],
        )
        return filters


def default_server_config(
    settings: Settings,
    clients: RegisteredClientRepository,
    authorizations: OAuth2AuthorizationService,
    consents: OAuth2AuthorizationConsentService,
    generator: TokenGenerator,
    grant_types: Sequence[str] = DEFAULT_GRANT_TYPES,
    revocable_types: Sequence[str] = HINTABLE_TYPES,
) -> AuthorizationServerConfig:
    """The standard endpoint set: client authentication, authorization,
    token, introspection and revocation, in that order."""
    unknown = set(grant_types) - set(DEFAULT_GRANT_TYPES)
    if unknown:
        raise ConfigurationError(f"Unsupported grant types: {', '.join(sorted(unknown))}")

    grant_converters = []
    grant_providers = []
    produces = []
    if AUTHORIZATION_CODE in grant_types:
        grant_converters.append(AuthorizationCodeConverter())
        grant_providers.append(AuthorizationCodeAuthenticationProvider(authorizations, generator))
        produces.append(AuthorizationCodeRequest)
    if REFRESH_TOKEN in grant_types:
        grant_converters.append(RefreshTokenConverter())
        grant_providers.append(
            RefreshTokenAuthenticationProvider(authorizations, generator, settings.reuse_refresh_tokens)
        )
        produces.append(RefreshTokenRequest)
    if CLIENT_CREDENTIALS in grant_types:
        grant_converters.append(ClientCredentialsConverter())
        grant_providers.append(ClientCredentialsAuthenticationProvider(authorizations, generator))
        produces.append(ClientCredentialsRequest)

    client_endpoints = OrRequestMatcher(
        RequestMatcher(path)
        for path in (settings.token_endpoint, settings.introspection_endpoint, settings.revocation_endpoint)
    )

    endpoints = [
        EndpointDefinition(
            name=CLIENT_AUTHENTICATION,
            matcher=client_endpoints,
            converter=ClientAuthenticationConverter(),
            providers=(ClientAuthenticationProvider(clients),),
            success_handler=client_authentication_success,
            failure_handler=client_authentication_failure,
            produces=(ClientAuthenticationRequest,),
        ),
        EndpointDefinition(
            name=AUTHORIZATION,
            matcher=RequestMatcher(settings.authorization_endpoint, frozenset({"GET", "POST"})),
            converter=AuthorizationEndpointConverter(),
            providers=(
                AuthorizationRequestAuthenticationProvider(clients, authorizations, consents, generator),
                AuthorizationConsentAuthenticationProvider(clients, authorizations, consents, generator),
            ),
            success_handler=AuthorizationResponseHandler(settings.consent_page, settings.login_page),
            failure_handler=authorization_error_response,
            produces=(AuthorizationRequest, AuthorizationConsentRequest),
        ),
        EndpointDefinition(
            name=TOKEN,
            matcher=RequestMatcher(settings.token_endpoint),
            converter=GrantTypeConverter(grant_converters),
            providers=tuple(grant_providers),
            success_handler=access_token_response,
            failure_handler=token_error_response,
            produces=tuple(produces),
            unconverted_error=unsupported_grant_type,
        ),
        EndpointDefinition(
            name=INTROSPECTION,
            matcher=RequestMatcher(settings.introspection_endpoint),
            converter=IntrospectionConverter(),
            providers=(IntrospectionAuthenticationProvider(authorizations),),
            success_handler=introspection_response,
            failure_handler=token_error_response,
            produces=(IntrospectionRequest,),
        ),
        EndpointDefinition(
            name=REVOCATION,
            matcher=RequestMatcher(settings.revocation_endpoint),
            converter=RevocationConverter(),
            providers=(RevocationAuthenticationProvider(authorizations, revocable_types),),
            success_handler=revocation_response,
            failure_handler=token_error_response,
            produces=(RevocationRequest,),
        ),
    ]
    return AuthorizationServerConfig(endpoints)
