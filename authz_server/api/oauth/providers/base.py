"""Provider contract and the delegating dispatcher.

A provider declares which request variants it handles through
``supports(request_type)`` and authenticates them in ``authenticate``.
The dispatcher holds an ordered tuple of registrations and invokes the first
one whose predicate accepts the request's type. Registration order is the
only tie breaker.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Tuple, Type, Union

from ..errors import ProviderNotFoundError
from ..models import AuthenticatedResult, AuthenticationRequest
from ....shared.logger import log_critical, log_trace

Predicate = Callable[[type], bool]
Handler = Callable[[AuthenticationRequest], Awaitable[AuthenticatedResult]]


class AuthenticationProvider:
    """Base class for providers bound to a fixed set of request variants."""

    request_types: Tuple[Type[AuthenticationRequest], ...] = ()

    def supports(self, request_type: type) -> bool:
        return issubclass(request_type, self.request_types)

    async def authenticate(self, request: AuthenticationRequest) -> AuthenticatedResult:
        raise NotImplementedError


@dataclass(frozen=True)
class ProviderRegistration:
    supports: Predicate
    authenticate: Handler
    name: str = ""


ProviderLike = Union[AuthenticationProvider, Tuple[Predicate, Handler], ProviderRegistration]


def _registration(provider: ProviderLike) -> ProviderRegistration:
    if isinstance(provider, ProviderRegistration):
        return provider
    if isinstance(provider, tuple):
        predicate, handler = provider
        return ProviderRegistration(predicate, handler, getattr(handler, "__qualname__", repr(handler)))
    return ProviderRegistration(provider.supports, provider.authenticate, type(provider).__name__)


class AuthenticationDispatcher:
    """Ordered, read-only provider registry."""

    def __init__(self, providers: Iterable[ProviderLike]):
        self.registrations: Tuple[ProviderRegistration, ...] = tuple(_registration(p) for p in providers)

    def supports(self, request_type: type) -> bool:
        return any(registration.supports(request_type) for registration in self.registrations)

    async def authenticate(self, request: AuthenticationRequest) -> AuthenticatedResult:
        request_type = type(request)
        for registration in self.registrations:
            if registration.supports(request_type):
                log_trace(
                    "Dispatching request",
                    component="oauth_dispatcher",
                    request_type=request_type.__name__,
                    provider=registration.name,
                )
                return await registration.authenticate(request)

        log_critical(
            "No provider registered for request type",
            component="oauth_dispatcher",
            request_type=request_type.__name__,
            providers=[registration.name for registration in self.registrations],
        )
        raise ProviderNotFoundError(request_type)
