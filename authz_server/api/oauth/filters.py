"""Endpoint filters and the middleware running them.

Every protocol endpoint is an :class:`EndpointFilter` composed of a matcher,
a converter, a provider dispatcher and a success/failure handler pair. The
:class:`FilterChainMiddleware` walks the ordered filters; the first filter
returning a response ends the request, otherwise the request falls through to
the FastAPI routes.
"""

from typing import Callable, Optional, Sequence

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from .context import SecurityContext
from .converters import AuthenticationConverter
from .errors import OAuth2AuthenticationError
from .handlers import FailureHandler, SuccessHandler
from .matchers import RequestMatcher
from .parameters import get_parameters
from .providers.base import AuthenticationDispatcher
from ...shared.client_ip import get_real_client_ip
from ...shared.logger import log_debug, log_request, log_response


class EndpointFilter:
    """match -> convert -> authenticate -> success or failure handler."""

    def __init__(
        self,
        name: str,
        matcher: RequestMatcher,
        converter: AuthenticationConverter,
        dispatcher: AuthenticationDispatcher,
        success_handler: SuccessHandler,
        failure_handler: FailureHandler,
        unconverted_error: Optional[Callable[[], OAuth2AuthenticationError]] = None,
    ):
        self.name = name
        self.matcher = matcher
        self.converter = converter
        self.dispatcher = dispatcher
        self.success_handler = success_handler
        self.failure_handler = failure_handler
        self.unconverted_error = unconverted_error

    async def handle(self, request: Request, context: SecurityContext) -> Optional[Response]:
        """Return a terminal response, or None to pass the request on."""
        if not self.matcher.matches(request):
            return None

        try:
            parameters = await get_parameters(request)
            authentication_request = await self.converter.convert(request, parameters, context)
            if authentication_request is None:
                if self.unconverted_error is None:
                    log_debug("Request not converted, passing through", component="oauth_filter", endpoint=self.name)
                    return None
                raise self.unconverted_error()

            result = await self.dispatcher.authenticate(authentication_request)
        except OAuth2AuthenticationError as error:
            context.clear()
            return await self.failure_handler(request, error, context)

        return await self.success_handler(request, result, context)


class FilterChainMiddleware(BaseHTTPMiddleware):
    """Runs the endpoint filters in order with a fresh security context per request."""

    def __init__(self, app: ASGIApp, filters: Sequence[EndpointFilter], issuer: Optional[str] = None):
        super().__init__(app)
        self.filters = tuple(filters)
        self.issuer = issuer

    async def dispatch(self, request: Request, call_next):
        context = SecurityContext.from_request(request, self.issuer)
        request.state.security_context = context

        for endpoint_filter in self.filters:
            if not endpoint_filter.matcher.matches(request):
                continue
            client_ip = get_real_client_ip(request)
            log_request(request.method, request.url.path, client_ip, component="oauth_filter", endpoint=endpoint_filter.name)
            response = await endpoint_filter.handle(request, context)
            if response is not None:
                log_response(
                    response.status_code,
                    request.url.path,
                    component="oauth_filter",
                    endpoint=endpoint_filter.name,
                    client_ip=client_ip,
                )
                return response

        return await call_next(request)
