"""Provider dispatch order and failure when nothing supports a request."""

import pytest

from authz_server.api.oauth.errors import ProviderNotFoundError
from authz_server.api.oauth.models import (
    AuthenticatedResult,
    IntrospectionRequest,
    RevocationRequest,
)
from authz_server.api.oauth.providers import (
    AuthenticationDispatcher,
    AuthenticationProvider,
    ProviderRegistration,
)


def named_handler(name):
    async def handle(request):
        return AuthenticatedResult(principal=name)

    return handle


def never(request_type):
    return False


def always(request_type):
    return True


class RevocationOnly(AuthenticationProvider):
    request_types = (RevocationRequest,)

    async def authenticate(self, request):
        return AuthenticatedResult(principal="revocation-only")


@pytest.fixture
def introspection_request():
    return IntrospectionRequest(issuer="http://testserver", token="abc")


@pytest.mark.unit
class TestAuthenticationDispatcher:
    """First provider whose predicate accepts the request type wins."""

    async def test_skips_provider_that_does_not_support(self, introspection_request):
        dispatcher = AuthenticationDispatcher([(never, named_handler("A")), (always, named_handler("B"))])
        result = await dispatcher.authenticate(introspection_request)
        assert result.principal == "B"

    async def test_registration_order_breaks_ties(self, introspection_request):
        dispatcher = AuthenticationDispatcher([(always, named_handler("B")), (always, named_handler("A"))])
        result = await dispatcher.authenticate(introspection_request)
        assert result.principal == "B"

    async def test_provider_classes_and_registrations_mix(self, introspection_request):
        dispatcher = AuthenticationDispatcher([
            RevocationOnly(),
            ProviderRegistration(always, named_handler("fallback"), name="fallback"),
        ])
        assert [r.name for r in dispatcher.registrations] == ["RevocationOnly", "fallback"]

        result = await dispatcher.authenticate(introspection_request)
        assert result.principal == "fallback"

        result = await dispatcher.authenticate(RevocationRequest(issuer="http://testserver", token="abc"))
        assert result.principal == "revocation-only"

    async def test_no_supporting_provider_raises(self, introspection_request):
        dispatcher = AuthenticationDispatcher([RevocationOnly(), (never, named_handler("A"))])
        assert not dispatcher.supports(IntrospectionRequest)

        with pytest.raises(ProviderNotFoundError) as exc_info:
            await dispatcher.authenticate(introspection_request)
        assert exc_info.value.request_type is IntrospectionRequest
        assert "IntrospectionRequest" in str(exc_info.value)

    async def test_empty_dispatcher_raises(self, introspection_request):
        with pytest.raises(ProviderNotFoundError):
            await AuthenticationDispatcher([]).authenticate(introspection_request)
