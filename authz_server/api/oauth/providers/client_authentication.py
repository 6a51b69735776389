"""Client authentication: client_secret_basic, client_secret_post and none."""

from ..authorization import AUTHORIZATION_CODE
from ..clients import NONE
from ..errors import TOKEN_ERROR_URI, ErrorCode, oauth2_error
from ..models import ClientAuthenticationRequest, ClientAuthenticationResult
from ..stores import RegisteredClientRepository
from .base import AuthenticationProvider
from ....shared.logger import log_debug, log_warning


def _invalid_client(description: str):
    return oauth2_error(ErrorCode.INVALID_CLIENT, description, TOKEN_ERROR_URI)


class ClientAuthenticationProvider(AuthenticationProvider):
    request_types = (ClientAuthenticationRequest,)

    def __init__(self, clients: RegisteredClientRepository):
        self.clients = clients

    async def authenticate(self, request: ClientAuthenticationRequest) -> ClientAuthenticationResult:
        client = await self.clients.find_by_client_id(request.client_id)
        if client is None:
            log_warning("Unknown client", component="oauth_client_auth", client_id=request.client_id)
            raise _invalid_client("Client authentication failed: client_id")

        if not client.check_endpoint_auth_method(request.method, "token"):
            log_warning(
                "Client used an unregistered authentication method",
                component="oauth_client_auth",
                client_id=client.client_id,
                method=request.method,
            )
            raise _invalid_client("Client authentication failed: authentication_method")

        if request.method == NONE:
            # Public clients prove possession through PKCE instead of a secret
            if request.grant_type == AUTHORIZATION_CODE and not request.code_verifier:
                raise _invalid_client("Client authentication failed: code_verifier")
        else:
            if not client.check_client_secret(request.client_secret or ""):
                log_warning("Invalid client secret", component="oauth_client_auth", client_id=client.client_id)
                raise _invalid_client("Client authentication failed: client_secret")
            if client.is_secret_expired():
                raise _invalid_client("Client authentication failed: client_secret_expires_at")

        log_debug(
            "Client authenticated",
            component="oauth_client_auth",
            client_id=client.client_id,
            method=request.method,
        )
        return ClientAuthenticationResult(principal=client.client_id, client=client, method=request.method)
